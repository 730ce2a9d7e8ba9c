from paylink.services.order_code import OrderCodeGenerator
from paylink.services.gateway import GatewayClient, PayOSGateway, LinkInfo, StatusInfo
from paylink.services.ledger import TransactionLedger
from paylink.services.event_service import PaymentEventService
from paylink.services.transition_service import TransitionService
from paylink.services.link_service import PaymentLinkService
from paylink.services.webhook_service import WebhookVerifier, WebhookIngestion
from paylink.services.poller import ReconciliationPoller

__all__ = [
    "OrderCodeGenerator", "GatewayClient", "PayOSGateway", "LinkInfo", "StatusInfo",
    "TransactionLedger", "PaymentEventService", "TransitionService", "PaymentLinkService",
    "WebhookVerifier", "WebhookIngestion", "ReconciliationPoller",
]
