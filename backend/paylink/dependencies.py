"""
FastAPI dependencies — wires settings and credentials into the payment services.
"""
from functools import lru_cache

from fastapi import Depends, Header, HTTPException

from paylink.config import get_settings
from paylink.errors import GatewayUnavailable
from paylink.services.gateway import GatewayClient, PayOSGateway
from paylink.services.link_service import PaymentLinkService
from paylink.services.order_code import OrderCodeGenerator
from paylink.services.poller import ReconciliationPoller
from paylink.services.transition_service import TransitionService
from paylink.services.webhook_service import WebhookIngestion, WebhookVerifier

GATEWAY_NOT_CONFIGURED = "PayOS is not configured (PAYOS_CLIENT_ID/PAYOS_API_KEY/PAYOS_CHECKSUM_KEY)"


@lru_cache()
def get_gateway() -> GatewayClient:
    settings = get_settings()
    if not settings.gateway_configured:
        raise GatewayUnavailable(GATEWAY_NOT_CONFIGURED)
    return PayOSGateway(
        client_id=settings.PAYOS_CLIENT_ID,
        api_key=settings.PAYOS_API_KEY,
        checksum_key=settings.PAYOS_CHECKSUM_KEY,
        partner_code=settings.PAYOS_PARTNER_CODE,
        timeout=settings.GATEWAY_TIMEOUT_SECONDS,
    )


@lru_cache()
def get_order_codes() -> OrderCodeGenerator:
    return OrderCodeGenerator()


@lru_cache()
def get_transitions() -> TransitionService:
    return TransitionService()


def get_link_service(
    gateway: GatewayClient = Depends(get_gateway),
    order_codes: OrderCodeGenerator = Depends(get_order_codes),
    transitions: TransitionService = Depends(get_transitions),
) -> PaymentLinkService:
    settings = get_settings()
    return PaymentLinkService(
        gateway,
        order_codes,
        transitions,
        currency=settings.DEFAULT_CURRENCY,
        description_max_length=settings.DESCRIPTION_MAX_LENGTH,
        max_attempts=settings.ORDER_CODE_MAX_ATTEMPTS,
    )


def get_webhook_ingestion(
    transitions: TransitionService = Depends(get_transitions),
) -> WebhookIngestion:
    settings = get_settings()
    if not settings.PAYOS_CHECKSUM_KEY:
        raise GatewayUnavailable(GATEWAY_NOT_CONFIGURED)
    return WebhookIngestion(WebhookVerifier(settings.PAYOS_CHECKSUM_KEY), transitions)


def get_poller(
    gateway: GatewayClient = Depends(get_gateway),
    transitions: TransitionService = Depends(get_transitions),
) -> ReconciliationPoller:
    settings = get_settings()
    return ReconciliationPoller(
        gateway,
        transitions,
        stale_after_seconds=settings.STALE_AFTER_SECONDS,
        batch_size=settings.POLL_BATCH_SIZE,
    )


def get_current_user_id(user_id: str = Header(None, alias="X-User-Id")) -> int:
    """Authenticated user id forwarded by the identity provider."""
    if not user_id or not user_id.strip().isdigit():
        raise HTTPException(status_code=401, detail="Missing or invalid X-User-Id")
    return int(user_id.strip())
