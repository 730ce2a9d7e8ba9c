from paylink.models.transaction import PaymentTransaction, TransactionStatus, TERMINAL_STATUSES
from paylink.models.event import PaymentEvent

__all__ = ["PaymentTransaction", "TransactionStatus", "TERMINAL_STATUSES", "PaymentEvent"]
