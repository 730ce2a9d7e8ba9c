"""
Error taxonomy for payment link creation, webhook ingestion and reconciliation.

Every failure is scoped to one request or one record. Each error carries the
HTTP status the API layer answers with and a stable ``code`` for clients.
"""
from typing import Optional


class PaymentError(Exception):
    """Base class for all payment engine errors."""

    code = "PAYMENT_ERROR"
    http_status = 500
    default_message = "Payment processing error"

    def __init__(self, message: Optional[str] = None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)


class InvalidRequest(PaymentError):
    code = "INVALID_REQUEST"
    http_status = 400
    default_message = "Invalid request"


class GatewayUnavailable(PaymentError):
    """Gateway unreachable or rejected the call. Safe to retry with a new order code."""

    code = "GATEWAY_UNAVAILABLE"
    http_status = 503
    default_message = "Payment gateway unavailable"


class GatewayTimeout(GatewayUnavailable):
    code = "GATEWAY_TIMEOUT"
    default_message = "Payment gateway timed out"


class LinkNotFound(PaymentError):
    """The gateway has no payment link for the order code."""

    code = "LINK_NOT_FOUND"
    http_status = 404
    default_message = "Payment link not found at gateway"


class OrderCodeCollision(PaymentError):
    code = "ORDER_CODE_COLLISION"
    http_status = 409
    default_message = "Order code already exists"


class SignatureInvalid(PaymentError):
    code = "SIGNATURE_INVALID"
    http_status = 400
    default_message = "Invalid signature"


class UnknownOrder(PaymentError):
    code = "UNKNOWN_ORDER"
    http_status = 404
    default_message = "Unknown order"


class AmountMismatch(PaymentError):
    """Gateway reported a different amount than the ledger holds."""

    code = "AMOUNT_MISMATCH"
    http_status = 409
    default_message = "Amount does not match transaction"


class ConflictingTerminalState(PaymentError):
    code = "CONFLICTING_TERMINAL_STATE"
    http_status = 409
    default_message = "Transaction already closed with a different status"
