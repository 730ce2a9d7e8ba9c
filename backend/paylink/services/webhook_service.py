"""
Webhook Service — Authenticates gateway callbacks and settles them against the ledger.
"""
import json
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from paylink.errors import InvalidRequest, SignatureInvalid
from paylink.log import get_logger
from paylink.services.state_machine import Evidence, target_status
from paylink.services.transition_service import SettleResult, TransitionService
from paylink.utils.hashing import signature_matches

# PayOS payment webhooks carry a result code instead of a status; "00" means paid
SUCCESS_CODE = "00"


@dataclass(frozen=True)
class WebhookEvent:
    order_code: int
    status: str
    amount: Optional[int]
    raw: str


class WebhookVerifier:
    """HMAC-SHA256 over the raw request body, keyed with the gateway checksum key."""

    def __init__(self, secret: str):
        self._secret = secret
        self._log = get_logger("webhook_verifier")

    def verify(self, raw_body: bytes, signature: Optional[str]) -> None:
        if not signature_matches(self._secret, raw_body, signature):
            self._log.warning(
                "webhook_signature_invalid",
                has_signature=bool(signature),
                body_length=len(raw_body),
            )
            raise SignatureInvalid()

    @staticmethod
    def parse(raw_body: bytes) -> WebhookEvent:
        """Extract order code, status and amount from a verified body."""
        try:
            text = raw_body.decode("utf-8")
            body = json.loads(text)
        except (UnicodeDecodeError, ValueError) as exc:
            raise InvalidRequest("Webhook body is not valid UTF-8 JSON") from exc
        if not isinstance(body, dict):
            raise InvalidRequest("Webhook body must be a JSON object")

        data = body.get("data") if isinstance(body.get("data"), dict) else body

        try:
            order_code = int(data["orderCode"])
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidRequest("Webhook is missing orderCode") from exc

        status = data.get("status")
        if not status:
            code = str(data.get("code", body.get("code", "")))
            status = "PAID" if code == SUCCESS_CODE else "FAILED"

        amount = data.get("amount")
        if amount is not None:
            try:
                amount = int(amount)
            except (TypeError, ValueError) as exc:
                raise InvalidRequest("Webhook amount is not an integer") from exc

        return WebhookEvent(
            order_code=order_code,
            status=str(status),
            amount=amount,
            raw=text,
        )


class WebhookIngestion:

    def __init__(self, verifier: WebhookVerifier, transitions: TransitionService):
        self.verifier = verifier
        self.transitions = transitions

    def handle(self, db: Session, raw_body: bytes, signature: Optional[str]) -> SettleResult:
        # Authenticate the exact bytes received, before any parsing
        self.verifier.verify(raw_body, signature)
        event = self.verifier.parse(raw_body)
        proposed = target_status(event.status)
        evidence = Evidence(source="webhook", raw_payload=event.raw, amount=event.amount)
        return self.transitions.settle(db, event.order_code, proposed, evidence, "WEBHOOK_RECEIVED")
