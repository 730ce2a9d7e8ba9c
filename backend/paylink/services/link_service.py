"""
Payment Link Service — Creates hosted payment links and their Pending ledger rows,
and cancels links that are still open.
"""
import json
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from paylink.errors import ConflictingTerminalState, InvalidRequest, OrderCodeCollision, UnknownOrder
from paylink.log import get_logger
from paylink.models.transaction import PaymentTransaction, TransactionStatus
from paylink.services.event_service import PaymentEventService
from paylink.services.gateway import GatewayClient
from paylink.services.ledger import TransactionLedger
from paylink.services.order_code import OrderCodeGenerator
from paylink.services.state_machine import Evidence, Outcome
from paylink.services.transition_service import SettleResult, TransitionService
from paylink.utils.validators import truncate_description, validate_amount, validate_url


@dataclass(frozen=True)
class CreatedLink:
    order_code: int
    payment_link_url: str
    qr_code_data: str
    amount: int
    description: str
    status: str


class PaymentLinkService:
    """Orchestrates order code → gateway link → Pending row.

    The gateway call finishes before anything is written, so a failed or
    timed-out creation never leaves a Pending row behind. A crash between
    gateway success and commit can orphan a hosted link; the order code is
    logged before the call so it can be recovered by hand.
    """

    def __init__(
        self,
        gateway: GatewayClient,
        order_codes: OrderCodeGenerator,
        transitions: TransitionService,
        currency: str = "VND",
        description_max_length: int = 25,
        max_attempts: int = 3,
    ):
        self.gateway = gateway
        self.order_codes = order_codes
        self.transitions = transitions
        self.currency = currency
        self.description_max_length = description_max_length
        self.max_attempts = max(1, max_attempts)
        self._log = get_logger("link_service")

    def create(
        self,
        db: Session,
        user_id: int,
        amount: int,
        description: str,
        return_url: str,
        cancel_url: str,
    ) -> CreatedLink:
        if not validate_amount(amount):
            raise InvalidRequest("Amount must be a positive integer")
        if not validate_url(return_url):
            raise InvalidRequest("returnUrl must be an absolute http(s) URL")
        if not validate_url(cancel_url):
            raise InvalidRequest("cancelUrl must be an absolute http(s) URL")

        original = description or ""
        short = truncate_description(original, self.description_max_length)
        if short != original:
            self._log.info("description_truncated", original_length=len(original), length=len(short))

        for attempt in range(1, self.max_attempts + 1):
            order_code = self.order_codes.next()
            self._log.info("order_code_generated", order_code=order_code, user_id=user_id, attempt=attempt)

            link = self.gateway.create_link(order_code, amount, short, cancel_url, return_url)

            try:
                record = TransactionLedger.create_pending(
                    db,
                    order_code=order_code,
                    user_id=user_id,
                    amount=amount,
                    currency=self.currency,
                    gateway=self.gateway.name,
                    description=short,
                    original_description=original,
                    payment_link_id=link.payment_link_id,
                    checkout_url=link.checkout_url,
                    qr_code_data=link.qr_code,
                    payload=link.raw,
                )
            except OrderCodeCollision:
                self._log.warning("order_code_collision", order_code=order_code, attempt=attempt)
                continue

            PaymentEventService.record(
                db, order_code, "create", "LINK_CREATED", Outcome.APPLIED,
                raw_payload=link.raw, proposed_status=TransactionStatus.PENDING.value,
                metadata={"user_id": user_id, "amount": amount}, commit=False,
            )
            db.commit()
            self._log.info("link_created", order_code=order_code, amount=amount)
            return self._created(record, link.checkout_url, link.qr_code)

        raise OrderCodeCollision(f"No free order code after {self.max_attempts} attempts")

    def cancel(self, db: Session, order_code: int, reason: Optional[str] = None) -> SettleResult:
        """Cancel an open link at the gateway, then settle the record as Cancelled."""
        record = TransactionLedger.get(db, order_code)
        if record is None:
            raise UnknownOrder(f"No transaction for order code {order_code}", order_code=order_code)
        if record.current_status.is_terminal:
            if record.current_status is TransactionStatus.CANCELLED:
                return SettleResult(order_code, Outcome.DUPLICATE, TransactionStatus.CANCELLED)
            raise ConflictingTerminalState(
                f"Transaction is already {record.status}",
                current=record.status,
                proposed=TransactionStatus.CANCELLED.value,
            )
        # Release the read before the network call
        db.rollback()

        info = self.gateway.cancel_link(order_code, reason)
        evidence = Evidence(
            source="cancel",
            raw_payload=info.raw or json.dumps({"orderCode": order_code, "status": info.status}),
            amount=info.settled_amount,
            metadata={"reason": reason} if reason else {},
        )
        return self.transitions.settle(
            db, order_code, TransactionStatus.CANCELLED, evidence, "LINK_CANCELLED"
        )

    @staticmethod
    def _created(record: PaymentTransaction, url: str, qr: str) -> CreatedLink:
        return CreatedLink(
            order_code=record.order_code,
            payment_link_url=url,
            qr_code_data=qr,
            amount=record.amount,
            description=record.description,
            status=record.status,
        )
