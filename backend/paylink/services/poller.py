"""
Reconciliation Poller — Asks the gateway about Pending records whose webhook
may have been lost, and settles whatever it reports.
"""
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from paylink.errors import GatewayUnavailable, InvalidRequest, LinkNotFound, PaymentError, UnknownOrder
from paylink.log import get_logger
from paylink.models.transaction import TransactionStatus
from paylink.services.event_service import PaymentEventService
from paylink.services.gateway import GatewayClient
from paylink.services.ledger import TransactionLedger
from paylink.services.state_machine import Evidence, Outcome, target_status
from paylink.services.transition_service import TransitionService

RETRY_LATER = "retry_later"


@dataclass(frozen=True)
class ReconcileResult:
    order_code: int
    outcome: str
    status: TransactionStatus
    gateway_status: Optional[str] = None


@dataclass
class SweepSummary:
    checked: int = 0
    outcomes: dict = field(default_factory=dict)
    errors: int = 0

    def count(self, outcome: str) -> None:
        self.outcomes[outcome] = self.outcomes.get(outcome, 0) + 1


class ReconciliationPoller:

    def __init__(
        self,
        gateway: GatewayClient,
        transitions: TransitionService,
        stale_after_seconds: int = 900,
        batch_size: int = 50,
    ):
        self.gateway = gateway
        self.transitions = transitions
        self.stale_after = timedelta(seconds=stale_after_seconds)
        self.batch_size = batch_size
        self._log = get_logger("reconciliation_poller")

    def reconcile(self, db: Session, order_code: int) -> ReconcileResult:
        """Query the gateway once for one order and settle a terminal answer.

        A timeout or unreachable gateway leaves the record Pending; only a
        status the gateway actually reports may close it.
        """
        record = TransactionLedger.get(db, order_code)
        if record is None:
            raise UnknownOrder(f"No transaction for order code {order_code}", order_code=order_code)
        if record.current_status.is_terminal:
            return ReconcileResult(order_code, Outcome.NOOP, record.current_status)
        # No transaction open across the gateway call
        db.rollback()

        log = self._log.bind(order_code=order_code)
        try:
            info = self.gateway.query_status(order_code)
        except LinkNotFound:
            log.info("link_not_found")
            evidence = Evidence(
                source="poll",
                raw_payload=json.dumps({"orderCode": order_code, "status": "NOT_FOUND"}),
            )
            result = self.transitions.settle(
                db, order_code, TransactionStatus.EXPIRED, evidence, "STATUS_POLLED"
            )
            return ReconcileResult(order_code, result.outcome, result.status, "NOT_FOUND")
        except GatewayUnavailable as exc:
            log.info("poll_retry_later", error=exc.code)
            return ReconcileResult(order_code, RETRY_LATER, TransactionStatus.PENDING)

        try:
            proposed = target_status(info.status)
        except InvalidRequest:
            log.warning("unrecognized_gateway_status", gateway_status=info.status)
            PaymentEventService.record(
                db, order_code, "poll", "STATUS_POLLED", Outcome.NOOP,
                raw_payload=info.raw, metadata={"gateway_status": info.status},
            )
            return ReconcileResult(order_code, Outcome.NOOP, TransactionStatus.PENDING, info.status)

        evidence = Evidence(
            source="poll",
            raw_payload=info.raw,
            amount=info.settled_amount,
            metadata={"gateway_status": info.status},
        )
        result = self.transitions.settle(db, order_code, proposed, evidence, "STATUS_POLLED")
        return ReconcileResult(order_code, result.outcome, result.status, info.status)

    def run_once(self, session_factory: Callable[[], Session], now: Optional[datetime] = None) -> SweepSummary:
        """Reconcile every stale Pending record once. One bad record never stops the sweep."""
        cutoff = (now or datetime.utcnow()) - self.stale_after
        summary = SweepSummary()

        db = session_factory()
        try:
            candidates = TransactionLedger.stale_pending(db, cutoff, self.batch_size)
            db.rollback()
            for order_code in candidates:
                summary.checked += 1
                try:
                    result = self.reconcile(db, order_code)
                    summary.count(result.outcome)
                except (PaymentError, SQLAlchemyError) as exc:
                    db.rollback()
                    summary.errors += 1
                    self._log.warning("reconcile_failed", order_code=order_code, error=getattr(exc, "code", type(exc).__name__))
                except Exception:
                    db.rollback()
                    summary.errors += 1
                    self._log.exception("reconcile_crashed", order_code=order_code)
        finally:
            db.close()

        self._log.info("sweep_finished", checked=summary.checked, errors=summary.errors, **summary.outcomes)
        return summary
