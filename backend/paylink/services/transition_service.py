"""
Transition Service — Executes state machine decisions against the ledger.

Webhook ingestion, the reconciliation poller and link cancellation all settle
gateway observations through ``settle``; which path sees an outcome first
does not change the result.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from paylink.errors import UnknownOrder
from paylink.log import get_logger
from paylink.models.transaction import TransactionStatus
from paylink.services.event_service import PaymentEventService
from paylink.services.ledger import TransactionLedger
from paylink.services.state_machine import Decision, Evidence, Outcome, apply_outcome


@dataclass(frozen=True)
class SettleResult:
    order_code: int
    outcome: str
    status: TransactionStatus
    anomaly: Optional[str] = None


class TransitionService:

    def __init__(self):
        self._log = get_logger("transition")

    def settle(
        self,
        db: Session,
        order_code: int,
        proposed: Optional[TransactionStatus],
        evidence: Evidence,
        action: str,
    ) -> SettleResult:
        """Apply one gateway observation to one record.

        Raises UnknownOrder (after recording the event) when the ledger has
        no such order; webhooks never create records.
        """
        proposed_value = proposed.value if proposed else None
        log = self._log.bind(order_code=order_code, source=evidence.source, proposed=proposed_value)

        record = TransactionLedger.get(db, order_code)
        if record is None:
            log.warning("unknown_order")
            PaymentEventService.record(
                db, order_code, evidence.source, action, Outcome.UNKNOWN_ORDER,
                raw_payload=evidence.raw_payload, proposed_status=proposed_value,
                metadata=evidence.metadata,
            )
            raise UnknownOrder(f"No transaction for order code {order_code}", order_code=order_code)

        decision = apply_outcome(record.current_status, record.amount, proposed, evidence)

        if decision.writes:
            won = TransactionLedger.guarded_update(
                db, order_code, decision.target, evidence.raw_payload,
                anomaly=str(decision.anomaly) if decision.anomaly else None,
            )
            if not won:
                # Another path closed the record between our read and write
                db.rollback()
                db.expire_all()
                record = TransactionLedger.get(db, order_code)
                decision = apply_outcome(record.current_status, record.amount, proposed, evidence)
                log.info("guarded_update_lost", current=record.status)

        self._log_decision(log, decision)

        metadata = dict(evidence.metadata)
        if decision.anomaly is not None:
            metadata["anomaly"] = decision.anomaly.code
            metadata["detail"] = decision.anomaly.message
        PaymentEventService.record(
            db, order_code, evidence.source, action, decision.outcome,
            raw_payload=evidence.raw_payload, proposed_status=proposed_value,
            metadata=metadata, commit=False,
        )
        db.commit()

        final_status = decision.target if decision.writes else TransactionLedger.get(db, order_code).current_status
        return SettleResult(
            order_code=order_code,
            outcome=decision.outcome,
            status=final_status,
            anomaly=decision.anomaly.code if decision.anomaly else None,
        )

    @staticmethod
    def _log_decision(log, decision: Decision) -> None:
        if decision.outcome == Outcome.APPLIED:
            log.info("transition_applied", target=decision.target.value)
        elif decision.outcome == Outcome.MISMATCH:
            log.warning("amount_mismatch", **decision.anomaly.context)
        elif decision.outcome == Outcome.CONFLICT:
            log.warning("terminal_state_conflict", **decision.anomaly.context)
        elif decision.outcome == Outcome.DUPLICATE:
            log.info("duplicate_delivery")
        else:
            log.info("no_transition")
