"""
Payment Event Service — Append-only, hash-chained trail of gateway events.
"""
from datetime import datetime
from typing import Optional, Dict

from sqlalchemy.orm import Session

from paylink.models.event import PaymentEvent
from paylink.utils.hashing import generate_chain_hash


class PaymentEventService:
    """Creates tamper-evident payment event entries with hash chaining."""

    @staticmethod
    def record(
        db: Session,
        order_code: int,
        source: str,
        action: str,
        outcome: str,
        raw_payload: str = "",
        proposed_status: Optional[str] = None,
        metadata: Optional[Dict] = None,
        commit: bool = True,
    ) -> PaymentEvent:
        """Append an event for an order code.

        Args:
            db: Database session.
            order_code: Order the event belongs to (may not exist in the ledger).
            source: create | webhook | poll | cancel.
            action: Action identifier (e.g. WEBHOOK_RECEIVED).
            outcome: Result of applying the event (applied, duplicate, ...).
            raw_payload: Gateway body exactly as received.
            proposed_status: Status the gateway asked for, if any.
            metadata: Additional metadata to store.
            commit: Commit immediately; pass False to join the caller's transaction.

        Returns:
            The created PaymentEvent entry.
        """
        last_entry = (
            db.query(PaymentEvent)
            .filter(PaymentEvent.order_code == order_code)
            .order_by(PaymentEvent.id.desc())
            .first()
        )
        previous_hash = last_entry.payload_hash if last_entry else ""

        chain_hash = generate_chain_hash(
            {
                "order_code": order_code,
                "source": source,
                "action": action,
                "outcome": outcome,
                "proposed_status": proposed_status,
                "raw_payload": raw_payload or "",
            },
            previous_hash,
        )

        entry = PaymentEvent(
            order_code=order_code,
            source=source,
            action=action,
            outcome=outcome,
            proposed_status=proposed_status,
            raw_payload=raw_payload or "",
            payload_hash=chain_hash,
            previous_hash=previous_hash,
            event_metadata=metadata or {},
            timestamp=datetime.utcnow(),
        )

        db.add(entry)
        if commit:
            db.commit()
            db.refresh(entry)
        else:
            db.flush()

        return entry

    @staticmethod
    def get_trail(db: Session, order_code: int) -> list[PaymentEvent]:
        """Get the full event trail for an order, oldest first."""
        return (
            db.query(PaymentEvent)
            .filter(PaymentEvent.order_code == order_code)
            .order_by(PaymentEvent.id.asc())
            .all()
        )

    @staticmethod
    def verify_chain(db: Session, order_code: int) -> dict:
        """Verify the integrity of the event chain for an order.

        Recomputes every chain hash from the stored fields, so both a broken
        link and an edited entry are detected.

        Returns:
            dict with 'valid' (bool), 'total_entries', and 'broken_at' (if invalid).
        """
        entries = PaymentEventService.get_trail(db, order_code)

        if not entries:
            return {"valid": True, "total_entries": 0, "broken_at": None}

        for i, entry in enumerate(entries):
            expected_prev = entries[i - 1].payload_hash if i > 0 else ""
            expected_hash = generate_chain_hash(
                {
                    "order_code": entry.order_code,
                    "source": entry.source,
                    "action": entry.action,
                    "outcome": entry.outcome,
                    "proposed_status": entry.proposed_status,
                    "raw_payload": entry.raw_payload or "",
                },
                expected_prev,
            )
            if entry.previous_hash != expected_prev or entry.payload_hash != expected_hash:
                return {
                    "valid": False,
                    "total_entries": len(entries),
                    "broken_at": entry.id,
                    "message": f"Chain broken at entry {entry.id} ({entry.action})",
                }

        return {"valid": True, "total_entries": len(entries), "broken_at": None}
