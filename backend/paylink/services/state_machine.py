"""
Transaction State Machine — the single decision function shared by webhook
ingestion, the reconciliation poller and link cancellation.

Pending → Paid | Cancelled | Expired | Failed. Terminal states never change.
"""
from dataclasses import dataclass, field
from typing import Optional

from paylink.errors import AmountMismatch, ConflictingTerminalState, InvalidRequest, PaymentError
from paylink.models.transaction import TransactionStatus

# Gateway status strings → local target status. None means "not final yet".
GATEWAY_STATUS_MAP = {
    "PAID": TransactionStatus.PAID,
    "CANCELLED": TransactionStatus.CANCELLED,
    "CANCELED": TransactionStatus.CANCELLED,
    "EXPIRED": TransactionStatus.EXPIRED,
    "FAILED": TransactionStatus.FAILED,
    "PENDING": None,
    "PROCESSING": None,
    "UNDERPAID": None,
}


class Outcome:
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    CONFLICT = "conflict"
    MISMATCH = "mismatch"
    NOOP = "noop"
    UNKNOWN_ORDER = "unknown_order"


@dataclass(frozen=True)
class Evidence:
    """What the gateway told us, from whichever path observed it."""

    source: str                     # webhook | poll | cancel
    raw_payload: str = ""
    amount: Optional[int] = None    # Amount echoed by the gateway, if any
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Decision:
    outcome: str
    target: Optional[TransactionStatus]     # Status to write; None means no write
    anomaly: Optional[PaymentError] = None

    @property
    def writes(self) -> bool:
        return self.target is not None


def target_status(gateway_status: str | None) -> Optional[TransactionStatus]:
    """Map a gateway status string to the local target status."""
    key = (gateway_status or "").strip().upper()
    if key not in GATEWAY_STATUS_MAP:
        raise InvalidRequest(f"Unrecognized gateway status: {gateway_status!r}")
    return GATEWAY_STATUS_MAP[key]


def apply_outcome(
    current: TransactionStatus,
    expected_amount: int,
    proposed: Optional[TransactionStatus],
    evidence: Evidence,
) -> Decision:
    """Decide what a gateway observation does to a record.

    Pure: reads nothing, writes nothing. The caller executes ``target`` as a
    conditional update guarded on ``current`` still being Pending.
    """
    if proposed is None or proposed is TransactionStatus.PENDING:
        return Decision(Outcome.NOOP, None)

    if current.is_terminal:
        if current is proposed:
            return Decision(Outcome.DUPLICATE, None)
        return Decision(
            Outcome.CONFLICT,
            None,
            ConflictingTerminalState(
                f"Gateway reported {proposed.value} but record is already {current.value}",
                current=current.value,
                proposed=proposed.value,
            ),
        )

    if proposed is TransactionStatus.PAID and evidence.amount != expected_amount:
        return Decision(
            Outcome.MISMATCH,
            TransactionStatus.FAILED,
            AmountMismatch(
                f"Gateway amount {evidence.amount} does not match expected {expected_amount}",
                expected=expected_amount,
                received=evidence.amount,
            ),
        )

    return Decision(Outcome.APPLIED, proposed)
