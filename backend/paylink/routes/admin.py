"""
Admin Routes — Payment ledger listing, event trails and manual reconciliation.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from paylink.database import get_db, get_session_factory
from paylink.dependencies import get_poller
from paylink.errors import InvalidRequest, UnknownOrder
from paylink.models.event import PaymentEvent
from paylink.models.transaction import TransactionStatus
from paylink.schemas.schemas import (
    TransactionListResponse, TransactionDetailResponse, TransactionSummary,
    PaymentEventEntry, SweepResponse, PaymentSummaryResponse,
)
from paylink.services.event_service import PaymentEventService
from paylink.services.ledger import TransactionLedger
from paylink.services.poller import ReconciliationPoller
from paylink.services.state_machine import Outcome

router = APIRouter(prefix="/api/admin/payments", tags=["Admin"])


@router.get("", response_model=TransactionListResponse)
def list_payments(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100, alias="pageSize"),
    status: Optional[str] = None,
    gateway: Optional[str] = None,
    search: Optional[str] = None,
    user_id: Optional[int] = Query(None, alias="userId"),
    db: Session = Depends(get_db),
):
    """List transactions, newest first, with optional filters."""
    if status and status not in {s.value for s in TransactionStatus}:
        raise InvalidRequest(f"Unknown status filter: {status}")

    total, items = TransactionLedger.search(
        db, status=status, gateway=gateway, search=search, user_id=user_id,
        page=page, page_size=page_size,
    )
    return TransactionListResponse(
        total=total,
        page=page,
        page_size=page_size,
        items=[TransactionSummary.model_validate(t) for t in items],
    )


@router.get("/summary", response_model=PaymentSummaryResponse)
def payment_summary(db: Session = Depends(get_db)):
    """Counts per status plus records and events flagged for manual review."""
    by_status = TransactionLedger.status_counts(db)
    conflicts = db.query(func.count(PaymentEvent.id)).filter(
        PaymentEvent.outcome == Outcome.CONFLICT
    ).scalar() or 0
    return PaymentSummaryResponse(
        total=sum(by_status.values()),
        by_status=by_status,
        anomalies=TransactionLedger.anomaly_count(db) + conflicts,
    )


@router.post("/reconcile", response_model=SweepResponse)
def run_reconciliation(
    poller: ReconciliationPoller = Depends(get_poller),
    session_factory=Depends(get_session_factory),
):
    """Run one reconciliation sweep over stale Pending transactions now."""
    summary = poller.run_once(session_factory)
    return SweepResponse(checked=summary.checked, errors=summary.errors, outcomes=summary.outcomes)


@router.get("/{order_code}", response_model=TransactionDetailResponse)
def get_payment(order_code: int, db: Session = Depends(get_db)):
    """One transaction with its full event trail."""
    record = TransactionLedger.get(db, order_code)
    if not record:
        raise UnknownOrder(f"No transaction for order code {order_code}", order_code=order_code)
    events = PaymentEventService.get_trail(db, order_code)
    return TransactionDetailResponse(
        transaction=TransactionSummary.model_validate(record),
        events=[PaymentEventEntry.model_validate(e) for e in events],
    )


@router.get("/{order_code}/events/verify")
def verify_event_chain(order_code: int, db: Session = Depends(get_db)):
    """Verify the integrity of the event hash chain for an order."""
    return PaymentEventService.verify_chain(db, order_code)
