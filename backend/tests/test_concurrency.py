"""Webhook and poller racing on one order code."""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from conftest import add_pending
from paylink.database import init_db
from paylink.models.event import PaymentEvent
from paylink.models.transaction import PaymentTransaction, TransactionStatus
from paylink.services import transition_service
from paylink.services.ledger import TransactionLedger
from paylink.services.state_machine import Evidence, Outcome


@pytest.fixture()
def file_sessions(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False},
    )
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


def test_losing_path_sees_winner_and_records_conflict(file_sessions, transitions, monkeypatch):
    setup = file_sessions()
    add_pending(setup, 123)
    setup.close()

    webhook_db = file_sessions()
    poller_db = file_sessions()
    real_apply = transition_service.apply_outcome
    calls = []

    def apply_then_let_poller_win(current, amount, proposed, evidence):
        decision = real_apply(current, amount, proposed, evidence)
        calls.append(current)
        if len(calls) == 1:
            # Webhook has read Pending; the poller closes the record before it writes
            assert TransactionLedger.guarded_update(poller_db, 123, TransactionStatus.EXPIRED, "{}")
            poller_db.commit()
        return decision

    monkeypatch.setattr(transition_service, "apply_outcome", apply_then_let_poller_win)

    result = transitions.settle(
        webhook_db, 123, TransactionStatus.PAID,
        Evidence(source="webhook", raw_payload='{"status": "PAID"}', amount=100000),
        "WEBHOOK_RECEIVED",
    )

    assert calls == [TransactionStatus.PENDING, TransactionStatus.EXPIRED]
    assert result.outcome == Outcome.CONFLICT
    assert result.status is TransactionStatus.EXPIRED

    check = file_sessions()
    record = check.query(PaymentTransaction).filter_by(order_code=123).one()
    assert record.status == "Expired"
    assert record.paid_at is None
    event = check.query(PaymentEvent).filter_by(order_code=123).one()
    assert event.outcome == Outcome.CONFLICT
    for session in (webhook_db, poller_db, check):
        session.close()


def test_guarded_update_applies_at_most_once(file_sessions):
    setup = file_sessions()
    add_pending(setup, 123)
    setup.close()

    first, second = file_sessions(), file_sessions()
    won_first = TransactionLedger.guarded_update(first, 123, TransactionStatus.PAID, "{}")
    first.commit()
    won_second = TransactionLedger.guarded_update(second, 123, TransactionStatus.CANCELLED, "{}")
    second.commit()

    assert (won_first, won_second) == (True, False)
    check = file_sessions()
    assert check.query(PaymentTransaction).filter_by(order_code=123).one().status == "Paid"
    for session in (first, second, check):
        session.close()
