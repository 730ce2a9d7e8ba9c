"""
Payment Event Model — Append-only, hash-chained trail of every gateway
interaction (link creation, webhook delivery, status poll, cancellation).
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, BigInteger, DateTime, JSON, Text

from paylink.database import Base


class PaymentEvent(Base):
    __tablename__ = "payment_events"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    # Not a foreign key: webhooks for unknown orders are recorded too
    order_code = Column(BigInteger, nullable=False, index=True)

    source = Column(String(16), nullable=False)    # create | webhook | poll | cancel
    action = Column(String(50), nullable=False)
    # Actions: LINK_CREATED, WEBHOOK_RECEIVED, STATUS_POLLED, LINK_CANCELLED

    outcome = Column(String(24), nullable=False)
    # Outcomes: applied | duplicate | conflict | mismatch | unknown_order | noop

    proposed_status = Column(String(16))
    raw_payload = Column(Text)

    payload_hash = Column(String(64))       # Chain hash of this entry
    previous_hash = Column(String(64))      # Hash of the previous entry for the order

    event_metadata = Column(JSON, default=dict)
    timestamp = Column(DateTime, default=datetime.utcnow)
