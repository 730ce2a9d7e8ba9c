"""
Payment Transaction Model — Local ledger of gateway payment links.
One row per order code; the status column is the single source of truth.
"""
import enum
from datetime import datetime
from sqlalchemy import Column, String, Integer, BigInteger, DateTime, Text

from paylink.database import Base


class TransactionStatus(str, enum.Enum):
    PENDING = "Pending"
    PAID = "Paid"
    CANCELLED = "Cancelled"
    EXPIRED = "Expired"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


TERMINAL_STATUSES = frozenset(s for s in TransactionStatus if s.is_terminal)


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_code = Column(BigInteger, unique=True, nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)

    amount = Column(Integer, nullable=False)          # Minor currency units
    currency = Column(String(10), nullable=False, default="VND")
    gateway = Column(String(50), nullable=False)      # payos

    status = Column(String(16), nullable=False, default=TransactionStatus.PENDING.value, index=True)
    # Statuses: Pending → Paid | Cancelled | Expired | Failed

    description = Column(String(64))                  # As sent to the gateway (truncated)
    original_description = Column(Text)               # As requested by the caller

    payment_link_id = Column(String(100))
    checkout_url = Column(Text)
    qr_code_data = Column(Text)

    payload = Column(Text)                            # Latest raw gateway event
    anomaly = Column(Text, nullable=True)             # Mismatch / conflict annotation

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    paid_at = Column(DateTime, nullable=True)

    @property
    def current_status(self) -> TransactionStatus:
        return TransactionStatus(self.status)
