"""
Transaction Ledger — Durable store of payment transactions keyed by order code.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_, update, String, cast
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from paylink.errors import OrderCodeCollision
from paylink.models.transaction import PaymentTransaction, TransactionStatus


class TransactionLedger:
    """Reads and writes PaymentTransaction rows. Status changes go through guarded_update only."""

    @staticmethod
    def create_pending(
        db: Session,
        *,
        order_code: int,
        user_id: int,
        amount: int,
        currency: str,
        gateway: str,
        description: str,
        original_description: str,
        payment_link_id: Optional[str] = None,
        checkout_url: Optional[str] = None,
        qr_code_data: Optional[str] = None,
        payload: Optional[str] = None,
    ) -> PaymentTransaction:
        """Insert a Pending row. Raises OrderCodeCollision if the code is taken."""
        now = datetime.utcnow()
        record = PaymentTransaction(
            order_code=order_code,
            user_id=user_id,
            amount=amount,
            currency=currency,
            gateway=gateway,
            status=TransactionStatus.PENDING.value,
            description=description,
            original_description=original_description,
            payment_link_id=payment_link_id,
            checkout_url=checkout_url,
            qr_code_data=qr_code_data,
            payload=payload,
            created_at=now,
            updated_at=now,
        )
        db.add(record)
        try:
            db.flush()
        except IntegrityError as exc:
            db.rollback()
            raise OrderCodeCollision(order_code=order_code) from exc
        return record

    @staticmethod
    def get(db: Session, order_code: int) -> Optional[PaymentTransaction]:
        return (
            db.query(PaymentTransaction)
            .filter(PaymentTransaction.order_code == order_code)
            .first()
        )

    @staticmethod
    def guarded_update(
        db: Session,
        order_code: int,
        target: TransactionStatus,
        raw_payload: str,
        anomaly: Optional[str] = None,
        expected: TransactionStatus = TransactionStatus.PENDING,
    ) -> bool:
        """Compare-and-set the status. True only if the row was still ``expected``.

        Does not commit; the caller commits together with the event entry.
        """
        now = datetime.utcnow()
        values = {
            "status": target.value,
            "payload": raw_payload,
            "updated_at": now,
        }
        if anomaly:
            values["anomaly"] = anomaly
        if target is TransactionStatus.PAID:
            values["paid_at"] = now

        result = db.execute(
            update(PaymentTransaction)
            .where(
                PaymentTransaction.order_code == order_code,
                PaymentTransaction.status == expected.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def stale_pending(db: Session, older_than: datetime, limit: int = 50) -> list[int]:
        """Order codes of Pending rows created before ``older_than``, oldest first."""
        rows = (
            db.query(PaymentTransaction.order_code)
            .filter(
                PaymentTransaction.status == TransactionStatus.PENDING.value,
                PaymentTransaction.created_at < older_than,
            )
            .order_by(PaymentTransaction.created_at.asc())
            .limit(limit)
            .all()
        )
        return [r.order_code for r in rows]

    @staticmethod
    def search(
        db: Session,
        status: Optional[str] = None,
        gateway: Optional[str] = None,
        search: Optional[str] = None,
        user_id: Optional[int] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> tuple[int, list[PaymentTransaction]]:
        """Filtered, newest-first page of transactions plus the total match count."""
        query = db.query(PaymentTransaction)
        if status:
            query = query.filter(PaymentTransaction.status == status)
        if gateway:
            query = query.filter(PaymentTransaction.gateway == gateway)
        if user_id is not None:
            query = query.filter(PaymentTransaction.user_id == user_id)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    cast(PaymentTransaction.order_code, String).like(pattern),
                    PaymentTransaction.original_description.ilike(pattern),
                )
            )

        total = query.count()
        items = (
            query.order_by(PaymentTransaction.created_at.desc(), PaymentTransaction.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return total, items

    @staticmethod
    def status_counts(db: Session) -> dict[str, int]:
        rows = (
            db.query(PaymentTransaction.status, func.count(PaymentTransaction.id))
            .group_by(PaymentTransaction.status)
            .all()
        )
        counts = {s.value: 0 for s in TransactionStatus}
        counts.update({status: count for status, count in rows})
        return counts

    @staticmethod
    def anomaly_count(db: Session) -> int:
        return (
            db.query(func.count(PaymentTransaction.id))
            .filter(PaymentTransaction.anomaly.isnot(None))
            .scalar()
            or 0
        )
