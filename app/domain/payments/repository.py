"""Payment repository - Database operations for session payments"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ...models import Payment, PaymentStatus, TherapySession


class PaymentRepository:
    """Repository for payment database operations"""

    @staticmethod
    def get_payment(db: Session, owner_id: int, payment_id: int) -> Optional[Payment]:
        return (
            db.query(Payment)
            .options(joinedload(Payment.session))
            .filter(Payment.id == payment_id, Payment.owner_id == owner_id)
            .first()
        )

    @staticmethod
    def _filtered(
        query,
        owner_id: int,
        patient_id: Optional[int],
        start_date: Optional[datetime],
        end_date: Optional[datetime],
    ):
        query = query.join(TherapySession, Payment.session_id == TherapySession.id).filter(
            Payment.owner_id == owner_id
        )

        if patient_id:
            query = query.filter(TherapySession.patient_id == patient_id)

        if start_date:
            query = query.filter(TherapySession.date_time >= start_date)

        if end_date:
            query = query.filter(TherapySession.date_time <= end_date)

        return query

    @staticmethod
    def list_payments(
        db: Session,
        owner_id: int,
        status: Optional[PaymentStatus] = None,
        patient_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> list[Payment]:
        """Payments of an owner, filtered by status, patient and session date"""
        query = PaymentRepository._filtered(
            db.query(Payment), owner_id, patient_id, start_date, end_date
        )

        if status:
            query = query.filter(Payment.status == status)

        return query.order_by(TherapySession.date_time.desc()).all()

    @staticmethod
    def totals_by_status(
        db: Session,
        owner_id: int,
        patient_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> dict[PaymentStatus, tuple[int, float]]:
        """{status: (count, amount)} over the owner's payments"""
        query = PaymentRepository._filtered(
            db.query(
                Payment.status,
                func.count(Payment.id),
                func.coalesce(func.sum(Payment.amount), 0),
            ),
            owner_id,
            patient_id,
            start_date,
            end_date,
        )
        rows = query.group_by(Payment.status).all()
        return {status: (count, float(amount)) for status, count, amount in rows}
