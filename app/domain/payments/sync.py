"""
Payment record synchronization.

Keeps the single Payment row of a session in step with the session
lifecycle. Only the scheduling and package services call this; it never
commits on its own.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Payment, PaymentStatus, TherapySession
from .schemas import PaymentDetails

logger = logging.getLogger(__name__)


def apply_payment_status(payment: Payment, status: PaymentStatus) -> Payment:
    """
    Set a payment status keeping paid_at consistent.

    Moving to PAID stamps paid_at unless it is already set; any other status
    clears it.
    """
    payment.status = status
    if status == PaymentStatus.PAID:
        if payment.paid_at is None:
            payment.paid_at = datetime.now()
    else:
        payment.paid_at = None
    return payment


class PaymentSynchronizer:
    """Creates and cancels session payments as a side effect of lifecycle changes"""

    def __init__(self, db: Session):
        self.db = db

    def create_for_session(
        self,
        session: TherapySession,
        amount: float,
        paid: bool = False,
        details: Optional[PaymentDetails] = None,
    ) -> Optional[Payment]:
        """Insert the payment of a freshly created session (courtesy sessions get none)"""
        if session.is_courtesy:
            return None

        payment = Payment(
            owner_id=session.owner_id,
            session_id=session.id,
            amount=round(float(amount or 0), 2),
            status=PaymentStatus.PENDING,
        )
        if paid:
            apply_payment_status(payment, PaymentStatus.PAID)
            if details:
                payment.method = details.method
                payment.receipt_url = details.receiptUrl
                payment.receipt_file_name = details.receiptFileName
                payment.receipt_file_type = details.receiptFileType
                payment.receipt_file_size = details.receiptFileSize

        self.db.add(payment)
        session.payment = payment
        return payment

    def cancel_for_session(self, session: TherapySession) -> Optional[Payment]:
        """Cancel the payment owned by a cancelled or missed session"""
        payment = session.payment
        if payment is None:
            return None

        if payment.status != PaymentStatus.CANCELLED or payment.paid_at is not None:
            logger.info(f"💸 Cancelling payment {payment.id} of session {session.id}")
            apply_payment_status(payment, PaymentStatus.CANCELLED)
        return payment
