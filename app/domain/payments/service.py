"""Payment service - Explicit billing actions on session payments"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from ...audit import record_audit
from ...errors import InvariantViolationError, NotFoundError, ValidationError
from ...models import Payment, PaymentStatus, SessionStatus
from ...utils.sanitization import sanitize_text
from ..scheduling.locking import owner_transaction
from .repository import PaymentRepository
from .schemas import PaymentUpdate
from .sync import apply_payment_status

logger = logging.getLogger(__name__)

RECEIPT_FIELDS = {
    "receiptUrl": "receipt_url",
    "receiptFileName": "receipt_file_name",
    "receiptFileType": "receipt_file_type",
    "receiptFileSize": "receipt_file_size",
}


class PaymentService:
    """Service layer for payments"""

    def __init__(self, db: Session, request: Optional[Request] = None):
        self.db = db
        self.request = request
        self.repo = PaymentRepository()

    def list_payments(
        self,
        owner_id: int,
        status: Optional[PaymentStatus] = None,
        patient_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> list[Payment]:
        return self.repo.list_payments(self.db, owner_id, status, patient_id, start_date, end_date)

    def get_payment(self, owner_id: int, payment_id: int) -> Payment:
        payment = self.repo.get_payment(self.db, owner_id, payment_id)
        if not payment:
            raise NotFoundError("Payment not found")
        return payment

    def update_payment(self, owner_id: int, payment_id: int, data: PaymentUpdate) -> Payment:
        """
        Record a billing action: mark paid, attach a receipt, fix the amount.

        The payment of a cancelled session stays cancelled.
        """
        fields_set = data.model_fields_set
        changes: dict = {}

        with owner_transaction(self.db, owner_id):
            payment = self.get_payment(owner_id, payment_id)

            if (
                data.status is not None
                and data.status != PaymentStatus.CANCELLED
                and payment.status == PaymentStatus.CANCELLED
                and payment.session.status == SessionStatus.CANCELLED
            ):
                raise InvariantViolationError(
                    "The payment of a cancelled session cannot be reopened"
                )

            if data.amount is not None:
                payment.amount = data.amount
                changes["amount"] = data.amount

            if data.method is not None:
                payment.method = data.method
                changes["method"] = data.method.value

            if "notes" in fields_set:
                try:
                    payment.notes = sanitize_text(data.notes)
                except ValueError as e:
                    raise ValidationError(str(e)) from e
                changes["notes"] = "[UPDATED]"

            for field, column in RECEIPT_FIELDS.items():
                if field in fields_set:
                    setattr(payment, column, getattr(data, field))
                    changes[field] = "[UPDATED]"

            if data.status is not None and data.status != payment.status:
                apply_payment_status(payment, data.status)
                changes["status"] = data.status.value

        logger.info(f"💰 Payment {payment_id} updated by owner {owner_id}")
        record_audit(
            self.db,
            owner_id,
            "PAYMENT_UPDATE",
            "Payment",
            payment_id,
            {"changes": changes},
            self.request,
        )
        return payment

    def summary(
        self,
        owner_id: int,
        patient_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> dict:
        totals = self.repo.totals_by_status(self.db, owner_id, patient_id, start_date, end_date)
        paid_count, amount_paid = totals.get(PaymentStatus.PAID, (0, 0.0))
        pending_count, amount_pending = totals.get(PaymentStatus.PENDING, (0, 0.0))
        cancelled_count, _ = totals.get(PaymentStatus.CANCELLED, (0, 0.0))
        return {
            "paidCount": paid_count,
            "pendingCount": pending_count,
            "cancelledCount": cancelled_count,
            "amountPaid": round(amount_paid, 2),
            "amountPending": round(amount_pending, 2),
        }
