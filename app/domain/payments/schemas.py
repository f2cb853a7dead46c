"""Payment domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...models import PaymentMethod, PaymentStatus
from ...shared.validators import validate_price


class PaymentDetails(BaseModel):
    """Method and receipt reference recorded when a session is booked as paid"""

    method: Optional[PaymentMethod] = None
    receiptUrl: Optional[str] = None
    receiptFileName: Optional[str] = None
    receiptFileType: Optional[str] = None
    receiptFileSize: Optional[int] = Field(default=None, ge=0)


class PaymentUpdate(BaseModel):
    """Schema for explicit billing edits"""

    status: Optional[PaymentStatus] = None
    method: Optional[PaymentMethod] = None
    amount: Optional[float] = None
    notes: Optional[str] = None
    receiptUrl: Optional[str] = None
    receiptFileName: Optional[str] = None
    receiptFileType: Optional[str] = None
    receiptFileSize: Optional[int] = Field(default=None, ge=0)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        return validate_price(v)


class PaymentResponse(BaseModel):
    id: int
    session_id: int
    amount: float
    status: PaymentStatus
    method: Optional[PaymentMethod] = None
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None
    receipt_url: Optional[str] = None
    receipt_file_name: Optional[str] = None
    receipt_file_type: Optional[str] = None
    receipt_file_size: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentSummary(BaseModel):
    paidCount: int
    pendingCount: int
    cancelledCount: int
    amountPaid: float
    amountPending: float
