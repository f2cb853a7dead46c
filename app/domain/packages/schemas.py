"""Package domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...config import DEFAULT_SESSION_DURATION
from ...models import PackageStatus, PaymentMethod, PricingType
from ...shared.validators import to_local_instant, validate_duration, validate_price
from ..payments.schemas import PaymentDetails
from ..scheduling.schemas import SessionResponse


class PackageSessionSlot(BaseModel):
    dateTime: datetime
    duration: int = DEFAULT_SESSION_DURATION

    @field_validator("dateTime")
    @classmethod
    def normalize_date_time(cls, v):
        return to_local_instant(v)

    @field_validator("duration")
    @classmethod
    def check_duration(cls, v):
        return validate_duration(v)


class ReceiptFields(BaseModel):
    paymentMethod: Optional[PaymentMethod] = None
    receiptUrl: Optional[str] = None
    receiptFileName: Optional[str] = None
    receiptFileType: Optional[str] = None
    receiptFileSize: Optional[int] = Field(default=None, ge=0)

    def receipt_details(self) -> PaymentDetails:
        return PaymentDetails(
            method=self.paymentMethod,
            receiptUrl=self.receiptUrl,
            receiptFileName=self.receiptFileName,
            receiptFileType=self.receiptFileType,
            receiptFileSize=self.receiptFileSize,
        )


class PackageCreate(ReceiptFields):
    """
    Schema for selling a package.

    SESSION pricing charges sessionPrice for each listed session. PACKAGE
    pricing splits packagePrice over totalSessions (or over the listed
    sessions when totalSessions is omitted).
    """

    patientId: int
    name: Optional[str] = Field(default=None, max_length=255)
    pricingType: PricingType
    sessionPrice: Optional[float] = None
    packagePrice: Optional[float] = None
    totalSessions: Optional[int] = Field(default=None, ge=1)
    sessions: list[PackageSessionSlot] = Field(..., min_length=1)
    notes: Optional[str] = None
    isPaid: bool = False

    @field_validator("sessionPrice", "packagePrice")
    @classmethod
    def check_price(cls, v):
        return validate_price(v)

    @model_validator(mode="after")
    def check_pricing(self):
        if self.pricingType == PricingType.SESSION and not self.sessionPrice:
            raise ValueError("sessionPrice is required for SESSION pricing")
        if self.pricingType == PricingType.PACKAGE and not self.packagePrice:
            raise ValueError("packagePrice is required for PACKAGE pricing")
        return self


class AddSessionsRequest(ReceiptFields):
    sessions: list[PackageSessionSlot] = Field(..., min_length=1)
    # Mark new sessions paid with the receipt given here
    copyReceipt: bool = False


class PackageUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = None
    status: Optional[PackageStatus] = None


class PackageStats(BaseModel):
    scheduled: int
    completed: int
    noShow: int
    cancelled: int
    consumed: int
    remainingSlots: int
    totalScheduled: int
    totalPaid: Optional[int] = None
    totalPending: Optional[int] = None
    amountPaid: Optional[float] = None
    amountPending: Optional[float] = None


class PackageResponse(BaseModel):
    """Schema for package response"""

    id: int
    patient_id: int
    pricing_plan_id: Optional[int] = None
    name: str
    total_sessions: int
    price_per_session: float
    status: PackageStatus
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    sessions: list[SessionResponse] = []
    stats: PackageStats


class AddSessionsResponse(BaseModel):
    createdCount: int
    sessions: list[SessionResponse]
    packageStatus: PackageStatus
