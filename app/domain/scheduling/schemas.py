"""Scheduling domain schemas - Pydantic models for validation"""

import enum
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ...config import (
    DEFAULT_SESSION_DURATION,
    MAX_RECURRENCE_OCCURRENCES,
    MIN_RECURRENCE_OCCURRENCES,
)
from ...models import PaymentMethod, RecurrencePattern, SessionStatus
from ...shared.validators import to_local_instant, validate_duration, validate_price
from ..payments.schemas import PaymentDetails, PaymentResponse


class DeleteScope(str, enum.Enum):
    SINGLE = "SINGLE"
    FUTURE = "FUTURE"
    ALL = "ALL"


class RecurrenceFields(BaseModel):
    """Cadence plus exactly one termination rule"""

    recurrencePattern: Optional[RecurrencePattern] = None
    recurrenceEndType: Optional[Literal["DATE", "OCCURRENCES"]] = None
    recurrenceEndDate: Optional[datetime] = None
    recurrenceOccurrences: Optional[int] = Field(
        default=None, ge=MIN_RECURRENCE_OCCURRENCES, le=MAX_RECURRENCE_OCCURRENCES
    )

    @field_validator("recurrenceEndDate")
    @classmethod
    def normalize_end_date(cls, v):
        return to_local_instant(v)

    def termination(self) -> tuple[Optional[int], Optional[datetime]]:
        """(occurrences, end_date) with exactly one of them set"""
        if self.recurrenceEndType == "DATE":
            return None, self.recurrenceEndDate
        if self.recurrenceEndType == "OCCURRENCES":
            return self.recurrenceOccurrences, None
        return self.recurrenceOccurrences, self.recurrenceEndDate

    def validate_recurrence(self) -> None:
        if self.recurrencePattern is None:
            raise ValueError("Recurrence pattern is required for recurring sessions")
        occurrences, end_date = self.termination()
        if (occurrences is None) == (end_date is None):
            raise ValueError("Provide either recurrenceOccurrences or recurrenceEndDate")


class SessionCreate(RecurrenceFields):
    """Schema for booking a single or recurring session"""

    patientId: int
    dateTime: datetime
    duration: int = DEFAULT_SESSION_DURATION
    isCourtesy: bool = False
    observations: Optional[str] = None
    clinicalNotes: Optional[str] = None
    isRecurring: bool = False
    customSessionPrice: Optional[float] = None
    # Payment already received
    isPaid: bool = False
    paymentMethod: Optional[PaymentMethod] = None
    receiptUrl: Optional[str] = None
    receiptFileName: Optional[str] = None
    receiptFileType: Optional[str] = None
    receiptFileSize: Optional[int] = Field(default=None, ge=0)

    @field_validator("dateTime")
    @classmethod
    def normalize_date_time(cls, v):
        return to_local_instant(v)

    @field_validator("duration")
    @classmethod
    def check_duration(cls, v):
        return validate_duration(v)

    @field_validator("customSessionPrice")
    @classmethod
    def check_price(cls, v):
        return validate_price(v)

    @model_validator(mode="after")
    def check_recurrence(self):
        if self.isRecurring:
            self.validate_recurrence()
        return self

    def payment_details(self) -> Optional[PaymentDetails]:
        if not self.isPaid:
            return None
        return PaymentDetails(
            method=self.paymentMethod,
            receiptUrl=self.receiptUrl,
            receiptFileName=self.receiptFileName,
            receiptFileType=self.receiptFileType,
            receiptFileSize=self.receiptFileSize,
        )


class SessionUpdate(BaseModel):
    """
    Schema for editing a session.

    isCourtesy is deliberately absent: it decides whether a payment exists and
    cannot change after creation.
    """

    patientId: Optional[int] = None
    dateTime: Optional[datetime] = None
    duration: Optional[int] = None
    status: Optional[SessionStatus] = None
    clinicalNotes: Optional[str] = None
    observations: Optional[str] = None

    @field_validator("dateTime")
    @classmethod
    def normalize_date_time(cls, v):
        return to_local_instant(v)

    @field_validator("duration")
    @classmethod
    def check_duration(cls, v):
        return validate_duration(v)


class SessionStatusUpdate(BaseModel):
    status: SessionStatus


class RecurrenceDeleteRequest(BaseModel):
    deleteType: DeleteScope
    sessionId: Optional[int] = None  # required for SINGLE and FUTURE


class ConflictCheckRequest(BaseModel):
    dates: list[datetime] = Field(..., min_length=1)
    duration: int = DEFAULT_SESSION_DURATION

    @field_validator("dates")
    @classmethod
    def normalize_dates(cls, v):
        return [to_local_instant(d) for d in v]

    @field_validator("duration")
    @classmethod
    def check_duration(cls, v):
        return validate_duration(v)


class RecurrencePreviewRequest(RecurrenceFields):
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

    @model_validator(mode="after")
    def check_recurrence(self):
        self.validate_recurrence()
        return self


class SessionResponse(BaseModel):
    """Schema for session response"""

    id: int
    patient_id: int
    date_time: datetime
    duration: int
    status: SessionStatus
    is_courtesy: bool
    clinical_notes: Optional[str] = None
    observations: Optional[str] = None
    recurrence_group_id: Optional[str] = None
    recurrence_pattern: Optional[RecurrencePattern] = None
    recurrence_end_date: Optional[datetime] = None
    recurrence_count: Optional[int] = None
    recurrence_index: Optional[int] = None
    package_id: Optional[int] = None
    package_order: Optional[int] = None
    payment: Optional[PaymentResponse] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RecurringCreateResponse(BaseModel):
    recurrenceGroupId: str
    sessionsCreated: int
    firstSession: SessionResponse
    description: str
    isPaid: bool


class ConflictCheckResponse(BaseModel):
    hasConflicts: bool
    conflicts: list[datetime]
    checkedCount: int


class PreviewDate(BaseModel):
    dateTime: datetime
    hasConflict: bool


class RecurrencePreviewResponse(BaseModel):
    dates: list[PreviewDate]
    count: int
    description: str
    hasConflicts: bool


class RecurrenceGroupStats(BaseModel):
    total: int
    scheduled: int
    confirmed: int
    completed: int
    cancelled: int
    noShow: int


class RecurrenceGroupResponse(BaseModel):
    groupId: str
    pattern: Optional[RecurrencePattern]
    patientName: Optional[str]
    sessions: list[SessionResponse]
    stats: RecurrenceGroupStats


class DeleteResponse(BaseModel):
    success: bool = True
    deletedCount: int
    message: str
