import enum
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class SessionStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class RecurrencePattern(str, enum.Enum):
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"


class PackageStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, enum.Enum):
    PIX = "PIX"
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"


class PricingType(str, enum.Enum):
    SESSION = "SESSION"
    PACKAGE = "PACKAGE"


def _enum_column(enum_cls, **kwargs):
    return Column(Enum(enum_cls, native_enum=False, length=20, validate_strings=True), **kwargs)


class Professional(Base):
    """The practice owner; every scheduling row is scoped to one professional"""

    __tablename__ = "professionals"

    id = Column(Integer, primary_key=True, index=True)
    firebase_uid = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    patients = relationship("Patient", back_populates="owner", cascade="all, delete-orphan")


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(
        Integer, ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    owner = relationship("Professional", back_populates="patients")
    pricing_plans = relationship(
        "PricingPlan", back_populates="patient", cascade="all, delete-orphan"
    )


class PricingPlan(Base):
    """Billing terms for a patient; a package keeps its own plan as a snapshot"""

    __tablename__ = "pricing_plans"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(
        Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type = _enum_column(PricingType, nullable=False)
    session_price = Column(Float, nullable=True)  # SESSION plans
    package_price = Column(Float, nullable=True)  # PACKAGE plans: total price
    package_sessions = Column(Integer, nullable=True)  # PACKAGE plans: sessions included
    active = Column(Boolean, default=True, nullable=False)
    start_date = Column(DateTime, server_default=func.now())
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    patient = relationship("Patient", back_populates="pricing_plans")

    @property
    def per_session_rate(self) -> Optional[float]:
        if self.type == PricingType.SESSION and self.session_price:
            return float(self.session_price)
        if self.type == PricingType.PACKAGE and self.package_price and self.package_sessions:
            return float(self.package_price) / self.package_sessions
        return None


class SessionPackage(Base):
    __tablename__ = "session_packages"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(
        Integer, ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    patient_id = Column(
        Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    pricing_plan_id = Column(
        Integer, ForeignKey("pricing_plans.id", ondelete="SET NULL"), nullable=True
    )
    name = Column(String(255), nullable=False)
    total_sessions = Column(Integer, nullable=False)
    price_per_session = Column(Float, nullable=False, default=0)
    status = _enum_column(PackageStatus, default=PackageStatus.ACTIVE, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    patient = relationship("Patient")
    pricing_plan = relationship("PricingPlan")
    sessions = relationship(
        "TherapySession",
        back_populates="package",
        order_by="TherapySession.package_order",
        passive_deletes=True,
    )


@dataclass(frozen=True)
class NoMembership:
    pass


@dataclass(frozen=True)
class PackageMembership:
    package_id: int
    order: int


@dataclass(frozen=True)
class RecurrenceMembership:
    group_id: str
    pattern: RecurrencePattern
    index: int
    count: int


Membership = Union[NoMembership, PackageMembership, RecurrenceMembership]


class TherapySession(Base):
    """A scheduled appointment with one patient"""

    __tablename__ = "sessions"
    __table_args__ = (
        CheckConstraint("duration >= 15 AND duration <= 180", name="ck_sessions_duration"),
        # A session is either part of a package or of a recurrence series, never both
        CheckConstraint(
            "package_id IS NULL OR recurrence_group_id IS NULL",
            name="ck_sessions_single_membership",
        ),
        Index("idx_sessions_owner_datetime", "owner_id", "date_time"),
        Index("idx_sessions_recurrence_group", "recurrence_group_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(
        Integer, ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False
    )
    patient_id = Column(
        Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Scheduling
    date_time = Column(DateTime, nullable=False)
    duration = Column(Integer, nullable=False, default=50)  # minutes
    # Status workflow: SCHEDULED → CONFIRMED → COMPLETED | CANCELLED | NO_SHOW
    status = _enum_column(SessionStatus, default=SessionStatus.SCHEDULED, nullable=False)
    is_courtesy = Column(Boolean, default=False, nullable=False)  # exempt from billing

    clinical_notes = Column(Text, nullable=True)
    observations = Column(Text, nullable=True)

    # Recurrence series
    recurrence_group_id = Column(String(64), nullable=True)
    recurrence_pattern = _enum_column(RecurrencePattern, nullable=True)
    recurrence_end_date = Column(DateTime, nullable=True)
    recurrence_count = Column(Integer, nullable=True)
    recurrence_index = Column(Integer, nullable=True)  # 1-based

    # Package
    package_id = Column(
        Integer, ForeignKey("session_packages.id", ondelete="CASCADE"), nullable=True, index=True
    )
    package_order = Column(Integer, nullable=True)  # 1-based

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    patient = relationship("Patient")
    package = relationship("SessionPackage", back_populates="sessions")
    payment = relationship(
        "Payment", back_populates="session", uselist=False, passive_deletes=True
    )

    @property
    def end_time(self) -> datetime:
        return self.date_time + timedelta(minutes=self.duration)

    @property
    def membership(self) -> Membership:
        if self.package_id is not None:
            return PackageMembership(package_id=self.package_id, order=self.package_order)
        if self.recurrence_group_id is not None:
            return RecurrenceMembership(
                group_id=self.recurrence_group_id,
                pattern=self.recurrence_pattern,
                index=self.recurrence_index,
                count=self.recurrence_count,
            )
        return NoMembership()


class Payment(Base):
    """Billing record for exactly one session"""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(
        Integer, ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_id = Column(
        Integer, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    amount = Column(Float, nullable=False, default=0)
    status = _enum_column(PaymentStatus, default=PaymentStatus.PENDING, nullable=False)
    method = _enum_column(PaymentMethod, nullable=True)
    paid_at = Column(DateTime, nullable=True)  # set iff status == PAID
    notes = Column(Text, nullable=True)

    # Receipt reference (file lives in external storage)
    receipt_url = Column(Text, nullable=True)
    receipt_file_name = Column(String(255), nullable=True)
    receipt_file_type = Column(String(100), nullable=True)
    receipt_file_size = Column(Integer, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    session = relationship("TherapySession", back_populates="payment")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, nullable=False, index=True)
    action = Column(String(50), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(64), nullable=True)
    details = Column(Text, nullable=True)  # JSON encoded
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
