"""Package service - Package sales and consumption business logic"""

import logging
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from ...audit import record_audit
from ...errors import (
    CapacityError,
    ConflictError,
    InvariantViolationError,
    NotFoundError,
    ValidationError,
)
from ...models import (
    PackageStatus,
    PaymentStatus,
    PricingType,
    SessionPackage,
    SessionStatus,
    TherapySession,
)
from ...utils.sanitization import sanitize_string, sanitize_text
from ..patients.repository import PatientRepository
from ..payments.schemas import PaymentDetails
from ..payments.sync import PaymentSynchronizer, apply_payment_status
from ..scheduling.conflicts import ConflictDetector, overlapping_within_batch
from ..scheduling.locking import owner_transaction
from ..scheduling.repository import SessionRepository
from .repository import PackageRepository
from .schemas import AddSessionsRequest, PackageCreate, PackageSessionSlot, PackageUpdate
from .stats import compute_package_stats, refresh_package_status

logger = logging.getLogger(__name__)

PENDING_STATUSES = (SessionStatus.SCHEDULED, SessionStatus.CONFIRMED)


class PackageService:
    """Service layer for session packages"""

    def __init__(self, db: Session, request: Optional[Request] = None):
        self.db = db
        self.request = request
        self.repo = PackageRepository()
        self.sessions = SessionRepository()
        self.patients = PatientRepository()
        self.conflicts = ConflictDetector(db)
        self.payments = PaymentSynchronizer(db)

    def get_package(self, owner_id: int, package_id: int) -> SessionPackage:
        package = self.repo.get_package(self.db, owner_id, package_id)
        if not package:
            raise NotFoundError("Package not found")
        return package

    def list_packages(
        self,
        owner_id: int,
        patient_id: Optional[int] = None,
        status: Optional[PackageStatus] = None,
    ) -> list[SessionPackage]:
        return self.repo.list_packages(self.db, owner_id, patient_id, status)

    def package_stats(self, owner_id: int, package_id: int) -> dict:
        return compute_package_stats(self.get_package(owner_id, package_id), include_billing=True)

    def create_package(self, owner_id: int, data: PackageCreate) -> SessionPackage:
        """
        Sell a package and book its first sessions.

        Pricing plan, package, sessions and payments are written in one
        transaction; earlier active plans of the patient are deactivated.
        """
        slots = sorted(data.sessions, key=lambda s: s.dateTime)

        if data.pricingType == PricingType.SESSION:
            total_sessions = len(slots)
            price_per_session = data.sessionPrice
        else:
            total_sessions = data.totalSessions or len(slots)
            price_per_session = round(data.packagePrice / total_sessions, 2)

        if len(slots) > total_sessions:
            raise CapacityError(
                f"Package holds {total_sessions} sessions, {len(slots)} requested",
                remaining_slots=total_sessions,
            )

        with owner_transaction(self.db, owner_id):
            if not self.patients.find_owned_patient(self.db, owner_id, data.patientId):
                raise NotFoundError("Patient not found")

            self._check_slots(owner_id, slots)

            self.patients.deactivate_pricing_plans(self.db, data.patientId)
            plan = self.patients.add_pricing_plan(
                self.db,
                data.patientId,
                type=data.pricingType,
                session_price=data.sessionPrice if data.pricingType == PricingType.SESSION else None,
                package_price=data.packagePrice if data.pricingType == PricingType.PACKAGE else None,
                package_sessions=total_sessions if data.pricingType == PricingType.PACKAGE else None,
                active=True,
            )

            name = data.name.strip() if data.name and data.name.strip() else None
            package = self.repo.add_package(
                self.db,
                owner_id,
                patient_id=data.patientId,
                pricing_plan_id=plan.id,
                name=sanitize_string(name) or f"Package - {slots[0].dateTime:%d/%m/%Y}",
                total_sessions=total_sessions,
                price_per_session=price_per_session,
                status=PackageStatus.ACTIVE,
                notes=self._clean(data.notes),
            )

            details = data.receipt_details() if data.isPaid else None
            self._book_slots(owner_id, package, slots, start_order=1, paid=data.isPaid, details=details)

        logger.info(
            f"📦 Package {package.id} created for patient {data.patientId}: "
            f"{len(slots)}/{total_sessions} sessions booked"
        )
        record_audit(
            self.db,
            owner_id,
            "PACKAGE_CREATE",
            "SessionPackage",
            package.id,
            {"patientId": data.patientId, "totalSessions": total_sessions},
            self.request,
        )
        return package

    def add_package_sessions(
        self, owner_id: int, package_id: int, data: AddSessionsRequest
    ) -> tuple[SessionPackage, list[TherapySession]]:
        """Book more sessions into free package slots"""
        slots = sorted(data.sessions, key=lambda s: s.dateTime)

        with owner_transaction(self.db, owner_id):
            package = self.get_package(owner_id, package_id)

            if package.status != PackageStatus.ACTIVE:
                raise ValidationError(
                    f"Sessions can only be added to an active package (status: {package.status.value})"
                )

            remaining = package.total_sessions - len(package.sessions)
            if len(slots) > remaining:
                logger.warning(
                    f"⚠️ Package {package.id} over capacity: {len(slots)} requested, {remaining} free"
                )
                raise CapacityError(
                    f"Only {remaining} session slot(s) left in this package",
                    remaining_slots=remaining,
                )

            self._check_slots(owner_id, slots)

            details = self._receipt_to_copy(package, data)
            start_order = max((s.package_order or 0 for s in package.sessions), default=0) + 1
            created = self._book_slots(
                owner_id,
                package,
                slots,
                start_order=start_order,
                paid=details is not None,
                details=details,
            )
            refresh_package_status(package)

        logger.info(f"📦 {len(created)} session(s) added to package {package_id}")
        record_audit(
            self.db,
            owner_id,
            "PACKAGE_ADD_SESSIONS",
            "SessionPackage",
            package_id,
            {"count": len(created)},
            self.request,
        )
        return package, created

    def update_package(self, owner_id: int, package_id: int, data: PackageUpdate) -> SessionPackage:
        changes: dict = {}

        with owner_transaction(self.db, owner_id):
            package = self.get_package(owner_id, package_id)

            if data.name is not None:
                if not data.name.strip():
                    raise ValidationError("Package name cannot be empty")
                package.name = sanitize_string(data.name.strip())
                changes["name"] = package.name

            if "notes" in data.model_fields_set:
                package.notes = self._clean(data.notes)
                changes["notes"] = "[UPDATED]"

            if data.status is not None and data.status != package.status:
                if package.status == PackageStatus.CANCELLED:
                    raise ValidationError("A cancelled package cannot be reopened")
                package.status = data.status
                changes["status"] = data.status.value

                if data.status == PackageStatus.CANCELLED:
                    cancelled = self._cancel_pending_sessions(package)
                    changes["cancelledSessions"] = cancelled

        record_audit(
            self.db,
            owner_id,
            "PACKAGE_UPDATE",
            "SessionPackage",
            package_id,
            {"changes": changes},
            self.request,
        )
        return package

    def delete_package(self, owner_id: int, package_id: int) -> int:
        """Delete a package with its sessions, payments and pricing plan"""
        with owner_transaction(self.db, owner_id):
            package = self.get_package(owner_id, package_id)

            completed = [s for s in package.sessions if s.status == SessionStatus.COMPLETED]
            if completed:
                logger.warning(
                    f"⚠️ Refusing to delete package {package_id}: {len(completed)} completed session(s)"
                )
                raise InvariantViolationError(
                    "Packages with completed sessions cannot be deleted"
                )

            deleted_count = self.sessions.delete_sessions(self.db, package.sessions)
            self.repo.delete_package(self.db, package)

        logger.info(f"🗑️ Package {package_id} deleted with {deleted_count} session(s)")
        record_audit(
            self.db,
            owner_id,
            "PACKAGE_DELETE",
            "SessionPackage",
            package_id,
            {"deletedSessions": deleted_count},
            self.request,
        )
        return deleted_count

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_slots(self, owner_id: int, slots: list[PackageSessionSlot]) -> None:
        pairs = [(s.dateTime, s.duration) for s in slots]
        conflicts = overlapping_within_batch(pairs)
        conflicts += [
            start
            for start in self.conflicts.find_slot_conflicts(owner_id, pairs)
            if start not in conflicts
        ]
        if conflicts:
            conflicts.sort()
            logger.warning(f"⚠️ {len(conflicts)} package slot(s) conflict for owner {owner_id}")
            raise ConflictError(f"Schedule conflict on {len(conflicts)} date(s)", conflicts)

    def _book_slots(
        self,
        owner_id: int,
        package: SessionPackage,
        slots: list[PackageSessionSlot],
        start_order: int,
        paid: bool,
        details: Optional[PaymentDetails],
    ) -> list[TherapySession]:
        created = []
        for order, slot in enumerate(slots, start=start_order):
            session = self.sessions.add_session(
                self.db,
                owner_id,
                patient_id=package.patient_id,
                package=package,
                package_order=order,
                date_time=slot.dateTime,
                duration=slot.duration,
                status=SessionStatus.SCHEDULED,
                is_courtesy=False,
            )
            self.payments.create_for_session(
                session, package.price_per_session, paid=paid, details=details
            )
            created.append(session)
        return created

    @staticmethod
    def _receipt_to_copy(
        package: SessionPackage, data: AddSessionsRequest
    ) -> Optional[PaymentDetails]:
        """Receipt for new sessions of a package that was already paid"""
        if data.copyReceipt and data.receiptUrl:
            return data.receipt_details()

        paid_with_receipt = [
            s.payment
            for s in package.sessions
            if s.payment is not None
            and s.payment.status == PaymentStatus.PAID
            and s.payment.receipt_url
        ]
        if not paid_with_receipt:
            return None

        source = paid_with_receipt[-1]
        return PaymentDetails(
            method=source.method,
            receiptUrl=source.receipt_url,
            receiptFileName=source.receipt_file_name,
            receiptFileType=source.receipt_file_type,
            receiptFileSize=source.receipt_file_size,
        )

    def _cancel_pending_sessions(self, package: SessionPackage) -> int:
        """Cancel open sessions and the pending payments of every non-completed session"""
        cancelled = 0
        for session in package.sessions:
            if session.status == SessionStatus.COMPLETED:
                continue

            if session.status in PENDING_STATUSES:
                session.status = SessionStatus.CANCELLED
                cancelled += 1

            # Payments already received stay PAID
            payment = session.payment
            if payment is not None and payment.status == PaymentStatus.PENDING:
                apply_payment_status(payment, PaymentStatus.CANCELLED)

        logger.info(f"📦 Package {package.id} cancelled, {cancelled} pending session(s) cancelled")
        return cancelled

    @staticmethod
    def _clean(value: Optional[str]) -> Optional[str]:
        try:
            return sanitize_text(value)
        except ValueError as e:
            raise ValidationError(str(e)) from e
