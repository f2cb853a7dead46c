"""Session service - Scheduling lifecycle business logic"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from ...audit import record_audit
from ...errors import ConflictError, InvariantViolationError, NotFoundError, ValidationError
from ...models import (
    RecurrencePattern,
    SessionPackage,
    SessionStatus,
    TherapySession,
)
from ...utils.sanitization import sanitize_text
from ..packages.stats import refresh_package_status
from ..patients.repository import PatientRepository
from ..payments.sync import PaymentSynchronizer
from .conflicts import ConflictDetector
from .locking import owner_transaction
from .recurrence import (
    describe_recurrence,
    generate_recurrence_dates,
    generate_recurrence_group_id,
)
from .repository import SessionRepository
from .schemas import DeleteScope, RecurrencePreviewRequest, SessionCreate, SessionUpdate

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[SessionStatus, frozenset] = {
    SessionStatus.SCHEDULED: frozenset(
        {
            SessionStatus.CONFIRMED,
            SessionStatus.CANCELLED,
            SessionStatus.COMPLETED,
            SessionStatus.NO_SHOW,
        }
    ),
    SessionStatus.CONFIRMED: frozenset(
        {SessionStatus.CANCELLED, SessionStatus.COMPLETED, SessionStatus.NO_SHOW}
    ),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.CANCELLED: frozenset(),
    SessionStatus.NO_SHOW: frozenset(),
}

# Statuses that cancel the session's payment
PAYMENT_CANCELLING_STATUSES = (SessionStatus.CANCELLED, SessionStatus.NO_SHOW)


@dataclass
class SessionBatch:
    """Result of a recurring booking"""

    group_id: str
    pattern: RecurrencePattern
    sessions: list[TherapySession]
    is_paid: bool = False

    @property
    def description(self) -> str:
        return describe_recurrence(self.pattern, len(self.sessions))


class SessionService:
    """Service layer for session scheduling"""

    def __init__(self, db: Session, request: Optional[Request] = None):
        self.db = db
        self.request = request
        self.repo = SessionRepository()
        self.patients = PatientRepository()
        self.conflicts = ConflictDetector(db)
        self.payments = PaymentSynchronizer(db)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_session(self, owner_id: int, session_id: int) -> TherapySession:
        session = self.repo.get_session(self.db, session_id, owner_id)
        if not session:
            raise NotFoundError("Session not found")
        return session

    def list_sessions(
        self,
        owner_id: int,
        patient_id: Optional[int] = None,
        status: Optional[SessionStatus] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> list[TherapySession]:
        return self.repo.list_sessions(self.db, owner_id, patient_id, status, start_date, end_date)

    def resolve_session_price(
        self,
        patient_id: int,
        custom_price: Optional[float] = None,
        package: Optional[SessionPackage] = None,
    ) -> float:
        """
        Price charged for one session.

        Explicit custom price, else the patient's active plan rate, else the
        package's per-session price, else zero.
        """
        if custom_price is not None and custom_price > 0:
            return custom_price

        plan = self.patients.find_active_pricing_plan(self.db, patient_id)
        if plan is not None and plan.per_session_rate is not None:
            return round(plan.per_session_rate, 2)

        if package is not None and package.price_per_session:
            return float(package.price_per_session)

        return 0.0

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_session(self, owner_id: int, data: SessionCreate):
        """Book a single session, or a whole recurring series when isRecurring is set"""
        if data.isRecurring:
            return self._create_recurring(owner_id, data)
        return self._create_single(owner_id, data)

    def _create_single(self, owner_id: int, data: SessionCreate) -> TherapySession:
        with owner_transaction(self.db, owner_id):
            self._require_patient(owner_id, data.patientId)

            if self.conflicts.has_conflict(owner_id, data.dateTime, data.duration):
                logger.warning(f"⚠️ Slot {data.dateTime} already taken for owner {owner_id}")
                raise ConflictError(
                    "A session is already scheduled at this time", [data.dateTime]
                )

            price = self.resolve_session_price(data.patientId, data.customSessionPrice)
            session = self.repo.add_session(
                self.db,
                owner_id,
                patient_id=data.patientId,
                date_time=data.dateTime,
                duration=data.duration,
                is_courtesy=data.isCourtesy,
                observations=self._clean(data.observations),
                clinical_notes=self._clean(data.clinicalNotes),
                status=SessionStatus.SCHEDULED,
            )
            self.payments.create_for_session(
                session, price, paid=data.isPaid, details=data.payment_details()
            )

        logger.info(f"✅ Session {session.id} created for owner {owner_id}")
        record_audit(
            self.db,
            owner_id,
            "SESSION_CREATE",
            "Session",
            session.id,
            {"patientId": data.patientId, "isCourtesy": data.isCourtesy},
            self.request,
        )
        return session

    def _create_recurring(self, owner_id: int, data: SessionCreate) -> SessionBatch:
        occurrences, end_date = data.termination()
        dates = generate_recurrence_dates(
            data.dateTime, data.recurrencePattern, occurrences=occurrences, end_date=end_date
        )

        with owner_transaction(self.db, owner_id):
            self._require_patient(owner_id, data.patientId)

            conflict_dates = self.conflicts.find_conflicts(owner_id, dates, data.duration)
            if conflict_dates:
                logger.warning(
                    f"⚠️ Recurring booking rejected for owner {owner_id}: "
                    f"{len(conflict_dates)} of {len(dates)} dates conflict"
                )
                raise ConflictError(
                    f"Schedule conflict on {len(conflict_dates)} date(s)", conflict_dates
                )

            price = self.resolve_session_price(data.patientId, data.customSessionPrice)
            group_id = generate_recurrence_group_id()
            details = data.payment_details()
            observations = self._clean(data.observations)

            sessions = []
            for index, date in enumerate(dates, start=1):
                session = self.repo.add_session(
                    self.db,
                    owner_id,
                    patient_id=data.patientId,
                    date_time=date,
                    duration=data.duration,
                    is_courtesy=data.isCourtesy,
                    observations=observations,
                    status=SessionStatus.SCHEDULED,
                    recurrence_group_id=group_id,
                    recurrence_pattern=data.recurrencePattern,
                    recurrence_end_date=end_date,
                    recurrence_count=len(dates),
                    recurrence_index=index,
                )
                self.payments.create_for_session(session, price, paid=data.isPaid, details=details)
                sessions.append(session)

        logger.info(f"✅ Recurring group {group_id}: {len(sessions)} sessions for owner {owner_id}")
        record_audit(
            self.db,
            owner_id,
            "SESSION_CREATE",
            "RecurrenceGroup",
            group_id,
            {"patientId": data.patientId, "count": len(sessions)},
            self.request,
        )
        return SessionBatch(
            group_id=group_id,
            pattern=data.recurrencePattern,
            sessions=sessions,
            is_paid=data.isPaid,
        )

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def reschedule_session(
        self,
        owner_id: int,
        session_id: int,
        new_start: Optional[datetime] = None,
        new_duration: Optional[int] = None,
    ) -> TherapySession:
        with owner_transaction(self.db, owner_id):
            session = self.get_session(owner_id, session_id)
            self._apply_reschedule(session, new_start, new_duration)

        self._audit_update(owner_id, session, {"dateTime": "[UPDATED]", "duration": new_duration})
        return session

    def change_session_status(
        self, owner_id: int, session_id: int, new_status: SessionStatus
    ) -> TherapySession:
        with owner_transaction(self.db, owner_id):
            session = self.get_session(owner_id, session_id)
            self._apply_status(session, new_status)

        self._audit_update(owner_id, session, {"status": new_status.value})
        return session

    def update_session(self, owner_id: int, session_id: int, data: SessionUpdate) -> TherapySession:
        """Apply an edit form: patient, slot, status and notes in one transaction"""
        changes: dict = {}

        with owner_transaction(self.db, owner_id):
            session = self.get_session(owner_id, session_id)

            if data.patientId is not None and data.patientId != session.patient_id:
                if session.package_id is not None:
                    raise ValidationError(
                        "Sessions of a package cannot be moved to another patient"
                    )
                self._require_patient(owner_id, data.patientId)
                session.patient_id = data.patientId
                changes["patientId"] = data.patientId

            if data.dateTime is not None or data.duration is not None:
                self._apply_reschedule(session, data.dateTime, data.duration)
                changes["dateTime"] = "[UPDATED]"
                if data.duration is not None:
                    changes["duration"] = data.duration

            if data.status is not None:
                self._apply_status(session, data.status)
                changes["status"] = data.status.value

            fields_set = data.model_fields_set
            if "clinicalNotes" in fields_set:
                session.clinical_notes = self._clean(data.clinicalNotes)
                # Never log clinical content, only that it changed
                changes["clinicalNotes"] = "[UPDATED]"
            if "observations" in fields_set:
                session.observations = self._clean(data.observations)
                changes["observations"] = "[UPDATED]"

        self._audit_update(owner_id, session, changes)
        return session

    def _apply_reschedule(
        self,
        session: TherapySession,
        new_start: Optional[datetime],
        new_duration: Optional[int],
    ) -> None:
        start = new_start or session.date_time
        duration = new_duration or session.duration

        if session.status == SessionStatus.COMPLETED and start < session.date_time:
            raise InvariantViolationError(
                "A completed session cannot be moved before its original slot"
            )

        if self.conflicts.has_conflict(
            session.owner_id, start, duration, exclude_session_id=session.id
        ):
            logger.warning(f"⚠️ Reschedule of session {session.id} to {start} conflicts")
            raise ConflictError("A session is already scheduled at this time", [start])

        session.date_time = start
        session.duration = duration

    def _apply_status(self, session: TherapySession, new_status: SessionStatus) -> None:
        current = session.status
        if new_status == current:
            return

        if new_status not in ALLOWED_TRANSITIONS[current]:
            raise ValidationError(
                f"Cannot change session status from {current.value} to {new_status.value}"
            )

        session.status = new_status

        if new_status in PAYMENT_CANCELLING_STATUSES:
            self.payments.cancel_for_session(session)

        if session.package is not None:
            refresh_package_status(session.package)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_session(self, owner_id: int, session_id: int) -> dict:
        with owner_transaction(self.db, owner_id):
            session = self.get_session(owner_id, session_id)
            if session.status == SessionStatus.COMPLETED:
                raise InvariantViolationError("Completed sessions cannot be deleted")

            details = {"patientId": session.patient_id, "dateTime": session.date_time}
            self.repo.delete_sessions(self.db, [session])

        logger.info(f"🗑️ Session {session_id} deleted by owner {owner_id}")
        record_audit(self.db, owner_id, "SESSION_DELETE", "Session", session_id, details, self.request)
        return {"success": True}

    def get_recurrence_group(self, owner_id: int, group_id: str) -> dict:
        sessions = self.repo.get_group_sessions(self.db, owner_id, group_id)
        if not sessions:
            raise NotFoundError("Recurrence group not found")

        statuses = [s.status for s in sessions]
        return {
            "groupId": group_id,
            "pattern": sessions[0].recurrence_pattern,
            "patientName": sessions[0].patient.name if sessions[0].patient else None,
            "sessions": sessions,
            "stats": {
                "total": len(sessions),
                "scheduled": statuses.count(SessionStatus.SCHEDULED),
                "confirmed": statuses.count(SessionStatus.CONFIRMED),
                "completed": statuses.count(SessionStatus.COMPLETED),
                "cancelled": statuses.count(SessionStatus.CANCELLED),
                "noShow": statuses.count(SessionStatus.NO_SHOW),
            },
        }

    def delete_recurrence_group(
        self,
        owner_id: int,
        group_id: str,
        mode: DeleteScope,
        anchor_session_id: Optional[int] = None,
    ) -> int:
        """
        Delete sessions of a recurring series.

        SINGLE removes the anchor only, FUTURE the anchor and every later
        sibling, ALL the whole series. Completed sessions are skipped, except
        that a completed SINGLE anchor is an error.
        """
        with owner_transaction(self.db, owner_id):
            group = self.repo.get_group_sessions(self.db, owner_id, group_id)
            if not group:
                raise NotFoundError("Recurrence group not found")

            if mode == DeleteScope.ALL:
                targets = [s for s in group if s.status != SessionStatus.COMPLETED]
            else:
                if anchor_session_id is None:
                    raise ValidationError(f"sessionId is required for {mode.value} deletion")

                anchor = next((s for s in group if s.id == anchor_session_id), None)
                if anchor is None:
                    raise NotFoundError("Session not found in recurrence group")

                if mode == DeleteScope.SINGLE:
                    if anchor.status == SessionStatus.COMPLETED:
                        raise InvariantViolationError("Completed sessions cannot be deleted")
                    targets = [anchor]
                else:
                    targets = [
                        s
                        for s in group
                        if s.date_time >= anchor.date_time and s.status != SessionStatus.COMPLETED
                    ]

            deleted_count = self.repo.delete_sessions(self.db, targets)

        logger.info(
            f"🗑️ {deleted_count} session(s) deleted from group {group_id} ({mode.value}) by owner {owner_id}"
        )
        record_audit(
            self.db,
            owner_id,
            "SESSION_DELETE",
            "RecurrenceGroup",
            group_id,
            {"mode": mode.value, "deletedCount": deleted_count},
            self.request,
        )
        return deleted_count

    # ------------------------------------------------------------------
    # Previews
    # ------------------------------------------------------------------

    def check_conflicts(self, owner_id: int, dates: list[datetime], duration: int) -> dict:
        conflicts = self.conflicts.find_conflicts(owner_id, dates, duration)
        return {
            "hasConflicts": bool(conflicts),
            "conflicts": conflicts,
            "checkedCount": len(dates),
        }

    def preview_recurrence(self, owner_id: int, data: RecurrencePreviewRequest) -> dict:
        """Dates a recurring booking would create, flagged with conflicts; nothing is saved"""
        occurrences, end_date = data.termination()
        dates = generate_recurrence_dates(
            data.dateTime, data.recurrencePattern, occurrences=occurrences, end_date=end_date
        )
        conflicts = set(self.conflicts.find_conflicts(owner_id, dates, data.duration))
        return {
            "dates": [{"dateTime": d, "hasConflict": d in conflicts} for d in dates],
            "count": len(dates),
            "description": describe_recurrence(data.recurrencePattern, len(dates)),
            "hasConflicts": bool(conflicts),
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_patient(self, owner_id: int, patient_id: int):
        patient = self.patients.find_owned_patient(self.db, owner_id, patient_id)
        if not patient:
            raise NotFoundError("Patient not found")
        return patient

    @staticmethod
    def _clean(value: Optional[str]) -> Optional[str]:
        try:
            return sanitize_text(value)
        except ValueError as e:
            raise ValidationError(str(e)) from e

    def _audit_update(self, owner_id: int, session: TherapySession, changes: dict) -> None:
        record_audit(
            self.db,
            owner_id,
            "SESSION_UPDATE",
            "Session",
            session.id,
            {"changes": changes},
            self.request,
        )
