"""Session repository - Database operations for sessions

Write helpers only add/flush; the calling service owns the transaction so a
batch either commits as a whole or not at all.
"""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Payment, Professional, SessionStatus, TherapySession


class SessionRepository:
    """Repository for session database operations"""

    @staticmethod
    def get_session(db: Session, session_id: int, owner_id: int) -> Optional[TherapySession]:
        """Get a specific session by ID"""
        return (
            db.query(TherapySession)
            .options(joinedload(TherapySession.payment), joinedload(TherapySession.patient))
            .filter(TherapySession.id == session_id, TherapySession.owner_id == owner_id)
            .first()
        )

    @staticmethod
    def list_sessions(
        db: Session,
        owner_id: int,
        patient_id: Optional[int] = None,
        status: Optional[SessionStatus] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> list[TherapySession]:
        """List sessions with optional filters"""
        query = (
            db.query(TherapySession)
            .options(joinedload(TherapySession.payment), joinedload(TherapySession.patient))
            .filter(TherapySession.owner_id == owner_id)
        )

        if patient_id:
            query = query.filter(TherapySession.patient_id == patient_id)

        if status:
            query = query.filter(TherapySession.status == status)

        if start_date:
            query = query.filter(TherapySession.date_time >= start_date)

        if end_date:
            query = query.filter(TherapySession.date_time <= end_date)

        return query.order_by(TherapySession.date_time.asc()).all()

    @staticmethod
    def find_active_in_window(
        db: Session,
        owner_id: int,
        window_start: datetime,
        window_end: datetime,
        exclude_session_id: Optional[int] = None,
    ) -> list[TherapySession]:
        """Non-cancelled sessions of an owner starting inside [window_start, window_end]"""
        query = db.query(TherapySession).filter(
            TherapySession.owner_id == owner_id,
            TherapySession.status != SessionStatus.CANCELLED,
            TherapySession.date_time >= window_start,
            TherapySession.date_time <= window_end,
        )

        if exclude_session_id is not None:
            query = query.filter(TherapySession.id != exclude_session_id)

        return query.order_by(TherapySession.date_time.asc()).all()

    @staticmethod
    def get_group_sessions(db: Session, owner_id: int, group_id: str) -> list[TherapySession]:
        """All sessions of a recurrence group, oldest first"""
        return (
            db.query(TherapySession)
            .options(joinedload(TherapySession.payment), joinedload(TherapySession.patient))
            .filter(
                TherapySession.owner_id == owner_id,
                TherapySession.recurrence_group_id == group_id,
            )
            .order_by(TherapySession.date_time.asc())
            .all()
        )

    @staticmethod
    def add_session(db: Session, owner_id: int, **session_data) -> TherapySession:
        """Stage a new session and assign its ID"""
        session = TherapySession(owner_id=owner_id, **session_data)
        db.add(session)
        db.flush()
        return session

    @staticmethod
    def delete_sessions(db: Session, sessions: Iterable[TherapySession]) -> int:
        """
        Delete sessions together with their payments.

        Payments are removed explicitly first; the payments.session_id
        foreign key also cascades at the database level.
        """
        session_ids = [s.id for s in sessions]
        if not session_ids:
            return 0

        db.query(Payment).filter(Payment.session_id.in_(session_ids)).delete(
            synchronize_session=False
        )
        deleted = (
            db.query(TherapySession)
            .filter(TherapySession.id.in_(session_ids))
            .delete(synchronize_session=False)
        )
        db.flush()
        return deleted

    @staticmethod
    def lock_owner(db: Session, owner_id: int) -> Optional[Professional]:
        """Row lock on the owner; serializes check-then-insert across workers"""
        return db.query(Professional).filter(Professional.id == owner_id).with_for_update().first()
