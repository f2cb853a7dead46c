"""
Overlap Detection Service

Detects scheduling conflicts between a candidate slot and an owner's
existing sessions. Cancelled sessions never block a slot, and different
owners never conflict with each other.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ...config import CONFLICT_LOOKBACK_MINUTES
from ...models import TherapySession
from .repository import SessionRepository

logger = logging.getLogger(__name__)


def intervals_overlap(
    candidate_start: datetime,
    candidate_end: datetime,
    existing_start: datetime,
    existing_end: datetime,
) -> bool:
    """
    True when the candidate interval overlaps the existing one.

    Intervals are half-open, so back-to-back sessions (end == start) do not
    overlap.
    """
    return (
        (existing_start <= candidate_start < existing_end)
        or (existing_start < candidate_end <= existing_end)
        or (candidate_start <= existing_start and candidate_end >= existing_end)
    )


class ConflictDetector:
    """Checks candidate slots against persisted sessions of one owner"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SessionRepository()

    def find_overlapping(
        self,
        owner_id: int,
        start: datetime,
        duration: int,
        exclude_session_id: Optional[int] = None,
    ) -> list[TherapySession]:
        """
        Existing sessions overlapping [start, start + duration).

        Candidates are fetched from a window opening CONFLICT_LOOKBACK_MINUTES
        before start, which covers the longest allowed session.
        """
        end = start + timedelta(minutes=duration)
        nearby = self.repo.find_active_in_window(
            self.db,
            owner_id,
            start - timedelta(minutes=CONFLICT_LOOKBACK_MINUTES),
            end,
            exclude_session_id,
        )
        return [s for s in nearby if intervals_overlap(start, end, s.date_time, s.end_time)]

    def has_conflict(
        self,
        owner_id: int,
        start: datetime,
        duration: int,
        exclude_session_id: Optional[int] = None,
    ) -> bool:
        return bool(self.find_overlapping(owner_id, start, duration, exclude_session_id))

    def find_conflicts(
        self, owner_id: int, starts: Iterable[datetime], duration: int
    ) -> list[datetime]:
        """Check every start independently and return all that conflict"""
        conflicts = [start for start in starts if self.has_conflict(owner_id, start, duration)]
        if conflicts:
            logger.info(f"⚠️ {len(conflicts)} conflicting slot(s) found for owner {owner_id}")
        return conflicts

    def find_slot_conflicts(
        self, owner_id: int, slots: Iterable[tuple[datetime, int]]
    ) -> list[datetime]:
        """Same as find_conflicts for slots that each carry their own duration"""
        return [start for start, duration in slots if self.has_conflict(owner_id, start, duration)]


def overlapping_within_batch(slots: Iterable[tuple[datetime, int]]) -> list[datetime]:
    """Starts of slots that overlap an earlier slot of the same request"""
    accepted: list[tuple[datetime, datetime]] = []
    clashes = []
    for start, duration in slots:
        end = start + timedelta(minutes=duration)
        if any(intervals_overlap(start, end, s, e) for s, e in accepted):
            clashes.append(start)
        else:
            accepted.append((start, end))
    return clashes
