"""Tests for overlap detection"""

from datetime import timedelta

import pytest

from app.domain.scheduling.conflicts import (
    ConflictDetector,
    intervals_overlap,
    overlapping_within_batch,
)
from app.models import SessionStatus, TherapySession

from .conftest import BASE_TIME


def minutes(n):
    return timedelta(minutes=n)


@pytest.fixture
def existing(db, professional, patient):
    def _add(start, duration=50, status=SessionStatus.SCHEDULED, owner=None):
        session = TherapySession(
            owner_id=(owner or professional).id,
            patient_id=patient.id,
            date_time=start,
            duration=duration,
            status=status,
        )
        db.add(session)
        db.commit()
        return session

    return _add


@pytest.mark.parametrize(
    "offset, duration, expected",
    [
        (0, 50, True),  # same slot
        (20, 50, True),  # starts inside
        (-20, 50, True),  # ends inside
        (-30, 120, True),  # contains
        (10, 20, True),  # contained
        (50, 50, False),  # back to back after
        (-50, 50, False),  # back to back before
        (120, 50, False),
    ],
)
def test_intervals_overlap_is_symmetric(offset, duration, expected):
    a_start, a_end = BASE_TIME, BASE_TIME + minutes(50)
    b_start = BASE_TIME + minutes(offset)
    b_end = b_start + minutes(duration)

    assert intervals_overlap(b_start, b_end, a_start, a_end) is expected
    assert intervals_overlap(a_start, a_end, b_start, b_end) is expected


def test_detects_overlap_with_existing_session(db, professional, existing):
    existing(BASE_TIME)
    detector = ConflictDetector(db)

    assert detector.has_conflict(professional.id, BASE_TIME + minutes(30), 50)
    assert not detector.has_conflict(professional.id, BASE_TIME + minutes(50), 50)


def test_long_session_started_hours_earlier_still_blocks(db, professional, existing):
    existing(BASE_TIME - minutes(170), duration=180)
    detector = ConflictDetector(db)

    assert detector.has_conflict(professional.id, BASE_TIME, 50)


def test_cancelled_sessions_do_not_block(db, professional, existing):
    existing(BASE_TIME, status=SessionStatus.CANCELLED)

    assert not ConflictDetector(db).has_conflict(professional.id, BASE_TIME, 50)


def test_other_owners_never_conflict(db, professional, make_professional, existing):
    other = make_professional("firebase-uid-2", "other@example.com")
    existing(BASE_TIME, owner=other)

    assert not ConflictDetector(db).has_conflict(professional.id, BASE_TIME, 50)


def test_excluded_session_is_ignored(db, professional, existing):
    session = existing(BASE_TIME)
    detector = ConflictDetector(db)

    assert not detector.has_conflict(
        professional.id, BASE_TIME + minutes(10), 50, exclude_session_id=session.id
    )


def test_find_conflicts_reports_every_clash(db, professional, existing):
    existing(BASE_TIME + timedelta(days=7))
    existing(BASE_TIME + timedelta(days=21))
    starts = [BASE_TIME + timedelta(days=7 * i) for i in range(4)]

    conflicts = ConflictDetector(db).find_conflicts(professional.id, starts, 50)

    assert conflicts == [starts[1], starts[3]]


def test_overlapping_within_batch():
    slots = [
        (BASE_TIME, 50),
        (BASE_TIME + minutes(30), 50),
        (BASE_TIME + minutes(50), 50),
    ]

    assert overlapping_within_batch(slots) == [BASE_TIME + minutes(30)]
