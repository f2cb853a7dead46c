"""Tests for recurring series date generation"""

from datetime import datetime

import pytest

from app.domain.scheduling.recurrence import (
    describe_recurrence,
    generate_recurrence_dates,
    generate_recurrence_group_id,
)
from app.errors import ValidationError
from app.models import RecurrencePattern

START = datetime(2030, 1, 7, 14, 30)


@pytest.mark.parametrize(
    "pattern, days_between",
    [(RecurrencePattern.WEEKLY, 7), (RecurrencePattern.BIWEEKLY, 14)],
)
def test_fixed_interval_patterns(pattern, days_between):
    dates = generate_recurrence_dates(START, pattern, occurrences=8)

    assert len(dates) == 8
    assert dates[0] == START
    for earlier, later in zip(dates, dates[1:]):
        assert (later - earlier).days == days_between
        assert later.time() == START.time()


def test_monthly_series_clamps_to_short_months_without_drift():
    start = datetime(2030, 1, 31, 9, 0)

    dates = generate_recurrence_dates(start, RecurrencePattern.MONTHLY, occurrences=4)

    assert dates == [
        datetime(2030, 1, 31, 9, 0),
        datetime(2030, 2, 28, 9, 0),
        datetime(2030, 3, 31, 9, 0),
        datetime(2030, 4, 30, 9, 0),
    ]


def test_end_date_is_inclusive():
    end = datetime(2030, 2, 4, 14, 30)

    dates = generate_recurrence_dates(START, RecurrencePattern.WEEKLY, end_date=end)

    assert len(dates) == 5
    assert dates[-1] == end


def test_end_date_before_start_yields_only_start():
    dates = generate_recurrence_dates(
        START, RecurrencePattern.WEEKLY, end_date=datetime(2029, 12, 1)
    )

    assert dates == [START]


def test_end_date_series_is_capped():
    dates = generate_recurrence_dates(
        START, RecurrencePattern.WEEKLY, end_date=datetime(2040, 1, 1)
    )

    assert len(dates) == 52


def test_dates_are_strictly_increasing():
    dates = generate_recurrence_dates(START, RecurrencePattern.MONTHLY, occurrences=24)

    assert all(a < b for a, b in zip(dates, dates[1:]))


@pytest.mark.parametrize("occurrences", [1, 53])
def test_occurrences_out_of_range(occurrences):
    with pytest.raises(ValidationError):
        generate_recurrence_dates(START, RecurrencePattern.WEEKLY, occurrences=occurrences)


def test_exactly_one_termination_rule_required():
    with pytest.raises(ValidationError):
        generate_recurrence_dates(START, RecurrencePattern.WEEKLY)

    with pytest.raises(ValidationError):
        generate_recurrence_dates(
            START, RecurrencePattern.WEEKLY, occurrences=4, end_date=datetime(2030, 3, 1)
        )


def test_group_ids_are_unique():
    ids = {generate_recurrence_group_id() for _ in range(50)}

    assert len(ids) == 50
    assert all(group_id.startswith("rec_") for group_id in ids)


def test_description():
    assert describe_recurrence(RecurrencePattern.BIWEEKLY, 6) == "6 sessions, every 2 weeks"
