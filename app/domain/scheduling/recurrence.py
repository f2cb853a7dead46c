"""
Recurrence date generation.

Pure functions: the same generator feeds the booking preview and the commit,
so both always see identical dates.
"""

import secrets
import string
import time
from datetime import datetime
from typing import Optional

from dateutil.relativedelta import relativedelta

from ...config import MAX_RECURRENCE_OCCURRENCES, MIN_RECURRENCE_OCCURRENCES
from ...errors import ValidationError
from ...models import RecurrencePattern

PATTERN_DESCRIPTIONS = {
    RecurrencePattern.WEEKLY: "every week",
    RecurrencePattern.BIWEEKLY: "every 2 weeks",
    RecurrencePattern.MONTHLY: "every month",
}

_GROUP_ID_ALPHABET = string.ascii_lowercase + string.digits


def occurrence_at(start: datetime, pattern: RecurrencePattern, step: int) -> datetime:
    """
    Return the step-th occurrence after start (step 0 is start itself).

    Monthly steps are measured from the start date, so a series anchored on
    the 31st clamps to the last day of shorter months without drifting.
    """
    if pattern == RecurrencePattern.WEEKLY:
        return start + relativedelta(weeks=step)
    if pattern == RecurrencePattern.BIWEEKLY:
        return start + relativedelta(weeks=2 * step)
    if pattern == RecurrencePattern.MONTHLY:
        return start + relativedelta(months=step)
    raise ValidationError(f"Unsupported recurrence pattern: {pattern}")


def generate_recurrence_dates(
    start: datetime,
    pattern: RecurrencePattern,
    occurrences: Optional[int] = None,
    end_date: Optional[datetime] = None,
) -> list[datetime]:
    """
    Generate the dates of a recurring series.

    Exactly one termination rule must be given:
        occurrences: total number of sessions, first one included (2-52)
        end_date: last allowed instant, inclusive (capped at 52 sessions)

    Returns:
        Strictly increasing datetimes sharing start's time of day. If end_date
        precedes start the result is just [start].
    """
    if (occurrences is None) == (end_date is None):
        raise ValidationError("Provide either an occurrence count or an end date")

    if occurrences is not None:
        if not MIN_RECURRENCE_OCCURRENCES <= occurrences <= MAX_RECURRENCE_OCCURRENCES:
            raise ValidationError(
                f"Occurrences must be between {MIN_RECURRENCE_OCCURRENCES} and {MAX_RECURRENCE_OCCURRENCES}"
            )
        return [occurrence_at(start, pattern, step) for step in range(occurrences)]

    dates = [start]
    step = 1
    while len(dates) < MAX_RECURRENCE_OCCURRENCES:
        candidate = occurrence_at(start, pattern, step)
        if candidate > end_date:
            break
        dates.append(candidate)
        step += 1
    return dates


def generate_recurrence_group_id() -> str:
    """Unique id shared by every session of a series"""
    suffix = "".join(secrets.choice(_GROUP_ID_ALPHABET) for _ in range(7))
    return f"rec_{int(time.time() * 1000)}_{suffix}"


def describe_recurrence(pattern: RecurrencePattern, count: int) -> str:
    """Short summary such as '8 sessions, every week'"""
    return f"{count} sessions, {PATTERN_DESCRIPTIONS[pattern]}"
