"""Shared validation utilities"""

from datetime import datetime
from typing import Optional

from ..config import MAX_SESSION_DURATION, MIN_SESSION_DURATION


def validate_duration(duration: Optional[int]) -> Optional[int]:
    """
    Validate a session duration in minutes.

    Raises:
        ValueError: If duration is outside the allowed range
    """
    if duration is None:
        return duration

    if duration < MIN_SESSION_DURATION or duration > MAX_SESSION_DURATION:
        raise ValueError(
            f"Duration must be between {MIN_SESSION_DURATION} and {MAX_SESSION_DURATION} minutes"
        )
    return duration


def to_local_instant(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize an incoming instant to a naive wall-clock datetime.

    Instants are treated as already localized: any UTC offset sent by the
    client is dropped without shifting the clock time.
    """
    if value is None:
        return value
    if value.tzinfo is not None:
        value = value.replace(tzinfo=None)
    return value.replace(microsecond=0)


def validate_price(value: Optional[float]) -> Optional[float]:
    if value is None:
        return value
    if value < 0:
        raise ValueError("Price cannot be negative")
    return round(float(value), 2)
