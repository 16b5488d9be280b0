"""Time utilities."""
import math
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Get current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def seconds_until(moment: datetime, now: datetime) -> int:
    """Whole seconds from now until moment, rounded up; 0 if already passed."""
    remaining = (as_utc(moment) - as_utc(now)).total_seconds()
    if remaining <= 0:
        return 0
    return math.ceil(remaining)

