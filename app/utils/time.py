"""Time helpers."""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return the current UTC time as a naive datetime, the form stored in the database."""
    return datetime.now(tz=timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are assumed to be UTC already."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def date_equals(a: Optional[datetime], b: Optional[datetime]) -> bool:
    """Compare two optional timestamps by the instant they denote."""
    if a is None or b is None:
        return a is None and b is None
    return to_naive_utc(a) == to_naive_utc(b)
