from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from app.issuetracker.constants import DEFAULT_DUE_BUSINESS_DAYS
from app.issuetracker.utils import utcnow


def add_business_days(days: int, start: datetime | None = None) -> datetime:
    """Step forward one calendar day at a time, counting only Monday-Friday."""
    current = start or utcnow()
    added = 0
    while added < days:
        current = current + timedelta(days=1)
        if current.weekday() < 5:
            added += 1
    return current


def start_of_day(value: datetime | None = None) -> datetime:
    value = value or utcnow()
    return datetime.combine(value.date(), time.min)


def is_not_past_date(value: datetime | date, now: datetime | None = None) -> bool:
    """True when `value` falls today or later."""
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    return value >= start_of_day(now)


def default_due_date(now: datetime | None = None) -> datetime:
    return add_business_days(DEFAULT_DUE_BUSINESS_DAYS, now)


def parse_datetime(value) -> datetime | None:
    """
    Parse an ISO-8601 date or datetime (JSON input). Aware values are converted to naive UTC.
    Raises ValueError on malformed input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        raw = str(value).strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is not None:
        try:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        except OverflowError as e:
            raise ValueError(f"Datetime out of range: {value!r}") from e
    return parsed
