"""Date/time helpers shared by services and models."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_date_value(value: Any) -> datetime | None:
    """
    Parse an ISO date or datetime string from a form payload.

    Returns None when the value is missing or unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(raw))
    except ValueError:
        return None


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def end_of_day(day: date) -> datetime:
    """Inclusive upper bound for a date filter."""
    return datetime.combine(day, time.min, tzinfo=timezone.utc) + timedelta(days=1) - timedelta(microseconds=1)


def isoformat_or_none(value: datetime | None) -> str | None:
    value = ensure_utc(value)
    return value.isoformat() if value else None
