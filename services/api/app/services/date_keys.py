"""Calendar day keys (``yyyyMMdd``) used to index orders by pickup day."""

from __future__ import annotations

from datetime import date, datetime, time, tzinfo

DATE_KEY_FORMAT = "%Y%m%d"


def to_date_key(instant: datetime, tz: tzinfo) -> str:
    """Format ``instant`` as the calendar day it falls on in ``tz``."""
    local = _require_aware(instant).astimezone(tz)
    return f"{local.year:04d}{local.month:02d}{local.day:02d}"


def from_date_key(key: str, tz: tzinfo) -> datetime:
    """Return the start of the day named by ``key`` in ``tz``."""
    day = datetime.strptime(key, DATE_KEY_FORMAT).date()
    return start_of_day(day, tz)


def start_of_day(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def local_date(instant: datetime, tz: tzinfo) -> date:
    return _require_aware(instant).astimezone(tz).date()


def _require_aware(instant: datetime) -> datetime:
    if instant.tzinfo is None or instant.utcoffset() is None:
        raise ValueError(f"Expected a timezone-aware datetime, got naive {instant!r}")
    return instant
