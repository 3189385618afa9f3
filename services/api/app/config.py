from __future__ import annotations

import os
from datetime import timezone, tzinfo
from enum import IntEnum
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field


class Weekday(IntEnum):
    """ISO weekday names, numbered like ``datetime.weekday()``."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


class ScheduleConfig(BaseModel):
    """Pickup and edit-deadline schedule, fixed per deployment.

    Defaults: pickup on Thursday, edits close Tuesday 23:59.
    """

    pickup_day: Weekday = Weekday.THURSDAY
    deadline_day: Weekday = Weekday.TUESDAY
    deadline_hour: int = Field(23, ge=0, le=23)
    deadline_minute: int = Field(59, ge=0, le=59)
    timezone: str = Field("UTC", min_length=1)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def tz(self) -> tzinfo:
        return resolve_timezone(self.timezone)


def resolve_timezone(name: str) -> tzinfo:
    if name.strip().upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name.strip())


def load_schedule_config() -> ScheduleConfig:
    """Build the schedule from env vars.

    Env vars:
    - MARKET_PICKUP_DAY (default: THURSDAY)
    - MARKET_DEADLINE_DAY (default: TUESDAY)
    - MARKET_DEADLINE_TIME as HH:MM (default: 23:59)
    - MARKET_TIMEZONE (default: UTC)
    """

    pickup_day = _parse_weekday("MARKET_PICKUP_DAY", os.getenv("MARKET_PICKUP_DAY", "THURSDAY"))
    deadline_day = _parse_weekday(
        "MARKET_DEADLINE_DAY", os.getenv("MARKET_DEADLINE_DAY", "TUESDAY")
    )

    raw_time = os.getenv("MARKET_DEADLINE_TIME", "23:59").strip()
    hour_s, sep, minute_s = raw_time.partition(":")
    if not sep or not hour_s.isdigit() or not minute_s.isdigit():
        raise ValueError(f"Invalid MARKET_DEADLINE_TIME={raw_time!r}. Expected HH:MM.")

    return ScheduleConfig(
        pickup_day=pickup_day,
        deadline_day=deadline_day,
        deadline_hour=int(hour_s),
        deadline_minute=int(minute_s),
        timezone=os.getenv("MARKET_TIMEZONE", "UTC"),
    )


def seller_id() -> str:
    # Single-seller deployment: buyer endpoints always order from this seller.
    return os.getenv("MARKET_SELLER_ID", "seller-1").strip()


def strict_merge_enabled() -> bool:
    return _parse_bool(os.getenv("MARKET_STRICT_MERGE", "false"))


def pickup_date_count() -> int:
    return max(1, int(os.getenv("MARKET_PICKUP_DATE_COUNT", "5")))


def log_level() -> str:
    return os.getenv("MARKET_LOG_LEVEL", "INFO").strip().upper()


def _parse_weekday(var: str, raw: str) -> Weekday:
    try:
        return Weekday[raw.strip().upper()]
    except KeyError as e:
        raise ValueError(f"Unknown {var}={raw!r}. Expected a weekday name.") from e


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "y"}
