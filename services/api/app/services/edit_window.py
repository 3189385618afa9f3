"""Edit-window policy for pickup orders.

One canonical rule applies everywhere: an order for a pickup day may be
created, edited or cancelled until the most recent ``deadline_day`` on or
before that pickup day, at ``deadline_hour:deadline_minute`` (inclusive of
the whole minute). The policy only answers questions; it never raises for
well-formed (timezone-aware) inputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta, tzinfo
from enum import Enum

from services.api.app.config import ScheduleConfig
from services.api.app.services.date_keys import local_date, start_of_day, to_date_key


class OrderWindowStatus(str, Enum):
    OPEN = "OPEN"
    DEADLINE_PASSED = "DEADLINE_PASSED"
    PICKUP_PASSED = "PICKUP_PASSED"


class DeadlineWarningLevel(str, Enum):
    NONE = "NONE"
    INFO = "INFO"
    WARNING = "WARNING"
    URGENT = "URGENT"
    CRITICAL = "CRITICAL"
    EXPIRED = "EXPIRED"


@dataclass(frozen=True, slots=True)
class PickupDateOption:
    pickup_date: datetime
    date_key: str
    deadline: datetime
    orderable: bool


class EditWindowPolicy:
    def __init__(self, config: ScheduleConfig, *, offer_count: int = 5) -> None:
        self._config = config
        self._tz = config.tz
        self._offer_count = max(1, offer_count)

    @property
    def config(self) -> ScheduleConfig:
        return self._config

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def date_key(self, instant: datetime) -> str:
        return to_date_key(instant, self._tz)

    def deadline_for(self, pickup: datetime) -> datetime:
        """Last instant at which an order for ``pickup`` may still change."""
        pickup_day = local_date(pickup, self._tz)
        days_back = (pickup_day.weekday() - self._config.deadline_day) % 7
        deadline_day = pickup_day - timedelta(days=days_back)
        return datetime.combine(
            deadline_day,
            time(self._config.deadline_hour, self._config.deadline_minute, 59, 999_999),
            tzinfo=self._tz,
        )

    def can_edit(self, pickup: datetime, now: datetime) -> bool:
        return now < self.deadline_for(pickup)

    def window_status(self, pickup: datetime, now: datetime) -> OrderWindowStatus:
        if self.can_edit(pickup, now):
            return OrderWindowStatus.OPEN
        if now > pickup:
            return OrderWindowStatus.PICKUP_PASSED
        return OrderWindowStatus.DEADLINE_PASSED

    def time_until_deadline(self, pickup: datetime, now: datetime) -> timedelta | None:
        if not self.can_edit(pickup, now):
            return None
        return self.deadline_for(pickup) - now

    def deadline_warning_level(self, pickup: datetime, now: datetime) -> DeadlineWarningLevel:
        remaining = self.time_until_deadline(pickup, now)
        if remaining is None:
            return DeadlineWarningLevel.EXPIRED

        hours = remaining.total_seconds() / 3600
        if hours > 48:
            return DeadlineWarningLevel.NONE
        if hours > 24:
            return DeadlineWarningLevel.INFO
        if hours > 6:
            return DeadlineWarningLevel.WARNING
        if hours > 1:
            return DeadlineWarningLevel.URGENT
        return DeadlineWarningLevel.CRITICAL

    def next_pickup_date(self, now: datetime) -> datetime:
        """This week's pickup day until its deadline day has passed, else next week's.

        On the pickup day itself the next occurrence is a week away.
        """
        today = local_date(now, self._tz)
        days_to_pickup = (self._config.pickup_day - today.weekday()) % 7 or 7
        deadline_to_pickup = (self._config.pickup_day - self._config.deadline_day) % 7
        if days_to_pickup < deadline_to_pickup:
            days_to_pickup += 7
        return start_of_day(today + timedelta(days=days_to_pickup), self._tz)

    def available_pickup_dates(
        self, now: datetime, count: int | None = None
    ) -> list[PickupDateOption]:
        """Next ``count`` pickup days on or after today, tagged with orderability.

        The list is a point-in-time answer; callers re-validate a selection
        with ``is_pickup_date_still_offerable`` when they submit it.
        """
        count = self._offer_count if count is None else max(0, count)
        today = local_date(now, self._tz)
        first = today + timedelta(days=(self._config.pickup_day - today.weekday()) % 7)

        options: list[PickupDateOption] = []
        for week in range(count):
            pickup = start_of_day(first + timedelta(weeks=week), self._tz)
            options.append(
                PickupDateOption(
                    pickup_date=pickup,
                    date_key=self.date_key(pickup),
                    deadline=self.deadline_for(pickup),
                    orderable=pickup > now and self.can_edit(pickup, now),
                )
            )
        return options

    def is_pickup_date_still_offerable(self, candidate: datetime, now: datetime) -> bool:
        key = self.date_key(candidate)
        return any(
            option.orderable and option.date_key == key
            for option in self.available_pickup_dates(now)
        )
