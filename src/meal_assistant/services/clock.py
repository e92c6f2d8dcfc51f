"""Local wall-clock in the reference timezone."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from zoneinfo import ZoneInfo

from meal_assistant.domain.meals import LocalNow
from meal_assistant.services.cache import utc_now


class Clock(Protocol):
    """Interface for the current local date and time."""

    def now(self) -> LocalNow:
        """Return the current local date and time."""


@dataclass
class ZoneClock(Clock):
    """Clock that converts UTC time into a named timezone."""

    timezone: str
    utc_clock: Callable[[], datetime] = utc_now

    def now(self) -> LocalNow:
        """Return today's date and the time of day in the timezone."""
        local = self.utc_clock().astimezone(ZoneInfo(self.timezone))
        return LocalNow(
            date=local.strftime("%Y-%m-%d"),
            time=local.strftime("%H:%M:%S"),
            timezone=self.timezone,
        )
