"""
Time source for the engine.

Components take a Clock instead of calling datetime.now() so tests can
pin the day boundary, token expiry and anomaly windows.
"""

from datetime import datetime, timezone
from typing import Protocol


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return utc_now()
