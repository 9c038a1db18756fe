"""Time source for the lending core.

Every "current instant" the core needs comes from a Clock so that due dates
and penalties can be tested without a live wall clock.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

# Fixed-width so stored instants compare correctly as text
_INSTANT_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"


def ensure_utc(instant: datetime) -> datetime:
    """Return an aware UTC datetime. Naive values are taken to be UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def format_instant(instant: datetime) -> str:
    """Serialize an instant for storage."""
    return ensure_utc(instant).strftime(_INSTANT_FORMAT)


def parse_instant(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored instant back into an aware UTC datetime."""
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value))


class Clock(ABC):
    """Source of the current instant."""

    @abstractmethod
    def now(self) -> datetime:
        """Current instant as an aware UTC datetime."""
        pass


class SystemClock(Clock):
    """Reads the system clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def __repr__(self) -> str:
        return "<SystemClock>"


class FixedClock(Clock):
    """A clock that only moves when told to.

    Example:
        >>> clock = FixedClock(datetime(2025, 1, 1, tzinfo=timezone.utc))
        >>> clock.advance(days=3).isoformat()
        '2025-01-04T00:00:00+00:00'
    """

    def __init__(self, instant: Optional[datetime] = None):
        self._instant = ensure_utc(instant) if instant else datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> datetime:
        self._instant = ensure_utc(instant)
        return self._instant

    def advance(self, delta: Optional[timedelta] = None, **kwargs) -> datetime:
        """Move the clock forward by a timedelta or timedelta keyword arguments."""
        step = delta if delta is not None else timedelta(**kwargs)
        self._instant = self._instant + step
        return self._instant

    def __repr__(self) -> str:
        return f"<FixedClock({self._instant.isoformat()})>"
