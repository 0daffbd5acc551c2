"""
Core Module - System Clock.

============================================================
RESPONSIBILITY
============================================================
Single time source for the settlement subsystem.

- settled_at, ledger created_at and completed_at are stamped here
- Trailing week/month windows and staleness cutoffs are
  measured from here
- Tests swap in a MockClock to pin "now"

============================================================
CONVENTION
============================================================
Every datetime is UTC and stored naive, matching the
DateTime columns. Aware input is converted, naive input is
taken to be UTC already.

============================================================
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional
import threading


def as_naive_utc(dt: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive input is assumed UTC."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


# ============================================================
# CLOCKS
# ============================================================

class ClockProtocol(ABC):
    """Anything that can answer now() in naive UTC."""

    @abstractmethod
    def now(self) -> datetime:
        pass


class SystemClock(ClockProtocol):
    """Wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class MockClock(ClockProtocol):
    """
    Manually driven clock for tests.

    Time only moves when advance() is called.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        self._time = as_naive_utc(initial_time) if initial_time else SystemClock().now()
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._time

    def advance(self, **kwargs) -> datetime:
        """Move forward by timedelta(**kwargs); returns the new time."""
        with self._lock:
            self._time = self._time + timedelta(**kwargs)
            return self._time


# ============================================================
# PROCESS-WIDE CLOCK
# ============================================================

class ClockFactory:
    """
    Holds the clock every service falls back to when none is injected.

    Usage:
        ClockFactory.set_clock(MockClock(datetime(2025, 3, 1)))
        ...
        ClockFactory.reset()
    """

    _instance: Optional[ClockProtocol] = None
    _lock = threading.Lock()

    @classmethod
    def get_clock(cls) -> ClockProtocol:
        with cls._lock:
            if cls._instance is None:
                cls._instance = SystemClock()
            return cls._instance

    @classmethod
    def set_clock(cls, clock: ClockProtocol) -> None:
        with cls._lock:
            cls._instance = clock

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._instance = SystemClock()


def now_utc() -> datetime:
    """Current time from the process-wide clock."""
    return ClockFactory.get_clock().now()


# ============================================================
# ISO 8601
# ============================================================

def to_iso8601(dt: datetime) -> str:
    return as_naive_utc(dt).isoformat()


def from_iso8601(iso_string: str) -> datetime:
    """
    Parse an ISO 8601 timestamp into naive UTC.

    Accepts a trailing "Z". Raises ValueError on anything else
    datetime.fromisoformat() rejects.
    """
    value = iso_string.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return as_naive_utc(datetime.fromisoformat(value))


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ClockFactory",
    "as_naive_utc",
    "now_utc",
    "to_iso8601",
    "from_iso8601",
]
