"""
Clock -- injectable source of "now" for the services.

Engines never read the time.  ``ReconciliationService`` stamps plans with
``clock.now()`` and ``PaymentService`` callers pass payment dates in, so a
plan built against a ``DeterministicClock`` is fully reproducible.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Timezone-aware UTC time source."""

    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock frozen at ``fixed_time`` until moved with ``advance``.

    Naive datetimes are rejected so every stamp compares with UTC times.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._now = fixed_time or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        if self._now.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware datetime")

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 1) -> None:
        self._now += timedelta(seconds=seconds)
