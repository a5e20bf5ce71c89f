"""Time sources for the scheduler.

``SystemClock`` follows wall time; ``SimulatedClock`` is advanced explicitly
by the backtest runner so every component sees the same "current time".
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """Time source used by the scheduler."""

    def now(self) -> datetime:
        """Current time (timezone-aware, UTC)."""
        ...

    def sleep(self, seconds: float) -> None:
        """Wait for ``seconds``."""
        ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class SimulatedClock:
    """Manages simulated time during backtesting.

    Example:
        >>> clock = SimulatedClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))
        >>> clock.advance(300)
        >>> clock.now()  # 2024-01-01 12:05:00+00:00
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._current_time: datetime | None = None
        self._start_time: datetime | None = None
        if start is not None:
            self.set_time(start)

    def set_time(self, timestamp: datetime) -> None:
        """Set the current simulated time."""
        self._current_time = timestamp
        if self._start_time is None:
            self._start_time = timestamp

    def now(self) -> datetime:
        """
        Get the current simulated time.

        Raises:
            RuntimeError: If time has not been set
        """
        if self._current_time is None:
            raise RuntimeError("Time not set. Call set_time() first.")
        return self._current_time

    def advance(self, seconds: float) -> None:
        """Advance time by a number of seconds."""
        self._current_time = self.now() + timedelta(seconds=seconds)

    def advance_to(self, timestamp: datetime) -> None:
        """
        Advance time to a specific timestamp.

        Raises:
            ValueError: If timestamp is before current time
        """
        if self._current_time is None:
            self.set_time(timestamp)
            return
        if timestamp < self._current_time:
            raise ValueError(f"Cannot advance backwards: {timestamp} < {self._current_time}")
        self._current_time = timestamp

    def sleep(self, seconds: float) -> None:
        """Sleeping in simulated time just advances the clock."""
        if seconds > 0:
            self.advance(seconds)

    @property
    def start_time(self) -> datetime | None:
        return self._start_time


def floor_to_interval(ts: datetime, seconds: int) -> datetime:
    """Start of the ``seconds``-long grid slot containing ``ts`` (epoch aligned)."""
    epoch = int(ts.timestamp())
    return datetime.fromtimestamp(epoch - epoch % seconds, tz=timezone.utc)
