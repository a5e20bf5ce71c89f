"""In-memory price history store.

Holds one ordered, bounded candle sequence per (pair, exchange, interval).
Every series keeps monotonic counters so indicator caches can tell what
changed since they last looked (see ``SeriesCursor``).
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from wisp_engine.errors import OutOfOrderCandleError
from wisp_engine.models.asset import SeriesKey
from wisp_engine.models.candle import Candle

logger = logging.getLogger(__name__)

DEFAULT_MAX_CANDLES = 5000


class AppendResult(str, Enum):
    """Outcome of appending a candle to a series."""

    APPENDED = "APPENDED"  # New bar
    REPLACED = "REPLACED"  # Same timestamp as newest bar (in-progress update)
    SKIPPED = "SKIPPED"  # Identical copy of an already stored bar


@dataclass(frozen=True)
class SeriesCursor:
    """Point-in-time counters for a series.

    Attributes:
        total_appended: Distinct bars ever appended (never decreases)
        evicted: Bars dropped from the front due to the length bound
        revision: Bumped on every mutation, including replacements
        generation: Bumped when the series is cleared
    """

    total_appended: int
    evicted: int
    revision: int
    generation: int

    @property
    def retained(self) -> int:
        return self.total_appended - self.evicted


class _Series:
    """Mutable per-key state. Guarded by the store lock."""

    def __init__(self, max_candles: int, generation: int = 0, revision: int = 0) -> None:
        self.candles: deque[Candle] = deque(maxlen=max_candles)
        self.total_appended = 0
        self.revision = revision
        self.generation = generation

    @property
    def evicted(self) -> int:
        return self.total_appended - len(self.candles)

    def cursor(self) -> SeriesCursor:
        return SeriesCursor(
            total_appended=self.total_appended,
            evicted=self.evicted,
            revision=self.revision,
            generation=self.generation,
        )


class PriceHistoryStore:
    """Thread-safe store of ordered candle series."""

    def __init__(self, max_candles: int = DEFAULT_MAX_CANDLES) -> None:
        """
        Initialize the store.

        Args:
            max_candles: Maximum candles retained per series (oldest evicted first)
        """
        if max_candles < 1:
            raise ValueError("max_candles must be >= 1")
        self.max_candles = max_candles
        self._series: dict[SeriesKey, _Series] = {}
        self._generations: dict[SeriesKey, int] = {}
        # Revision of cleared series, so it keeps increasing across a clear
        self._revisions: dict[SeriesKey, int] = {}
        self._lock = threading.RLock()

    def _get_or_create(self, key: SeriesKey) -> _Series:
        series = self._series.get(key)
        if series is None:
            series = _Series(
                self.max_candles, self._generations.get(key, 0), self._revisions.get(key, 0)
            )
            self._series[key] = series
        return series

    def append(self, key: SeriesKey, candle: Candle) -> AppendResult:
        """
        Append a candle to a series.

        Args:
            key: Series identity
            candle: Candle to add

        Returns:
            APPENDED for a newer bar, REPLACED when the timestamp matches the newest
            bar, SKIPPED when the candle equals the newest bar

        Raises:
            OutOfOrderCandleError: If the candle is older than the newest bar
        """
        with self._lock:
            series = self._get_or_create(key)
            if series.candles:
                newest = series.candles[-1]
                if candle.timestamp < newest.timestamp:
                    raise OutOfOrderCandleError(
                        f"Candle at {candle.timestamp} is older than newest "
                        f"{newest.timestamp} for {key.pair}@{key.exchange}/{key.interval}"
                    )
                if candle.timestamp == newest.timestamp:
                    if candle == newest:
                        return AppendResult.SKIPPED
                    series.candles[-1] = candle
                    series.revision += 1
                    return AppendResult.REPLACED

            series.candles.append(candle)
            series.total_appended += 1
            series.revision += 1
            return AppendResult.APPENDED

    def extend(self, key: SeriesKey, candles: Iterable[Candle]) -> int:
        """
        Append candles in order, tolerating overlap with stored history.

        Bars older than the newest stored bar are skipped when identical to
        the stored copy, or when they predate the retained window after
        eviction. Re-fetching an overlapping window is therefore safe.

        Returns:
            Number of candles appended or replaced

        Raises:
            OutOfOrderCandleError: If an older bar differs from the stored copy
        """
        changed = 0
        with self._lock:
            for candle in candles:
                series = self._get_or_create(key)
                if series.candles and candle.timestamp < series.candles[-1].timestamp:
                    if series.evicted > 0 and candle.timestamp < series.candles[0].timestamp:
                        continue
                    stored = self._find(series, candle)
                    if stored is not None and stored == candle:
                        continue
                    raise OutOfOrderCandleError(
                        f"Conflicting historical candle at {candle.timestamp} "
                        f"for {key.pair}@{key.exchange}/{key.interval}"
                    )
                if self.append(key, candle) is not AppendResult.SKIPPED:
                    changed += 1
        return changed

    @staticmethod
    def _find(series: _Series, candle: Candle) -> Candle | None:
        for stored in reversed(series.candles):
            if stored.timestamp == candle.timestamp:
                return stored
            if stored.timestamp < candle.timestamp:
                return None
        return None

    def window(self, key: SeriesKey, limit: int | None = None) -> list[Candle]:
        """
        Return candles for a series, oldest first.

        Args:
            key: Series identity
            limit: Maximum number of most recent candles (None = all retained)
        """
        with self._lock:
            series = self._series.get(key)
            if series is None:
                return []
            candles = list(series.candles)
        if limit is not None:
            if limit <= 0:
                return []
            candles = candles[-limit:]
        return candles

    def latest(self, key: SeriesKey) -> Candle | None:
        """Newest candle of a series, or None."""
        with self._lock:
            series = self._series.get(key)
            if series is None or not series.candles:
                return None
            return series.candles[-1]

    def cursor(self, key: SeriesKey) -> SeriesCursor:
        """Counters for a series (all zero for an unknown key)."""
        with self._lock:
            series = self._series.get(key)
            if series is None:
                return self._empty_cursor(key)
            return series.cursor()

    def _empty_cursor(self, key: SeriesKey) -> SeriesCursor:
        return SeriesCursor(0, 0, self._revisions.get(key, 0), self._generations.get(key, 0))

    def candle_at(self, key: SeriesKey, absolute_index: int) -> Candle:
        """
        Candle by absolute position since the series was created.

        Raises:
            IndexError: If the position was evicted or not yet appended
        """
        with self._lock:
            series = self._series.get(key)
            if series is None:
                raise IndexError(f"No series for {key}")
            offset = absolute_index - series.evicted
            if offset < 0 or offset >= len(series.candles):
                raise IndexError(
                    f"Candle {absolute_index} not retained for {key} "
                    f"(retained {series.evicted}..{series.total_appended - 1})"
                )
            return series.candles[offset]

    def since(self, key: SeriesKey, absolute_index: int) -> tuple[SeriesCursor, list[Candle]]:
        """
        Cursor plus candles from ``absolute_index`` onward, read atomically.

        Positions that were already evicted are silently omitted.
        """
        with self._lock:
            series = self._series.get(key)
            if series is None:
                return self._empty_cursor(key), []
            offset = max(absolute_index - series.evicted, 0)
            return series.cursor(), list(series.candles)[offset:]

    def clear(self, key: SeriesKey | None = None) -> None:
        """Drop one series, or all series when key is None."""
        with self._lock:
            keys = [key] if key is not None else list(self._series.keys())
            for k in keys:
                series = self._series.pop(k, None)
                if series is not None:
                    self._generations[k] = self._generations.get(k, 0) + 1
                    self._revisions[k] = series.revision + 1
                    logger.debug("Cleared history for %s", k)

    def keys(self) -> list[SeriesKey]:
        with self._lock:
            return list(self._series.keys())

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._series

    def __len__(self) -> int:
        with self._lock:
            return len(self._series)
