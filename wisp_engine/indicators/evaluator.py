"""Indicator evaluation over the price history store.

The evaluator keeps one streaming indicator per
(series, indicator, resolved options) and, on each call, only feeds it the
candles that changed since the previous call. A call with no new data is a
cache hit; eviction past the consumed tail or a cleared series triggers a
rebuild from the retained window.

Example:
    >>> store = PriceHistoryStore()
    >>> evaluator = IndicatorEvaluator(store)
    >>> evaluator.rsi("BTC/USDT", "binance", IndicatorOptions(period=14, interval="1h"))
    57.3
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Callable

from wisp_engine.errors import InsufficientDataError, UnknownIndicatorError
from wisp_engine.indicators.streaming import (
    BandsValue,
    MACDValue,
    PriceSource,
    StochasticValue,
    StreamingATR,
    StreamingBollinger,
    StreamingEMA,
    StreamingIndicator,
    StreamingMACD,
    StreamingRSI,
    StreamingSMA,
    StreamingStochastic,
)
from wisp_engine.market_data.history import PriceHistoryStore, SeriesCursor
from wisp_engine.models.asset import Asset, SeriesKey
from wisp_engine.models.candle import Candle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndicatorOptions:
    """Options accepted by every indicator call.

    Fields left as None take the indicator's default.
    """

    interval: str = "1h"
    period: int | None = None
    source: PriceSource = PriceSource.CLOSE
    fast_period: int | None = None
    slow_period: int | None = None
    signal_period: int | None = None
    std_dev: float | None = None
    k_period: int | None = None
    k_smoothing: int | None = None
    d_period: int | None = None


# Defaults per indicator; only the listed fields are meaningful for it
INDICATOR_DEFAULTS: dict[str, dict[str, Any]] = {
    "sma": {"period": 20},
    "ema": {"period": 20},
    "rsi": {"period": 14},
    "atr": {"period": 14},
    "macd": {"fast_period": 12, "slow_period": 26, "signal_period": 9},
    "bollinger_bands": {"period": 20, "std_dev": 2.0},
    "stochastic": {"k_period": 14, "k_smoothing": 1, "d_period": 3},
}

_USES_SOURCE = {"sma", "ema", "rsi", "macd", "bollinger_bands"}

_FACTORIES: dict[str, Callable[[IndicatorOptions], StreamingIndicator[Any]]] = {
    "sma": lambda o: StreamingSMA(o.period, o.source),  # type: ignore[arg-type]
    "ema": lambda o: StreamingEMA(o.period, o.source),  # type: ignore[arg-type]
    "rsi": lambda o: StreamingRSI(o.period, o.source),  # type: ignore[arg-type]
    "atr": lambda o: StreamingATR(o.period),  # type: ignore[arg-type]
    "macd": lambda o: StreamingMACD(
        o.fast_period, o.slow_period, o.signal_period, o.source  # type: ignore[arg-type]
    ),
    "bollinger_bands": lambda o: StreamingBollinger(
        o.period, o.std_dev, o.source  # type: ignore[arg-type]
    ),
    "stochastic": lambda o: StreamingStochastic(
        o.k_period, o.k_smoothing, o.d_period  # type: ignore[arg-type]
    ),
}

CacheKey = tuple[SeriesKey, str, IndicatorOptions]


def resolve_options(name: str, options: IndicatorOptions | None) -> IndicatorOptions:
    """
    Fill unset fields with the indicator's defaults and blank the rest.

    Blanking unrelated fields means e.g. RSI(period=14) with a stray
    ``std_dev`` shares a cache entry with plain RSI(period=14).

    Raises:
        UnknownIndicatorError: If the indicator name is not registered
    """
    if name not in INDICATOR_DEFAULTS:
        available = ", ".join(sorted(INDICATOR_DEFAULTS))
        raise UnknownIndicatorError(f"Unknown indicator '{name}'. Available: {available}")

    options = options or IndicatorOptions()
    defaults = INDICATOR_DEFAULTS[name]
    values: dict[str, Any] = {}
    for field_name in (
        "period",
        "fast_period",
        "slow_period",
        "signal_period",
        "std_dev",
        "k_period",
        "k_smoothing",
        "d_period",
    ):
        if field_name in defaults:
            current = getattr(options, field_name)
            values[field_name] = defaults[field_name] if current is None else current
        else:
            values[field_name] = None
    source = options.source if name in _USES_SOURCE else PriceSource.CLOSE
    return replace(options, source=PriceSource(source), **values)


@dataclass
class _CacheEntry:
    indicator: StreamingIndicator[Any]
    consumed: int  # absolute count of candles fed in
    last_candle: Candle | None
    revision: int
    generation: int


@dataclass
class EvaluatorStats:
    """Counters describing cache effectiveness."""

    hits: int = 0
    incremental_updates: int = 0
    rebuilds: int = 0
    candles_consumed: int = 0
    by_indicator: dict[str, int] = field(default_factory=dict)


class IndicatorEvaluator:
    """Evaluates indicators against stored candle series with incremental caching."""

    def __init__(self, store: PriceHistoryStore) -> None:
        """
        Initialize the evaluator.

        Args:
            store: Price history store providing candle series
        """
        self.store = store
        self.stats = EvaluatorStats()
        self._cache: dict[CacheKey, _CacheEntry] = {}
        self._lock = threading.Lock()

    # -- Documented call contracts ----------------------------------------------

    def rsi(self, asset: "str | Asset", exchange: str, options: IndicatorOptions | None = None) -> float:
        """Latest Relative Strength Index (0-100)."""
        return self.evaluate("rsi", asset, exchange, options)  # type: ignore[no-any-return]

    def sma(self, asset: "str | Asset", exchange: str, options: IndicatorOptions | None = None) -> float:
        """Latest Simple Moving Average."""
        return self.evaluate("sma", asset, exchange, options)  # type: ignore[no-any-return]

    def ema(self, asset: "str | Asset", exchange: str, options: IndicatorOptions | None = None) -> float:
        """Latest Exponential Moving Average."""
        return self.evaluate("ema", asset, exchange, options)  # type: ignore[no-any-return]

    def atr(self, asset: "str | Asset", exchange: str, options: IndicatorOptions | None = None) -> float:
        """Latest Average True Range."""
        return self.evaluate("atr", asset, exchange, options)  # type: ignore[no-any-return]

    def macd(
        self, asset: "str | Asset", exchange: str, options: IndicatorOptions | None = None
    ) -> MACDValue:
        """Latest MACD line, signal line and histogram."""
        return self.evaluate("macd", asset, exchange, options)  # type: ignore[no-any-return]

    def bollinger_bands(
        self, asset: "str | Asset", exchange: str, options: IndicatorOptions | None = None
    ) -> BandsValue:
        """Latest upper, middle and lower Bollinger Bands."""
        return self.evaluate("bollinger_bands", asset, exchange, options)  # type: ignore[no-any-return]

    def stochastic(
        self, asset: "str | Asset", exchange: str, options: IndicatorOptions | None = None
    ) -> StochasticValue:
        """Latest Stochastic %K and %D."""
        return self.evaluate("stochastic", asset, exchange, options)  # type: ignore[no-any-return]

    # -- Generic entry point ----------------------------------------------------

    def evaluate(
        self,
        name: str,
        asset: "str | Asset",
        exchange: str,
        options: IndicatorOptions | None = None,
    ) -> Any:
        """
        Evaluate an indicator by name on the newest candle of a series.

        Args:
            name: Indicator name (see ``INDICATOR_DEFAULTS``)
            asset: Asset or pair string
            exchange: Exchange name
            options: Indicator options (interval, periods, source)

        Returns:
            float for scalar indicators, a value object for multi-line ones

        Raises:
            UnknownIndicatorError: Unknown indicator name
            InsufficientDataError: Not enough candles stored to warm up
            ValueError: Invalid options (e.g. period < 1, unknown interval)
        """
        resolved = resolve_options(name, options)
        key = SeriesKey.of(asset, exchange, resolved.interval)
        cache_key: CacheKey = (key, name, resolved)

        with self._lock:
            entry = self._cache.get(cache_key)
            cursor = self.store.cursor(key)
            if entry is None or self._needs_rebuild(entry, cursor):
                entry = self._rebuild(cache_key, resolved)
            elif entry.revision == cursor.revision:
                self.stats.hits += 1
            else:
                entry = self._catch_up(cache_key, entry)

            indicator = entry.indicator
            if indicator.value is None:
                raise InsufficientDataError(name, indicator.warmup, cursor.retained)
            return indicator.value

    def invalidate(self, key: SeriesKey | None = None) -> int:
        """Drop cached state for one series (or all). Returns entries dropped."""
        with self._lock:
            if key is None:
                dropped = len(self._cache)
                self._cache.clear()
                return dropped
            doomed = [k for k in self._cache if k[0] == key]
            for k in doomed:
                del self._cache[k]
            return len(doomed)

    def cached_entries(self) -> int:
        with self._lock:
            return len(self._cache)

    # -- Internals ----------------------------------------------------------------

    @staticmethod
    def _needs_rebuild(entry: _CacheEntry, cursor: SeriesCursor) -> bool:
        if entry.generation != cursor.generation:
            return True
        # The last consumed bar must still be retained to detect amendments
        if entry.consumed > 0 and entry.consumed - 1 < cursor.evicted:
            return True
        return cursor.total_appended < entry.consumed

    def _rebuild(self, cache_key: CacheKey, options: IndicatorOptions) -> _CacheEntry:
        key, name, _ = cache_key
        indicator = _FACTORIES[name](options)
        cursor, candles = self.store.since(key, 0)
        for candle in candles:
            indicator.push(candle)

        entry = _CacheEntry(
            indicator=indicator,
            consumed=cursor.total_appended,
            last_candle=candles[-1] if candles else None,
            revision=cursor.revision,
            generation=cursor.generation,
        )
        self._cache[cache_key] = entry
        self.stats.rebuilds += 1
        self.stats.candles_consumed += len(candles)
        self.stats.by_indicator[name] = self.stats.by_indicator.get(name, 0) + 1
        logger.debug("Rebuilt %s for %s from %d candles", name, key, len(candles))
        return entry

    def _catch_up(self, cache_key: CacheKey, entry: _CacheEntry) -> _CacheEntry:
        key, name, _ = cache_key
        start = max(entry.consumed - 1, 0)
        cursor, candles = self.store.since(key, start)
        if cursor.evicted > start or cursor.generation != entry.generation:
            # Series moved under us between the cursor check and the read
            return self._rebuild(cache_key, cache_key[2])

        if entry.consumed > 0 and candles:
            tail, fresh = candles[0], candles[1:]
            if tail != entry.last_candle:
                entry.indicator.amend(tail)
                self.stats.candles_consumed += 1
        else:
            fresh = candles

        for candle in fresh:
            entry.indicator.push(candle)

        entry.consumed = cursor.total_appended
        if candles:
            entry.last_candle = candles[-1]
        entry.revision = cursor.revision
        self.stats.incremental_updates += 1
        self.stats.candles_consumed += len(fresh)
        self.stats.by_indicator[name] = self.stats.by_indicator.get(name, 0) + 1
        return entry
