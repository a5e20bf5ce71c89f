"""Streaming (incremental) indicator state.

Each ``Streaming*`` class consumes candles one at a time and keeps just
enough state to produce the latest value. ``amend`` replaces the most
recently pushed candle, which is how an in-progress bar is updated.

After pushing c0..cn the ``value`` matches the last element of the
corresponding ``calculate_*`` function over the same inputs.
"""

import copy
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from wisp_engine.indicators.atr import true_range
from wisp_engine.indicators.bollinger import bands_for_window
from wisp_engine.indicators.ema import ema_multiplier, ema_step
from wisp_engine.indicators.rsi import rsi_from_averages
from wisp_engine.indicators.stochastic import raw_k
from wisp_engine.models.candle import Candle

T = TypeVar("T")


class PriceSource(str, Enum):
    """Which candle price feeds a single-input indicator."""

    OPEN = "open"
    HIGH = "high"
    LOW = "low"
    CLOSE = "close"
    HL2 = "hl2"
    HLC3 = "hlc3"
    OHLC4 = "ohlc4"


def price_of(candle: Candle, source: PriceSource) -> float:
    """Extract the configured price from a candle."""
    if source == PriceSource.CLOSE:
        return candle.close
    if source == PriceSource.OPEN:
        return candle.open
    if source == PriceSource.HIGH:
        return candle.high
    if source == PriceSource.LOW:
        return candle.low
    if source == PriceSource.HL2:
        return (candle.high + candle.low) / 2.0
    if source == PriceSource.HLC3:
        return candle.typical_price
    return (candle.open + candle.high + candle.low + candle.close) / 4.0


@dataclass(frozen=True)
class MACDValue:
    """Latest MACD reading."""

    macd: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class BandsValue:
    """Latest Bollinger Bands reading."""

    upper: float
    middle: float
    lower: float

    @property
    def width(self) -> float:
        return self.upper - self.lower


@dataclass(frozen=True)
class StochasticValue:
    """Latest Stochastic Oscillator reading."""

    k: float
    d: float


def _check_period(name: str, value: int) -> None:
    if value < 1:
        raise ValueError(f"{name} must be >= 1, got {value}")


# -- Float cores --------------------------------------------------------------


class _SMACore:
    """Windowed mean over a float stream."""

    def __init__(self, period: int) -> None:
        _check_period("period", period)
        self.period = period
        self.window: deque[float] = deque(maxlen=period)
        self.value: float | None = None

    def update(self, x: float) -> float | None:
        self.window.append(x)
        if len(self.window) == self.period:
            self.value = sum(self.window) / self.period
        return self.value


class _EMACore:
    """EMA seeded with the SMA of the first ``period`` inputs."""

    def __init__(self, period: int) -> None:
        _check_period("period", period)
        self.period = period
        self.multiplier = ema_multiplier(period)
        self.seed: list[float] = []
        self.value: float | None = None

    def update(self, x: float) -> float | None:
        if self.value is None:
            self.seed.append(x)
            if len(self.seed) == self.period:
                self.value = sum(self.seed) / self.period
                self.seed = []
            return self.value
        self.value = ema_step(self.value, x, self.multiplier)
        return self.value


# -- Candle indicators ----------------------------------------------------------


class StreamingIndicator(Generic[T]):
    """Base class with push/amend bookkeeping.

    Subclasses list their mutable attributes in ``_state_fields`` and
    implement ``_update``.
    """

    name = "indicator"
    _state_fields: tuple[str, ...] = ()

    def __init__(self) -> None:
        self.count = 0
        self._prev_state: dict[str, Any] | None = None
        self._value: T | None = None

    @property
    def warmup(self) -> int:
        """Number of candles needed before ``value`` is available."""
        raise NotImplementedError

    @property
    def value(self) -> T | None:
        return self._value

    @property
    def ready(self) -> bool:
        return self._value is not None

    def _snapshot(self) -> dict[str, Any]:
        fields = ("count", "_value") + self._state_fields
        return {name: copy.deepcopy(getattr(self, name)) for name in fields}

    def _restore(self, state: dict[str, Any]) -> None:
        for name, val in state.items():
            setattr(self, name, copy.deepcopy(val))

    def push(self, candle: Candle) -> T | None:
        """Consume a new candle and return the updated value."""
        self._prev_state = self._snapshot()
        self._update(candle)
        self.count += 1
        return self._value

    def amend(self, candle: Candle) -> T | None:
        """
        Replace the most recently pushed candle.

        Raises:
            RuntimeError: If no candle has been pushed yet
        """
        if self._prev_state is None:
            raise RuntimeError(f"{self.name}: nothing to amend")
        self._restore(self._prev_state)
        self._update(candle)
        self.count += 1
        return self._value

    def _update(self, candle: Candle) -> None:
        raise NotImplementedError


class StreamingSMA(StreamingIndicator[float]):
    name = "sma"
    _state_fields = ("_core",)

    def __init__(self, period: int, source: PriceSource = PriceSource.CLOSE) -> None:
        super().__init__()
        self.period = period
        self.source = source
        self._core = _SMACore(period)

    @property
    def warmup(self) -> int:
        return self.period

    def _update(self, candle: Candle) -> None:
        self._value = self._core.update(price_of(candle, self.source))


class StreamingEMA(StreamingIndicator[float]):
    name = "ema"
    _state_fields = ("_core",)

    def __init__(self, period: int, source: PriceSource = PriceSource.CLOSE) -> None:
        super().__init__()
        self.period = period
        self.source = source
        self._core = _EMACore(period)

    @property
    def warmup(self) -> int:
        return self.period

    def _update(self, candle: Candle) -> None:
        self._value = self._core.update(price_of(candle, self.source))


class StreamingRSI(StreamingIndicator[float]):
    name = "rsi"
    _state_fields = ("_prev_price", "_gains", "_losses", "_avg_gain", "_avg_loss")

    def __init__(self, period: int = 14, source: PriceSource = PriceSource.CLOSE) -> None:
        super().__init__()
        _check_period("period", period)
        self.period = period
        self.source = source
        self._prev_price: float | None = None
        self._gains: list[float] = []
        self._losses: list[float] = []
        self._avg_gain: float | None = None
        self._avg_loss: float | None = None

    @property
    def warmup(self) -> int:
        return self.period + 1

    def _update(self, candle: Candle) -> None:
        price = price_of(candle, self.source)
        prev, self._prev_price = self._prev_price, price
        if prev is None:
            return

        change = price - prev
        gain = change if change > 0 else 0.0
        loss = abs(change) if change <= 0 else 0.0

        if self._avg_gain is None or self._avg_loss is None:
            self._gains.append(gain)
            self._losses.append(loss)
            if len(self._gains) == self.period:
                self._avg_gain = sum(self._gains) / self.period
                self._avg_loss = sum(self._losses) / self.period
                self._gains, self._losses = [], []
                self._value = rsi_from_averages(self._avg_gain, self._avg_loss)
            return

        self._avg_gain = ((self._avg_gain * (self.period - 1)) + gain) / self.period
        self._avg_loss = ((self._avg_loss * (self.period - 1)) + loss) / self.period
        self._value = rsi_from_averages(self._avg_gain, self._avg_loss)


class StreamingATR(StreamingIndicator[float]):
    name = "atr"
    _state_fields = ("_prev_close", "_seed")

    def __init__(self, period: int = 14) -> None:
        super().__init__()
        _check_period("period", period)
        self.period = period
        self._prev_close: float | None = None
        self._seed: list[float] = []

    @property
    def warmup(self) -> int:
        return self.period

    def _update(self, candle: Candle) -> None:
        tr = true_range(candle, self._prev_close)
        self._prev_close = candle.close

        if self._value is None:
            self._seed.append(tr)
            if len(self._seed) == self.period:
                self._value = sum(self._seed) / self.period
                self._seed = []
            return

        self._value = (self._value * (self.period - 1) + tr) / self.period


class StreamingMACD(StreamingIndicator[MACDValue]):
    name = "macd"
    _state_fields = ("_fast", "_slow", "_signal")

    def __init__(
        self,
        fast_period: int = 12,
        slow_period: int = 26,
        signal_period: int = 9,
        source: PriceSource = PriceSource.CLOSE,
    ) -> None:
        super().__init__()
        if fast_period >= slow_period:
            raise ValueError(
                f"fast_period ({fast_period}) must be less than slow_period ({slow_period})"
            )
        self.fast_period = fast_period
        self.slow_period = slow_period
        self.signal_period = signal_period
        self.source = source
        self._fast = _EMACore(fast_period)
        self._slow = _EMACore(slow_period)
        self._signal = _EMACore(signal_period)

    @property
    def warmup(self) -> int:
        return self.slow_period + self.signal_period - 1

    def _update(self, candle: Candle) -> None:
        price = price_of(candle, self.source)
        fast = self._fast.update(price)
        slow = self._slow.update(price)
        if fast is None or slow is None:
            return
        line = fast - slow
        signal = self._signal.update(line)
        if signal is None:
            return
        self._value = MACDValue(macd=line, signal=signal, histogram=line - signal)


class StreamingBollinger(StreamingIndicator[BandsValue]):
    name = "bollinger_bands"
    _state_fields = ("_window",)

    def __init__(
        self,
        period: int = 20,
        std_dev: float = 2.0,
        source: PriceSource = PriceSource.CLOSE,
    ) -> None:
        super().__init__()
        _check_period("period", period)
        if std_dev < 0:
            raise ValueError("std_dev must be non-negative")
        self.period = period
        self.std_dev = std_dev
        self.source = source
        self._window: deque[float] = deque(maxlen=period)

    @property
    def warmup(self) -> int:
        return self.period

    def _update(self, candle: Candle) -> None:
        self._window.append(price_of(candle, self.source))
        if len(self._window) < self.period:
            return
        mid, upper, lower = bands_for_window(list(self._window), self.std_dev)
        self._value = BandsValue(upper=upper, middle=mid, lower=lower)


class StreamingStochastic(StreamingIndicator[StochasticValue]):
    name = "stochastic"
    _state_fields = ("_window", "_k_smooth", "_d")

    def __init__(self, k_period: int = 14, k_smoothing: int = 1, d_period: int = 3) -> None:
        super().__init__()
        for label, period in (
            ("k_period", k_period),
            ("k_smoothing", k_smoothing),
            ("d_period", d_period),
        ):
            _check_period(label, period)
        self.k_period = k_period
        self.k_smoothing = k_smoothing
        self.d_period = d_period
        self._window: deque[Candle] = deque(maxlen=k_period)
        self._k_smooth = _SMACore(k_smoothing)
        self._d = _SMACore(d_period)

    @property
    def warmup(self) -> int:
        return self.k_period + self.k_smoothing + self.d_period - 2

    def _update(self, candle: Candle) -> None:
        self._window.append(candle)
        if len(self._window) < self.k_period:
            return
        k = self._k_smooth.update(raw_k(list(self._window)))
        if k is None:
            return
        d = self._d.update(k)
        if d is None:
            return
        self._value = StochasticValue(k=k, d=d)
