"""Stochastic Oscillator indicator."""

from dataclasses import dataclass

from wisp_engine.indicators.sma import calculate_sma
from wisp_engine.models.candle import Candle


@dataclass(frozen=True)
class StochasticResult:
    """Stochastic Oscillator output."""
    k: list[float]
    d: list[float]


def raw_k(window: list[Candle]) -> float:
    """Unsmoothed %K for a window whose last candle is the current bar."""
    highest_high = max(c.high for c in window)
    lowest_low = min(c.low for c in window)
    if highest_high == lowest_low:
        return 50.0
    return (window[-1].close - lowest_low) / (highest_high - lowest_low) * 100.0


def calculate_stochastic(
    candles: list[Candle],
    k_period: int = 14,
    k_smoothing: int = 1,
    d_period: int = 3,
) -> StochasticResult:
    """
    Calculate the Stochastic Oscillator.

    %K = 100 * (close - lowest low) / (highest high - lowest low), smoothed by
    an SMA of ``k_smoothing`` (1 = fast stochastic). %D = SMA(d_period) of %K.

    Returns:
        StochasticResult. %K is valid from ``k_period + k_smoothing - 2``,
        %D from ``k_period + k_smoothing + d_period - 3``. Earlier values are 0.0.
    """
    if min(k_period, k_smoothing, d_period) < 1:
        raise ValueError("Stochastic periods must be >= 1")

    length = len(candles)
    k_values = [0.0] * length
    d_values = [0.0] * length

    if length < k_period:
        return StochasticResult(k=k_values, d=d_values)

    k_start = k_period - 1
    raw = [raw_k(candles[i - k_period + 1 : i + 1]) for i in range(k_start, length)]

    smoothed = calculate_sma(raw, k_smoothing)
    smooth_start = k_smoothing - 1
    valid_k = smoothed[smooth_start:]
    for j, value in enumerate(valid_k):
        k_values[k_start + smooth_start + j] = value

    d_smoothed = calculate_sma(valid_k, d_period)
    d_offset = k_start + smooth_start
    for j in range(d_period - 1, len(valid_k)):
        d_values[d_offset + j] = d_smoothed[j]

    return StochasticResult(k=k_values, d=d_values)
