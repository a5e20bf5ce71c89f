"""Moving Average Convergence Divergence (MACD) indicator."""

from dataclasses import dataclass

from wisp_engine.indicators.ema import calculate_ema


@dataclass
class MACDResult:
    """Container for MACD calculation results."""

    macd_line: list[float]
    signal_line: list[float]
    histogram: list[float]


def calculate_macd(
    values: list[float],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> MACDResult:
    """
    Calculate MACD (Moving Average Convergence Divergence).

    MACD Line = EMA(fast) - EMA(slow)
    Signal Line = EMA(signal) of the valid part of the MACD Line
    Histogram = MACD Line - Signal Line

    Args:
        values: List of values (e.g., closing prices).
        fast_period: Fast EMA period (default: 12).
        slow_period: Slow EMA period (default: 26).
        signal_period: Signal EMA period (default: 9).

    Returns:
        MACDResult with macd_line, signal_line, and histogram.
        The MACD line is valid from index ``slow_period - 1``; the signal line
        and histogram from ``slow_period + signal_period - 2``. Earlier values are 0.0.
    """
    if min(fast_period, slow_period, signal_period) < 1:
        raise ValueError("MACD periods must be >= 1")
    if fast_period >= slow_period:
        raise ValueError(
            f"fast_period ({fast_period}) must be less than slow_period ({slow_period})"
        )

    n = len(values)
    macd_line = [0.0] * n
    signal_line = [0.0] * n
    histogram = [0.0] * n

    if n < slow_period:
        return MACDResult(macd_line=macd_line, signal_line=signal_line, histogram=histogram)

    ema_fast = calculate_ema(values, fast_period)
    ema_slow = calculate_ema(values, slow_period)

    start = slow_period - 1
    for i in range(start, n):
        macd_line[i] = ema_fast[i] - ema_slow[i]

    # Signal EMA is seeded from the first valid MACD values only
    signal_valid = calculate_ema(macd_line[start:], signal_period)
    first_signal = start + signal_period - 1
    for i in range(first_signal, n):
        signal_line[i] = signal_valid[i - start]
        histogram[i] = macd_line[i] - signal_line[i]

    return MACDResult(
        macd_line=macd_line,
        signal_line=signal_line,
        histogram=histogram,
    )
