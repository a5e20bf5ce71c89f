"""Exponential Moving Average (EMA) indicator."""


def ema_multiplier(period: int) -> float:
    """Smoothing factor k = 2 / (period + 1)."""
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")
    return 2.0 / (period + 1)


def ema_step(previous: float, value: float, multiplier: float) -> float:
    """Advance an EMA by one input."""
    return (value - previous) * multiplier + previous


def calculate_ema(values: list[float], period: int) -> list[float]:
    """
    Calculate Exponential Moving Average (EMA) over a whole series.

    The EMA is seeded with the SMA of the first ``period`` values, so the
    first valid value sits at index ``period - 1``. Earlier slots hold 0.0
    and must be ignored by callers.

    Args:
        values: Input series (e.g. closing prices)
        period: EMA period

    Returns:
        EMA values, same length as ``values``
    """
    k = ema_multiplier(period)
    out = [0.0] * len(values)
    if len(values) < period:
        return out

    current = sum(values[:period]) / period
    out[period - 1] = current
    for i, value in enumerate(values[period:], start=period):
        current = ema_step(current, value, k)
        out[i] = current
    return out
