"""Average True Range (ATR) indicator."""

from wisp_engine.models.candle import Candle


def true_range(candle: Candle, prev_close: float | None) -> float:
    """True range of a candle; high - low when there is no previous close."""
    if prev_close is None:
        return candle.high - candle.low
    return max(
        candle.high - candle.low,
        abs(candle.high - prev_close),
        abs(candle.low - prev_close),
    )


def calculate_atr(candles: list[Candle], period: int = 14) -> list[float]:
    """
    Calculate Average True Range (ATR).

    Args:
        candles: List of Candle objects.
        period: ATR period.

    Returns:
        List of ATR values. First valid value at index ``period - 1`` is the
        SMA of the first ``period`` true ranges; later values use Wilder smoothing.
    """
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")

    length = len(candles)
    atr_values = [0.0] * length

    if length < period:
        return atr_values

    tr_values = [
        true_range(candle, candles[i - 1].close if i > 0 else None)
        for i, candle in enumerate(candles)
    ]

    atr_values[period - 1] = sum(tr_values[:period]) / period

    for i in range(period, length):
        atr_values[i] = (atr_values[i - 1] * (period - 1) + tr_values[i]) / period

    return atr_values
