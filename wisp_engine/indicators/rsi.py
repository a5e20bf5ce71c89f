"""Relative Strength Index (RSI) indicator."""


def calculate_rsi(values: list[float], period: int = 14) -> list[float]:
    """
    Calculate Relative Strength Index (RSI) with Wilder smoothing.

    Args:
        values: List of closing prices.
        period: RSI period (default 14).

    Returns:
        List of RSI values. 0.0 for initial insufficient data points;
        the first valid value is at index ``period``.
    """
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")

    if not values or len(values) < period + 1:
        return [0.0] * len(values)

    rsi_values = [0.0] * len(values)

    gains = []
    losses = []

    for i in range(1, len(values)):
        change = values[i] - values[i - 1]
        if change > 0:
            gains.append(change)
            losses.append(0.0)
        else:
            gains.append(0.0)
            losses.append(abs(change))

    # First Average Gain/Loss (SMA)
    # Note: We need 'period' changes, which means period+1 data points
    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    rsi_values[period] = rsi_from_averages(avg_gain, avg_loss)

    for i in range(period + 1, len(values)):
        # gains[i-1] corresponds to change at values[i]
        avg_gain = ((avg_gain * (period - 1)) + gains[i - 1]) / period
        avg_loss = ((avg_loss * (period - 1)) + losses[i - 1]) / period
        rsi_values[i] = rsi_from_averages(avg_gain, avg_loss)

    return rsi_values


def rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    """RSI from smoothed average gain and loss."""
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))
