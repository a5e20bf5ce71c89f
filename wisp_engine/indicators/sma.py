"""Simple Moving Average (SMA) indicator."""


def calculate_sma(values: list[float], period: int) -> list[float]:
    """
    Calculate Simple Moving Average (SMA).

    Args:
        values: List of values (e.g., closing prices).
        period: Window length.

    Returns:
        List of SMA values (same length as input).
        First valid value is at index ``period - 1``; earlier values are 0.0.
    """
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")

    sma_values = [0.0] * len(values)
    for i in range(period - 1, len(values)):
        sma_values[i] = sum(values[i - period + 1 : i + 1]) / period

    return sma_values
