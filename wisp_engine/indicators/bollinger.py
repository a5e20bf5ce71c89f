"""Bollinger Bands indicator."""

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class BollingerBands:
    """Bollinger Bands output."""
    mid: list[float]
    upper: list[float]
    lower: list[float]


def calculate_bollinger_bands(
    values: list[float], period: int = 20, std_dev_mult: float = 2.0
) -> BollingerBands:
    """
    Calculate Bollinger Bands.

    Args:
        values: List of closing prices.
        period: SMA period.
        std_dev_mult: Standard deviation multiplier.

    Returns:
        BollingerBands object with lists.
    """
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")
    if std_dev_mult < 0:
        raise ValueError("std_dev_mult must be non-negative")

    length = len(values)
    mid = [0.0] * length
    upper = [0.0] * length
    lower = [0.0] * length

    if length < period:
        return BollingerBands(mid, upper, lower)

    for i in range(period - 1, length):
        mid[i], upper[i], lower[i] = bands_for_window(
            values[i - period + 1 : i + 1], std_dev_mult
        )

    return BollingerBands(mid=mid, upper=upper, lower=lower)


def bands_for_window(window: list[float], std_dev_mult: float) -> tuple[float, float, float]:
    """(mid, upper, lower) for one full window, using population deviation."""
    period = len(window)
    sma = sum(window) / period
    variance = sum((x - sma) ** 2 for x in window) / period
    std_dev = math.sqrt(variance)
    return sma, sma + (std_dev * std_dev_mult), sma - (std_dev * std_dev_mult)
