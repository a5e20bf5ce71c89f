"""Backtesting: the same strategies over historical candles."""

from .data import load_candles_csv
from .market_provider import HistoricalMarketDataProvider
from .metrics import BacktestResult, MetricsCalculator, RoundTrip
from .runner import BacktestRunner

__all__ = [
    "BacktestResult",
    "BacktestRunner",
    "HistoricalMarketDataProvider",
    "MetricsCalculator",
    "RoundTrip",
    "load_candles_csv",
]
