"""Data models for market data, signals and executions."""

from .asset import Asset, SeriesKey, TimeframeSpec, interval_seconds
from .candle import Candle, FundingRate, Orderbook
from .fill import Fill, Rejection
from .signal import OrderType, Side, Signal, SignalAction

__all__ = [
    "Asset",
    "Candle",
    "Fill",
    "FundingRate",
    "OrderType",
    "Orderbook",
    "Rejection",
    "SeriesKey",
    "Side",
    "Signal",
    "SignalAction",
    "TimeframeSpec",
    "interval_seconds",
]
