"""Market data: price history store, providers and the strategy-facing facade."""

from .facade import MarketData
from .history import AppendResult, PriceHistoryStore, SeriesCursor
from .provider import MarketDataProvider
from .stub_provider import StubMarketDataProvider

__all__ = [
    "AppendResult",
    "MarketData",
    "MarketDataProvider",
    "PriceHistoryStore",
    "SeriesCursor",
    "StubMarketDataProvider",
]
