"""Abstract market data provider interface."""

from abc import ABC, abstractmethod

from wisp_engine.errors import UnsupportedMarketDataError
from wisp_engine.models.candle import Candle, FundingRate, Orderbook


class MarketDataProvider(ABC):
    """Abstract interface for market data providers."""

    name: str = "provider"

    @abstractmethod
    def get_candles(self, pair: str, interval: str, limit: int) -> list[Candle]:
        """
        Fetch OHLCV candles for a pair.

        Args:
            pair: Trading pair (e.g., "BTC/USDT")
            interval: Candle interval (e.g., "1m", "5m", "1h")
            limit: Number of candles to fetch

        Returns:
            List of candles, most recent last
        """
        ...

    @abstractmethod
    def get_orderbook(self, pair: str, depth_levels: int) -> Orderbook:
        """
        Fetch orderbook snapshot for a pair.

        Args:
            pair: Trading pair (e.g., "BTC/USDT")
            depth_levels: Number of price levels to fetch per side

        Returns:
            Orderbook with bids and asks
        """
        ...

    def get_last_price(self, pair: str) -> float:
        """
        Last traded price.

        Providers without a ticker raise UnsupportedMarketDataError and the
        facade falls back to the newest stored close.
        """
        raise UnsupportedMarketDataError(f"{self.name} does not provide last price")

    def get_funding_rate(self, pair: str) -> FundingRate:
        """
        Current perpetual funding rate.

        Raises:
            UnsupportedMarketDataError: If the venue/market has no funding
        """
        raise UnsupportedMarketDataError(f"{self.name} does not provide funding rates")
