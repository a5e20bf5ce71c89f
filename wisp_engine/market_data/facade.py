"""Market data facade used by strategies.

Routes requests to the provider registered for each exchange and keeps
fetched candles in the shared price history store.
"""

import logging

from wisp_engine.errors import (
    MarketDataError,
    UnknownExchangeError,
    UnsupportedMarketDataError,
)
from wisp_engine.market_data.history import PriceHistoryStore
from wisp_engine.market_data.provider import MarketDataProvider
from wisp_engine.models.asset import Asset, SeriesKey
from wisp_engine.models.candle import Candle, FundingRate, Orderbook

logger = logging.getLogger(__name__)


class MarketData:
    """Current price, orderbook, funding and candle access across exchanges."""

    def __init__(
        self,
        store: PriceHistoryStore,
        providers: dict[str, MarketDataProvider] | None = None,
    ) -> None:
        """
        Initialize the facade.

        Args:
            store: Shared price history store
            providers: Provider per exchange name (case-insensitive)
        """
        self.store = store
        self._providers: dict[str, MarketDataProvider] = {
            name.lower(): provider for name, provider in (providers or {}).items()
        }

    def register(self, exchange: str, provider: MarketDataProvider) -> None:
        self._providers[exchange.lower()] = provider

    @property
    def exchanges(self) -> list[str]:
        return sorted(self._providers)

    def provider(self, exchange: str) -> MarketDataProvider:
        """
        Provider for an exchange.

        Raises:
            UnknownExchangeError: If no provider is registered
        """
        provider = self._providers.get(exchange.lower())
        if provider is None:
            raise UnknownExchangeError(
                f"No market data provider for exchange '{exchange}'. "
                f"Configured: {', '.join(self.exchanges) or '(none)'}"
            )
        return provider

    def refresh(self, asset: "str | Asset", exchange: str, interval: str, limit: int = 200) -> int:
        """
        Fetch recent candles from the provider into the store.

        Returns:
            Number of candles appended or replaced

        Raises:
            MarketDataError: If the provider fails
        """
        key = SeriesKey.of(asset, exchange, interval)
        provider = self.provider(exchange)
        try:
            candles = provider.get_candles(key.pair, key.interval, limit)
        except MarketDataError:
            raise
        except Exception as exc:
            raise MarketDataError(
                f"Failed to fetch candles for {key.pair}@{key.exchange}/{key.interval}: {exc}"
            ) from exc

        changed = self.store.extend(key, candles)
        logger.debug("Refreshed %s: %d candles changed", key, changed)
        return changed

    def candles(
        self,
        asset: "str | Asset",
        exchange: str,
        interval: str,
        limit: int | None = None,
    ) -> list[Candle]:
        """Stored candles, oldest first."""
        return self.store.window(SeriesKey.of(asset, exchange, interval), limit)

    def current_price(self, asset: "str | Asset", exchange: str) -> float:
        """
        Latest price for an asset on an exchange.

        Uses the provider ticker; when the provider has none, falls back to the
        newest stored close across intervals.

        Raises:
            MarketDataError: If neither source has a price
        """
        pair = Asset.parse(asset).pair
        provider = self.provider(exchange)
        try:
            return provider.get_last_price(pair)
        except UnsupportedMarketDataError:
            pass
        except MarketDataError:
            raise
        except Exception as exc:
            raise MarketDataError(f"Failed to fetch price for {pair}@{exchange}: {exc}") from exc

        latest = self._latest_stored(pair, exchange)
        if latest is None:
            raise MarketDataError(f"No price available for {pair}@{exchange}")
        return latest.close

    def _latest_stored(self, pair: str, exchange: str) -> Candle | None:
        newest: Candle | None = None
        for key in self.store.keys():
            if key.pair != pair or key.exchange != exchange.lower():
                continue
            candle = self.store.latest(key)
            if candle is not None and (newest is None or candle.timestamp > newest.timestamp):
                newest = candle
        return newest

    def order_book(self, asset: "str | Asset", exchange: str, depth: int = 10) -> Orderbook:
        """Orderbook snapshot for an asset on an exchange."""
        if depth < 1:
            raise ValueError("depth must be >= 1")
        pair = Asset.parse(asset).pair
        provider = self.provider(exchange)
        try:
            return provider.get_orderbook(pair, depth)
        except MarketDataError:
            raise
        except Exception as exc:
            raise MarketDataError(f"Failed to fetch orderbook for {pair}@{exchange}: {exc}") from exc

    def funding_rate(self, asset: "str | Asset", exchange: str) -> FundingRate:
        """
        Perpetual funding rate for an asset on an exchange.

        Raises:
            UnsupportedMarketDataError: If the exchange has no funding data
        """
        pair = Asset.parse(asset).pair
        provider = self.provider(exchange)
        try:
            return provider.get_funding_rate(pair)
        except MarketDataError:
            raise
        except Exception as exc:
            raise MarketDataError(f"Failed to fetch funding for {pair}@{exchange}: {exc}") from exc
