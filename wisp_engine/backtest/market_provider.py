"""Backtest market data provider over historical candles."""

import bisect
from datetime import datetime, timedelta

from wisp_engine.core.clock import SimulatedClock
from wisp_engine.errors import MarketDataError
from wisp_engine.market_data.provider import MarketDataProvider
from wisp_engine.models.asset import Asset, interval_seconds
from wisp_engine.models.candle import Candle, Orderbook


class HistoricalMarketDataProvider(MarketDataProvider):
    """Market data provider for backtesting using historical data.

    Only candles that have closed at the simulated time are visible, so a
    strategy can never see the future.

    Example:
        >>> clock = SimulatedClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))
        >>> provider = HistoricalMarketDataProvider(clock, "1h", {"BTC/USDT": candles})
        >>> provider.get_candles("BTC/USDT", "1h", 100)
    """

    def __init__(
        self,
        clock: SimulatedClock,
        interval: str,
        candles: dict[str, list[Candle]],
        name: str = "backtest",
    ) -> None:
        """Initialize backtest market provider.

        Args:
            clock: Simulated time source
            interval: Interval of the supplied candles
            candles: Candles per pair, any order
            name: Exchange name reported by the provider
        """
        self.clock = clock
        self.interval = interval
        self.name = name
        self._step = timedelta(seconds=interval_seconds(interval))
        self._candles: dict[str, list[Candle]] = {}
        self._close_times: dict[str, list[datetime]] = {}
        for pair, series in candles.items():
            ordered = sorted(series, key=lambda c: c.timestamp)
            key = Asset.parse(pair).pair
            self._candles[key] = ordered
            self._close_times[key] = [c.timestamp + self._step for c in ordered]

    def _series(self, pair: str) -> list[Candle]:
        series = self._candles.get(pair)
        if series is None:
            raise MarketDataError(f"No historical data for {pair} on {self.name}")
        return series

    def _closed_count(self, pair: str) -> int:
        """Number of candles closed at the current simulated time."""
        self._series(pair)
        return bisect.bisect_right(self._close_times[pair], self.clock.now())

    def closed_candles(self, pair: str) -> list[Candle]:
        return self._series(pair)[: self._closed_count(pair)]

    def get_candles(self, pair: str, interval: str, limit: int) -> list[Candle]:
        """Closed candles up to the simulated time, most recent last.

        Raises:
            MarketDataError: Unknown pair or an interval other than the data's
        """
        if interval != self.interval:
            raise MarketDataError(
                f"Backtest data for {self.name} is {self.interval}, requested {interval}"
            )
        end = self._closed_count(pair)
        return self._series(pair)[max(0, end - limit) : end]

    def get_last_price(self, pair: str) -> float:
        end = self._closed_count(pair)
        if end == 0:
            raise MarketDataError(f"No closed candle for {pair} at {self.clock.now()}")
        return self._series(pair)[end - 1].close

    def get_orderbook(self, pair: str, depth_levels: int) -> Orderbook:
        """Synthetic orderbook around the last close.

        Spread widens with the candle's range (between 1 and 5 bps).
        """
        end = self._closed_count(pair)
        if end == 0:
            raise MarketDataError(f"No closed candle for {pair} at {self.clock.now()}")
        candle = self._series(pair)[end - 1]

        mid_price = candle.close
        volatility = (candle.high - candle.low) / candle.close
        spread_pct = max(0.0001, min(0.0005, volatility * 0.1))
        half_spread = mid_price * spread_pct / 2
        best_bid = mid_price - half_spread
        best_ask = mid_price + half_spread

        bids: list[tuple[float, float]] = []
        asks: list[tuple[float, float]] = []
        for i in range(depth_levels):
            qty = 1.0 / (i + 1)
            bids.append((best_bid * (1 - i * 0.0005), qty))
            asks.append((best_ask * (1 + i * 0.0005), qty))
        return Orderbook(bids=bids, asks=asks)

    def close_times(self) -> list[datetime]:
        """Every candle close time across pairs, sorted and unique."""
        return sorted({t for times in self._close_times.values() for t in times})
