"""Stub market data provider for testing with deterministic data."""

from datetime import datetime, timedelta, timezone

from wisp_engine.models.asset import interval_seconds
from wisp_engine.models.candle import Candle, FundingRate, Orderbook

from .provider import MarketDataProvider


class StubMarketDataProvider(MarketDataProvider):
    """Stub provider returning fixed market data for testing."""

    name = "stub"

    def __init__(
        self,
        base_price: float = 50000.0,
        spread_bps: float = 2.0,  # 2 basis points = 0.02%
        volume: float = 100.0,
        funding_rate: float | None = 0.0001,
        now: datetime | None = None,
    ):
        """
        Initialize stub provider with configurable parameters.

        Args:
            base_price: Base price for the asset
            spread_bps: Spread in basis points (1 bp = 0.01%)
            volume: Volume for candles
            funding_rate: Funding rate returned for every pair (None = spot-only venue)
            now: Fixed "current" time for candle timestamps (default: wall clock)
        """
        self.base_price = base_price
        self.spread_bps = spread_bps
        self.volume = volume
        self.funding_rate = funding_rate
        self.now = now

    def _now(self) -> datetime:
        return self.now or datetime.now(timezone.utc)

    def get_candles(self, pair: str, interval: str, limit: int) -> list[Candle]:
        """Return deterministic candle data aligned to the interval grid."""
        step = interval_seconds(interval)
        now_ts = int(self._now().timestamp())
        last_open = now_ts - (now_ts % step)
        candles: list[Candle] = []

        for i in range(limit):
            timestamp = datetime.fromtimestamp(
                last_open - (limit - 1 - i) * step, tz=timezone.utc
            )
            candles.append(
                Candle(
                    timestamp=timestamp,
                    open=self.base_price,
                    high=self.base_price * 1.001,  # +0.1%
                    low=self.base_price * 0.999,  # -0.1%
                    close=self.base_price * 1.0005,  # +0.05%
                    volume=self.volume,
                )
            )

        return candles

    def get_orderbook(self, pair: str, depth_levels: int) -> Orderbook:
        """Return deterministic orderbook data."""
        spread = self.base_price * (self.spread_bps / 10000.0)
        mid_price = self.base_price

        best_bid = mid_price - (spread / 2)
        best_ask = mid_price + (spread / 2)

        bids = []
        asks = []

        for i in range(depth_levels):
            # Larger size at better prices
            qty = 10.0 * (depth_levels - i)
            bids.append((best_bid - (i * spread), qty))
            asks.append((best_ask + (i * spread), qty))

        return Orderbook(bids=bids, asks=asks)

    def get_last_price(self, pair: str) -> float:
        return self.base_price

    def get_funding_rate(self, pair: str) -> FundingRate:
        if self.funding_rate is None:
            return super().get_funding_rate(pair)
        now = self._now()
        return FundingRate(
            pair=pair,
            exchange=self.name,
            rate=self.funding_rate,
            timestamp=now,
            next_funding_time=now + timedelta(hours=8),
        )
