"""Market data models for candles, orderbook and funding rates."""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Sequence

Level = tuple[float, float]  # (price, quantity)


@dataclass(frozen=True)
class Candle:
    """One OHLCV bar, keyed by its open time (UTC)."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float

    def __post_init__(self) -> None:
        if self.timestamp.tzinfo is None:
            raise ValueError(f"Candle timestamp must be timezone-aware: {self.timestamp}")
        prices = (self.open, self.high, self.low, self.close)
        if not all(math.isfinite(p) and p >= 0 for p in prices):
            raise ValueError(f"Candle at {self.timestamp} has a negative or non-finite price: {prices}")
        if self.high < max(self.open, self.close, self.low):
            raise ValueError(f"High must be >= open, close and low (candle at {self.timestamp})")
        if self.low > min(self.open, self.close, self.high):
            raise ValueError(f"Low must be <= open, close and high (candle at {self.timestamp})")
        if self.volume < 0:
            raise ValueError(f"Volume must be non-negative (candle at {self.timestamp})")

    @classmethod
    def from_ohlcv(cls, row: Sequence[Any]) -> "Candle":
        """Build from an exchange row ``[timestamp_ms, open, high, low, close, volume]``."""
        ts_ms, o, h, l, c, v = row[:6]
        return cls(
            timestamp=datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc),
            open=float(o),
            high=float(h),
            low=float(l),
            close=float(c),
            volume=float(v or 0.0),
        )

    @property
    def typical_price(self) -> float:
        """(high + low + close) / 3."""
        return (self.high + self.low + self.close) / 3.0


@dataclass(frozen=True)
class Orderbook:
    """Top of book: bids best-first (descending), asks best-first (ascending)."""

    bids: list[Level]
    asks: list[Level]

    def __post_init__(self) -> None:
        for side, levels, descending in (("Bid", self.bids, True), ("Ask", self.asks, False)):
            if not levels:
                raise ValueError(f"Orderbook needs at least one {side.lower()} level")
            prices = [price for price, _ in levels]
            if prices != sorted(prices, reverse=descending):
                order = "descending" if descending else "ascending"
                raise ValueError(f"{side} prices must be in {order} order")

    @classmethod
    def from_levels(cls, bids: Sequence[Sequence[Any]], asks: Sequence[Sequence[Any]], depth: int) -> "Orderbook":
        """Keep the best ``depth`` levels of raw ``[price, quantity, ...]`` rows."""
        return cls(
            bids=[(float(level[0]), float(level[1])) for level in bids[:depth]],
            asks=[(float(level[0]), float(level[1])) for level in asks[:depth]],
        )

    @property
    def best_bid(self) -> float:
        return self.bids[0][0]

    @property
    def best_ask(self) -> float:
        return self.asks[0][0]

    @property
    def spread(self) -> float:
        """Bid-ask spread in price units."""
        return self.best_ask - self.best_bid

    @property
    def mid_price(self) -> float:
        return (self.best_bid + self.best_ask) / 2.0

    @property
    def spread_bps(self) -> float:
        """Spread relative to mid, in basis points."""
        return self.spread / self.mid_price * 10_000.0


@dataclass(frozen=True)
class FundingRate:
    """Perpetual funding rate snapshot."""

    pair: str
    exchange: str
    rate: float  # per funding period, e.g. 0.0001 = 0.01%
    timestamp: datetime
    next_funding_time: datetime | None = None

    @property
    def rate_bps(self) -> float:
        """Funding rate in basis points."""
        return self.rate * 10000.0
