"""Asset, interval and series identity models."""

from dataclasses import dataclass
from typing import NamedTuple

DEFAULT_QUOTE = "USDT"

# Seconds per bar for every supported interval
INTERVAL_SECONDS: dict[str, int] = {
    "1m": 60,
    "3m": 180,
    "5m": 300,
    "15m": 900,
    "30m": 1800,
    "1h": 3600,
    "2h": 7200,
    "4h": 14400,
    "6h": 21600,
    "12h": 43200,
    "1d": 86400,
    "1w": 604800,
}


@dataclass(frozen=True)
class Asset:
    """Tradable asset quoted against a quote currency."""

    symbol: str
    quote: str = DEFAULT_QUOTE

    def __post_init__(self) -> None:
        if not self.symbol or not self.symbol.strip():
            raise ValueError("Asset symbol must be non-empty")
        if not self.quote or not self.quote.strip():
            raise ValueError("Asset quote must be non-empty")
        object.__setattr__(self, "symbol", self.symbol.strip().upper())
        object.__setattr__(self, "quote", self.quote.strip().upper())

    @property
    def pair(self) -> str:
        """Exchange pair notation, e.g. ``BTC/USDT``."""
        return f"{self.symbol}/{self.quote}"

    @classmethod
    def parse(cls, value: "str | Asset") -> "Asset":
        """Parse ``"BTC/USDT"`` or ``"BTC"`` (default quote)."""
        if isinstance(value, Asset):
            return value
        if "/" in value:
            base, quote = value.split("/", 1)
            return cls(base, quote)
        return cls(value)

    def __str__(self) -> str:
        return self.pair


@dataclass(frozen=True)
class TimeframeSpec:
    """Immutable candle interval specification."""

    name: str
    seconds: int

    @classmethod
    def from_string(cls, interval: str) -> "TimeframeSpec":
        """
        Parse an interval string like '15m', '1h', '1d'.

        Raises:
            ValueError: If the interval is not recognized
        """
        key = interval.lower().strip()
        if key not in INTERVAL_SECONDS:
            valid = list(INTERVAL_SECONDS.keys())
            raise ValueError(f"Unknown interval: '{interval}'. Valid options: {valid}")
        return cls(name=key, seconds=INTERVAL_SECONDS[key])


def interval_seconds(interval: str) -> int:
    """Seconds per bar for an interval string."""
    return TimeframeSpec.from_string(interval).seconds


class SeriesKey(NamedTuple):
    """Identity of one candle series: pair on an exchange at an interval."""

    pair: str
    exchange: str
    interval: str

    @classmethod
    def of(cls, asset: "str | Asset", exchange: str, interval: str) -> "SeriesKey":
        return cls(
            Asset.parse(asset).pair,
            exchange.lower(),
            TimeframeSpec.from_string(interval).name,
        )
