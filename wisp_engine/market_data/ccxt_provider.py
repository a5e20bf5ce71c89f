"""Exchange market data provider using CCXT.

Provides candles, orderbooks, tickers and funding rates via any CCXT
exchange. Uses CCXT's built-in rate limiting plus exponential backoff for
transient failures.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable

from wisp_engine.errors import MarketDataError, UnsupportedMarketDataError
from wisp_engine.market_data.provider import MarketDataProvider
from wisp_engine.models.asset import interval_seconds
from wisp_engine.models.candle import Candle, FundingRate, Orderbook

logger = logging.getLogger(__name__)

# Newest candle may lag by this many bars before data counts as stale
_DEFAULT_MAX_STALE_BARS = 2


def create_exchange(
    name: str,
    *,
    market_type: str = "spot",
    testnet: bool = False,
    api_key: str | None = None,
    secret: str | None = None,
) -> Any:
    """Build a rate-limited CCXT exchange instance.

    Args:
        name: CCXT exchange id (e.g. ``"binance"``, ``"bybit"``)
        market_type: ``"spot"`` or ``"swap"`` (perpetuals)
        testnet: Enable the exchange sandbox
        api_key: Optional API key (only needed for trading)
        secret: Optional API secret

    Raises:
        MarketDataError: If CCXT has no exchange with that id
    """
    import ccxt

    exchange_cls = getattr(ccxt, name, None)
    if exchange_cls is None:
        raise MarketDataError(f"Unknown ccxt exchange id: {name}")

    params: dict[str, Any] = {
        "enableRateLimit": True,
        "options": {"defaultType": market_type},
    }
    if api_key and secret:
        params["apiKey"] = api_key
        params["secret"] = secret

    exchange = exchange_cls(params)
    if testnet:
        exchange.set_sandbox_mode(True)
    return exchange


class CCXTMarketDataProvider(MarketDataProvider):
    """Market data provider backed by a CCXT exchange instance.

    Attributes:
        exchange: CCXT exchange instance (should have ``enableRateLimit=True``).
        max_stale_bars: Reject candles whose newest bar lags by more bars than this.
        max_retries: Maximum attempts on transient failures.
        base_backoff_seconds: Initial backoff interval for retries.
    """

    def __init__(
        self,
        exchange: Any,
        *,
        max_stale_bars: int = _DEFAULT_MAX_STALE_BARS,
        max_retries: int = 3,
        base_backoff_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialise the provider.

        Args:
            exchange: A configured CCXT exchange instance.
            max_stale_bars: Allowed lag of the newest candle, in bars.
            max_retries: Number of attempts on transient errors.
            base_backoff_seconds: Base interval for exponential backoff.
            sleep: Sleep function (injected in tests).
        """
        self.exchange = exchange
        self.name = str(getattr(exchange, "id", "ccxt"))
        self.max_stale_bars = max_stale_bars
        self.max_retries = max_retries
        self.base_backoff_seconds = base_backoff_seconds
        self._sleep = sleep

    # -- Public interface (MarketDataProvider) ---------------------------------

    def get_candles(self, pair: str, interval: str, limit: int) -> list[Candle]:
        """Fetch OHLCV candles.

        Returns:
            List of ``Candle`` objects, oldest first.

        Raises:
            MarketDataError: If all retries fail, data is empty or stale.
        """
        raw = self._retry(
            lambda: self.exchange.fetch_ohlcv(pair, interval, limit=limit),
            context=f"fetch_ohlcv({pair}, {interval})",
        )

        if not raw:
            raise MarketDataError(f"{self.name} returned empty candle data for {pair}/{interval}")

        candles = self._convert_candles(raw)
        self._check_staleness(candles, pair, interval)
        return candles

    def get_orderbook(self, pair: str, depth_levels: int) -> Orderbook:
        """Fetch an orderbook snapshot.

        Raises:
            MarketDataError: If all retries fail or the orderbook is empty.
        """
        raw = self._retry(
            lambda: self.exchange.fetch_order_book(pair, limit=depth_levels),
            context=f"fetch_order_book({pair})",
        )

        if not raw or not raw.get("bids") or not raw.get("asks"):
            raise MarketDataError(f"{self.name} returned empty orderbook for {pair}")

        return self._convert_orderbook(raw, depth_levels)

    def get_last_price(self, pair: str) -> float:
        """Last traded price from the ticker."""
        ticker = self._retry(
            lambda: self.exchange.fetch_ticker(pair),
            context=f"fetch_ticker({pair})",
        )
        last = (ticker or {}).get("last") or (ticker or {}).get("close")
        if last is None:
            raise MarketDataError(f"{self.name} ticker for {pair} has no last price")
        return float(last)

    def get_funding_rate(self, pair: str) -> FundingRate:
        """Current funding rate for a perpetual.

        Raises:
            UnsupportedMarketDataError: If the exchange has no funding endpoint.
        """
        has = getattr(self.exchange, "has", {}) or {}
        if not has.get("fetchFundingRate"):
            raise UnsupportedMarketDataError(f"{self.name} does not support funding rates")

        raw = self._retry(
            lambda: self.exchange.fetch_funding_rate(pair),
            context=f"fetch_funding_rate({pair})",
        )
        if not raw or raw.get("fundingRate") is None:
            raise MarketDataError(f"{self.name} returned no funding rate for {pair}")

        ts_ms = raw.get("timestamp")
        next_ms = raw.get("fundingTimestamp") or raw.get("nextFundingTimestamp")
        return FundingRate(
            pair=pair,
            exchange=self.name,
            rate=float(raw["fundingRate"]),
            timestamp=(
                datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc)
                if ts_ms
                else datetime.now(timezone.utc)
            ),
            next_funding_time=(
                datetime.fromtimestamp(next_ms / 1000.0, tz=timezone.utc) if next_ms else None
            ),
        )

    # -- Internal helpers ------------------------------------------------------

    def _retry(self, fn: Callable[[], Any], *, context: str) -> Any:
        """Execute ``fn`` with exponential backoff.

        Raises:
            MarketDataError: After exhausting all retries (cause chained).
        """
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                return fn()
            except Exception as exc:
                last_error = exc
                wait = self.base_backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    "%s API error on %s (attempt %d/%d): %s",
                    self.name,
                    context,
                    attempt,
                    self.max_retries,
                    exc,
                )
                if attempt < self.max_retries:
                    self._sleep(wait)

        raise MarketDataError(
            f"{self.name} API failed after {self.max_retries} retries "
            f"({context}): {last_error}"
        ) from last_error

    @staticmethod
    def _convert_candles(raw: list[list[Any]]) -> list[Candle]:
        """Convert raw ``[timestamp_ms, open, high, low, close, volume]`` rows."""
        return [Candle.from_ohlcv(row) for row in raw]

    def _check_staleness(self, candles: list[Candle], pair: str, interval: str) -> None:
        """Raise if the newest candle lags more than ``max_stale_bars`` bars."""
        if not candles:
            return

        max_age = interval_seconds(interval) * (self.max_stale_bars + 1)
        age_seconds = (datetime.now(timezone.utc) - candles[-1].timestamp).total_seconds()

        if age_seconds > max_age:
            raise MarketDataError(
                f"Stale market data for {pair}/{interval}: "
                f"newest candle is {age_seconds:.0f}s old (max {max_age}s)"
            )

    @staticmethod
    def _convert_orderbook(raw: dict[str, Any], depth: int) -> Orderbook:
        """Convert a CCXT orderbook dict to an ``Orderbook``."""
        # CCXT returns bids descending, asks ascending, matching Orderbook
        return Orderbook.from_levels(raw.get("bids", []), raw.get("asks", []), depth)
