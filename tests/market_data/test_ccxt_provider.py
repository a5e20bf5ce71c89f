"""Tests for the CCXT market data provider."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from wisp_engine.errors import MarketDataError, UnsupportedMarketDataError
from wisp_engine.market_data.ccxt_provider import CCXTMarketDataProvider, create_exchange


def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def _ohlcv_rows(count: int = 3, step_ms: int = 3_600_000) -> list[list[float]]:
    last = _now_ms() - (_now_ms() % step_ms)
    return [
        [last - (count - 1 - i) * step_ms, 100.0 + i, 101.0 + i, 99.0 + i, 100.5 + i, 5.0]
        for i in range(count)
    ]


@pytest.fixture
def exchange() -> MagicMock:
    mock = MagicMock()
    mock.id = "binance"
    mock.has = {"fetchFundingRate": True}
    return mock


@pytest.fixture
def provider(exchange: MagicMock) -> CCXTMarketDataProvider:
    return CCXTMarketDataProvider(exchange, max_retries=3, sleep=lambda _: None)


class TestGetCandles:
    def test_converts_rows(self, provider: CCXTMarketDataProvider, exchange: MagicMock) -> None:
        exchange.fetch_ohlcv.return_value = _ohlcv_rows(3)

        candles = provider.get_candles("BTC/USDT", "1h", 3)

        exchange.fetch_ohlcv.assert_called_once_with("BTC/USDT", "1h", limit=3)
        assert len(candles) == 3
        assert candles[0].close == 100.5
        assert candles[-1].timestamp.tzinfo is not None
        assert candles[0].timestamp < candles[1].timestamp

    def test_empty_raises(self, provider: CCXTMarketDataProvider, exchange: MagicMock) -> None:
        exchange.fetch_ohlcv.return_value = []
        with pytest.raises(MarketDataError, match="empty"):
            provider.get_candles("BTC/USDT", "1h", 3)

    def test_stale_raises(self, provider: CCXTMarketDataProvider, exchange: MagicMock) -> None:
        old = 1_600_000_000_000
        exchange.fetch_ohlcv.return_value = [[old, 1.0, 1.0, 1.0, 1.0, 1.0]]
        with pytest.raises(MarketDataError, match="Stale"):
            provider.get_candles("BTC/USDT", "1h", 1)

    def test_retries_then_succeeds(self, exchange: MagicMock) -> None:
        sleeps: list[float] = []
        provider = CCXTMarketDataProvider(
            exchange, max_retries=3, base_backoff_seconds=0.5, sleep=sleeps.append
        )
        exchange.fetch_ohlcv.side_effect = [Exception("timeout"), _ohlcv_rows(2)]

        candles = provider.get_candles("BTC/USDT", "1h", 2)

        assert len(candles) == 2
        assert sleeps == [0.5]

    def test_exhausted_retries_raise(self, provider: CCXTMarketDataProvider, exchange: MagicMock) -> None:
        exchange.fetch_ohlcv.side_effect = Exception("down")
        with pytest.raises(MarketDataError, match="after 3 retries"):
            provider.get_candles("BTC/USDT", "1h", 2)
        assert exchange.fetch_ohlcv.call_count == 3


class TestOtherEndpoints:
    def test_orderbook(self, provider: CCXTMarketDataProvider, exchange: MagicMock) -> None:
        exchange.fetch_order_book.return_value = {
            "bids": [[99.0, 1.0], [98.0, 2.0], [97.0, 3.0]],
            "asks": [[101.0, 1.0], [102.0, 2.0]],
        }
        book = provider.get_orderbook("BTC/USDT", 2)
        assert book.bids == [(99.0, 1.0), (98.0, 2.0)]
        assert book.best_ask == 101.0

    def test_empty_orderbook_raises(self, provider: CCXTMarketDataProvider, exchange: MagicMock) -> None:
        exchange.fetch_order_book.return_value = {"bids": [], "asks": []}
        with pytest.raises(MarketDataError, match="empty orderbook"):
            provider.get_orderbook("BTC/USDT", 5)

    def test_last_price(self, provider: CCXTMarketDataProvider, exchange: MagicMock) -> None:
        exchange.fetch_ticker.return_value = {"last": "123.5"}
        assert provider.get_last_price("BTC/USDT") == 123.5

    def test_last_price_missing(self, provider: CCXTMarketDataProvider, exchange: MagicMock) -> None:
        exchange.fetch_ticker.return_value = {}
        with pytest.raises(MarketDataError, match="no last price"):
            provider.get_last_price("BTC/USDT")

    def test_funding_rate(self, provider: CCXTMarketDataProvider, exchange: MagicMock) -> None:
        exchange.fetch_funding_rate.return_value = {
            "fundingRate": 0.0001,
            "timestamp": 1_700_000_000_000,
            "fundingTimestamp": 1_700_028_800_000,
        }
        rate = provider.get_funding_rate("BTC/USDT:USDT")
        assert rate.rate == 0.0001
        assert rate.rate_bps == pytest.approx(1.0)
        assert rate.exchange == "binance"
        assert rate.next_funding_time is not None

    def test_funding_unsupported(self, provider: CCXTMarketDataProvider, exchange: MagicMock) -> None:
        exchange.has = {}
        with pytest.raises(UnsupportedMarketDataError):
            provider.get_funding_rate("BTC/USDT")


class TestCreateExchange:
    def test_unknown_exchange(self) -> None:
        with patch.dict("sys.modules", {"ccxt": MagicMock(spec=[])}):
            with pytest.raises(MarketDataError, match="Unknown ccxt exchange"):
                create_exchange("nope")

    def test_configures_keys_and_sandbox(self) -> None:
        ccxt_mock = MagicMock()
        with patch.dict("sys.modules", {"ccxt": ccxt_mock}):
            exchange = create_exchange(
                "bybit", market_type="swap", testnet=True, api_key="k", secret="s"
            )

        params = ccxt_mock.bybit.call_args.args[0]
        assert params["apiKey"] == "k"
        assert params["secret"] == "s"
        assert params["options"] == {"defaultType": "swap"}
        assert params["enableRateLimit"] is True
        exchange.set_sandbox_mode.assert_called_once_with(True)
