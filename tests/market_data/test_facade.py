"""Tests for the market data facade."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from wisp_engine.errors import MarketDataError, UnknownExchangeError, UnsupportedMarketDataError
from wisp_engine.market_data.facade import MarketData
from wisp_engine.market_data.history import PriceHistoryStore
from wisp_engine.market_data.provider import MarketDataProvider
from wisp_engine.market_data.stub_provider import StubMarketDataProvider
from wisp_engine.models.asset import SeriesKey

NOW = datetime(2024, 1, 2, 12, 30, tzinfo=timezone.utc)


class CandleOnlyProvider(MarketDataProvider):
    """Provider without ticker or funding support."""

    def __init__(self, candles) -> None:
        self.candles = candles

    def get_candles(self, pair, interval, limit):
        return self.candles[-limit:]

    def get_orderbook(self, pair, depth_levels):
        raise RuntimeError("no book")


class TestRouting:
    def test_unknown_exchange(self) -> None:
        market = MarketData(PriceHistoryStore())
        with pytest.raises(UnknownExchangeError, match="kraken"):
            market.current_price("BTC/USDT", "kraken")

    def test_unknown_exchange_is_key_error(self) -> None:
        market = MarketData(PriceHistoryStore())
        with pytest.raises(KeyError):
            market.provider("kraken")

    def test_exchange_names_case_insensitive(self) -> None:
        stub = StubMarketDataProvider(base_price=10.0)
        market = MarketData(PriceHistoryStore(), {"Binance": stub})
        assert market.provider("BINANCE") is stub
        assert market.exchanges == ["binance"]

    def test_register(self) -> None:
        market = MarketData(PriceHistoryStore())
        market.register("Bybit", StubMarketDataProvider())
        assert market.exchanges == ["bybit"]


class TestRefresh:
    def test_refresh_fills_store(self) -> None:
        store = PriceHistoryStore()
        market = MarketData(store, {"binance": StubMarketDataProvider(now=NOW)})

        changed = market.refresh("btc/usdt", "binance", "1h", limit=5)

        assert changed == 5
        candles = market.candles("BTC/USDT", "binance", "1h")
        assert len(candles) == 5
        assert candles[-1].timestamp == datetime(2024, 1, 2, 12, tzinfo=timezone.utc)

    def test_refresh_twice_is_idempotent(self) -> None:
        store = PriceHistoryStore()
        market = MarketData(store, {"binance": StubMarketDataProvider(now=NOW)})
        market.refresh("BTC/USDT", "binance", "1h", limit=5)
        assert market.refresh("BTC/USDT", "binance", "1h", limit=5) == 0
        assert store.cursor(SeriesKey.of("BTC/USDT", "binance", "1h")).total_appended == 5

    def test_refresh_longer_than_retained_history(self) -> None:
        store = PriceHistoryStore(max_candles=50)
        stub = StubMarketDataProvider(now=NOW)
        market = MarketData(store, {"binance": stub})
        assert market.refresh("BTC/USDT", "binance", "1h", limit=200) == 200

        stub.now = NOW + timedelta(hours=1)

        assert market.refresh("BTC/USDT", "binance", "1h", limit=200) == 1
        window = market.candles("BTC/USDT", "binance", "1h")
        assert len(window) == 50
        assert window[-1].timestamp == datetime(2024, 1, 2, 13, tzinfo=timezone.utc)

    def test_provider_error_wrapped(self) -> None:
        provider = MagicMock(spec=MarketDataProvider)
        provider.get_candles.side_effect = RuntimeError("boom")
        market = MarketData(PriceHistoryStore(), {"binance": provider})
        with pytest.raises(MarketDataError, match="boom"):
            market.refresh("BTC/USDT", "binance", "1h")


class TestPrices:
    def test_current_price_from_ticker(self) -> None:
        market = MarketData(PriceHistoryStore(), {"binance": StubMarketDataProvider(base_price=42.0)})
        assert market.current_price("BTC/USDT", "binance") == 42.0

    def test_current_price_falls_back_to_store(self, make_candles) -> None:
        candles = make_candles([100.0, 101.0, 102.0])
        market = MarketData(PriceHistoryStore(), {"binance": CandleOnlyProvider(candles)})
        market.refresh("BTC/USDT", "binance", "1h", limit=3)
        assert market.current_price("BTC/USDT", "binance") == 102.0

    def test_current_price_without_data(self, make_candles) -> None:
        market = MarketData(PriceHistoryStore(), {"binance": CandleOnlyProvider([])})
        with pytest.raises(MarketDataError, match="No price"):
            market.current_price("BTC/USDT", "binance")

    def test_order_book(self) -> None:
        market = MarketData(PriceHistoryStore(), {"binance": StubMarketDataProvider(base_price=100.0)})
        book = market.order_book("BTC/USDT", "binance", depth=3)
        assert len(book.bids) == 3
        assert book.best_bid < book.best_ask

    def test_order_book_invalid_depth(self) -> None:
        market = MarketData(PriceHistoryStore(), {"binance": StubMarketDataProvider()})
        with pytest.raises(ValueError):
            market.order_book("BTC/USDT", "binance", depth=0)

    def test_order_book_error_wrapped(self) -> None:
        market = MarketData(PriceHistoryStore(), {"binance": CandleOnlyProvider([])})
        with pytest.raises(MarketDataError, match="no book"):
            market.order_book("BTC/USDT", "binance")

    def test_funding_rate(self) -> None:
        market = MarketData(PriceHistoryStore(), {"binance": StubMarketDataProvider(now=NOW)})
        rate = market.funding_rate("BTC/USDT", "binance")
        assert rate.rate == 0.0001
        assert rate.next_funding_time == datetime(2024, 1, 2, 20, 30, tzinfo=timezone.utc)

    def test_funding_rate_unsupported(self) -> None:
        market = MarketData(PriceHistoryStore(), {"binance": CandleOnlyProvider([])})
        with pytest.raises(UnsupportedMarketDataError):
            market.funding_rate("BTC/USDT", "binance")
