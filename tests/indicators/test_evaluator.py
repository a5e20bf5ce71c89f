"""Tests for the caching indicator evaluator."""

from dataclasses import replace

import pytest

from wisp_engine.errors import InsufficientDataError, UnknownIndicatorError
from wisp_engine.indicators.evaluator import IndicatorEvaluator, IndicatorOptions, resolve_options
from wisp_engine.indicators.rsi import calculate_rsi
from wisp_engine.indicators.sma import calculate_sma
from wisp_engine.indicators.streaming import PriceSource
from wisp_engine.market_data.history import PriceHistoryStore
from wisp_engine.models.asset import SeriesKey

KEY = SeriesKey.of("BTC/USDT", "binance", "1h")
CLOSES = [100.0 + ((i * 7) % 11) - 5 + i * 0.3 for i in range(60)]


@pytest.fixture
def store() -> PriceHistoryStore:
    return PriceHistoryStore()


@pytest.fixture
def evaluator(store: PriceHistoryStore) -> IndicatorEvaluator:
    return IndicatorEvaluator(store)


class TestOptions:
    def test_defaults_filled(self) -> None:
        resolved = resolve_options("macd", None)
        assert resolved.fast_period == 12
        assert resolved.slow_period == 26
        assert resolved.signal_period == 9
        assert resolved.period is None

    def test_unrelated_fields_blanked(self) -> None:
        a = resolve_options("rsi", IndicatorOptions(period=14, std_dev=3.0))
        b = resolve_options("rsi", IndicatorOptions(period=14))
        assert a == b

    def test_source_ignored_for_candle_indicators(self) -> None:
        resolved = resolve_options("atr", IndicatorOptions(source=PriceSource.HIGH))
        assert resolved.source == PriceSource.CLOSE

    def test_unknown_indicator(self) -> None:
        with pytest.raises(UnknownIndicatorError, match="Available"):
            resolve_options("vwap", None)


class TestEvaluate:
    def test_rsi_matches_series(self, store, evaluator, make_candles) -> None:
        store.extend(KEY, make_candles(CLOSES))
        value = evaluator.rsi("BTC/USDT", "binance", IndicatorOptions(period=14))
        assert value == pytest.approx(calculate_rsi(CLOSES, 14)[-1])

    def test_insufficient_data(self, store, evaluator, make_candles) -> None:
        store.extend(KEY, make_candles(CLOSES[:14]))
        with pytest.raises(InsufficientDataError) as exc_info:
            evaluator.rsi("BTC/USDT", "binance", IndicatorOptions(period=14))
        assert exc_info.value.required == 15
        assert exc_info.value.available == 14

    def test_unknown_series_is_insufficient(self, evaluator) -> None:
        with pytest.raises(InsufficientDataError):
            evaluator.sma("ETH/USDT", "binance")

    def test_interval_selects_series(self, store, evaluator, make_candles) -> None:
        store.extend(SeriesKey.of("BTC/USDT", "binance", "4h"), make_candles([1.0, 2.0, 3.0], spread=0.5))
        store.extend(KEY, make_candles([10.0, 20.0, 30.0]))
        opts = IndicatorOptions(period=3)
        assert evaluator.sma("BTC/USDT", "binance", opts) == 20.0
        assert evaluator.sma("BTC/USDT", "binance", replace(opts, interval="4h")) == 2.0

    def test_multi_value_indicators(self, store, evaluator, make_candles) -> None:
        store.extend(KEY, make_candles(CLOSES))
        macd = evaluator.macd("BTC/USDT", "binance")
        bands = evaluator.bollinger_bands("BTC/USDT", "binance")
        stoch = evaluator.stochastic("BTC/USDT", "binance")
        assert macd.histogram == pytest.approx(macd.macd - macd.signal)
        assert bands.lower < bands.middle < bands.upper
        assert 0.0 <= stoch.k <= 100.0
        assert evaluator.ema("BTC/USDT", "binance") > 0
        assert evaluator.atr("BTC/USDT", "binance") > 0

    def test_evaluate_by_name(self, store, evaluator, make_candles) -> None:
        store.extend(KEY, make_candles(CLOSES))
        assert evaluator.evaluate("sma", "BTC/USDT", "binance", IndicatorOptions(period=5)) == pytest.approx(
            calculate_sma(CLOSES, 5)[-1]
        )


class TestCaching:
    def test_repeat_call_is_cache_hit(self, store, evaluator, make_candles) -> None:
        store.extend(KEY, make_candles(CLOSES))
        evaluator.rsi("BTC/USDT", "binance")
        evaluator.rsi("BTC/USDT", "binance")
        assert evaluator.stats.rebuilds == 1
        assert evaluator.stats.hits == 1
        assert evaluator.cached_entries() == 1

    def test_equivalent_options_share_entry(self, store, evaluator, make_candles) -> None:
        store.extend(KEY, make_candles(CLOSES))
        evaluator.rsi("BTC/USDT", "binance")
        evaluator.rsi("btc/usdt", "Binance", IndicatorOptions(period=14, std_dev=1.0))
        assert evaluator.cached_entries() == 1

    def test_new_candle_is_incremental(self, store, evaluator, make_candles) -> None:
        candles = make_candles(CLOSES)
        store.extend(KEY, candles[:-1])
        evaluator.rsi("BTC/USDT", "binance")
        store.append(KEY, candles[-1])

        value = evaluator.rsi("BTC/USDT", "binance")

        assert value == pytest.approx(calculate_rsi(CLOSES, 14)[-1])
        assert evaluator.stats.rebuilds == 1
        assert evaluator.stats.incremental_updates == 1

    def test_replaced_bar_is_amended(self, store, evaluator, make_candles) -> None:
        candles = make_candles(CLOSES)
        store.extend(KEY, candles)
        evaluator.sma("BTC/USDT", "binance", IndicatorOptions(period=5))

        store.append(KEY, replace(candles[-1], close=candles[-1].open + 0.5))
        value = evaluator.sma("BTC/USDT", "binance", IndicatorOptions(period=5))

        expected = calculate_sma(CLOSES[:-1] + [CLOSES[-1] + 0.5], 5)[-1]
        assert value == pytest.approx(expected)
        assert evaluator.stats.rebuilds == 1

    def test_eviction_past_tail_rebuilds(self, evaluator, make_candles) -> None:
        store = PriceHistoryStore(max_candles=20)
        evaluator = IndicatorEvaluator(store)
        candles = make_candles(CLOSES)
        store.extend(KEY, candles[:20])
        evaluator.sma("BTC/USDT", "binance", IndicatorOptions(period=5))

        store.extend(KEY, candles[20:45])
        value = evaluator.sma("BTC/USDT", "binance", IndicatorOptions(period=5))

        assert value == pytest.approx(calculate_sma(CLOSES[:45], 5)[-1])
        assert evaluator.stats.rebuilds == 2

    def test_clear_triggers_rebuild(self, store, evaluator, make_candles) -> None:
        store.extend(KEY, make_candles(CLOSES))
        evaluator.sma("BTC/USDT", "binance", IndicatorOptions(period=3))
        store.clear(KEY)
        store.extend(KEY, make_candles([1.0, 2.0, 3.0], spread=0.5))

        assert evaluator.sma("BTC/USDT", "binance", IndicatorOptions(period=3)) == 2.0
        assert evaluator.stats.rebuilds == 2

    def test_invalidate(self, store, evaluator, make_candles) -> None:
        store.extend(KEY, make_candles(CLOSES))
        evaluator.sma("BTC/USDT", "binance")
        evaluator.ema("BTC/USDT", "binance")
        assert evaluator.invalidate(KEY) == 2
        assert evaluator.cached_entries() == 0
        evaluator.sma("BTC/USDT", "binance")
        assert evaluator.invalidate() == 1
