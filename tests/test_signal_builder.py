"""Tests for the fluent signal builder."""

from datetime import datetime, timezone

import pytest

from wisp_engine.errors import SignalError
from wisp_engine.models.signal import OrderType, Side
from wisp_engine.signals import SignalBuilder

TS = datetime(2024, 3, 1, tzinfo=timezone.utc)


def test_build_collects_actions_in_order() -> None:
    signal = (
        SignalBuilder("rsi_reversion", clock=lambda: TS)
        .buy("btc", "Binance", 0.1, reason="oversold")
        .sell("ETH/USDT", "binance", 2.0, price=3000.0)
        .tag("rsi", 25.0)
        .build()
    )

    assert signal.strategy == "rsi_reversion"
    assert signal.created_at == TS
    assert signal.tags == {"rsi": 25.0}
    buy, sell = signal.actions
    assert (buy.side, buy.pair, buy.exchange, buy.order_type) == (
        Side.BUY,
        "BTC/USDT",
        "binance",
        OrderType.MARKET,
    )
    assert buy.reason == "oversold"
    assert sell.order_type == OrderType.LIMIT
    assert sell.price == 3000.0


def test_build_is_a_snapshot() -> None:
    builder = SignalBuilder("s").buy("BTC/USDT", "binance", 1.0).tag("a", 1)
    first = builder.build()
    builder.sell("BTC/USDT", "binance", 1.0).tag("b", 2)
    second = builder.build()

    assert len(first.actions) == 1
    assert first.tags == {"a": 1}
    assert len(second.actions) == 2
    assert first.id != second.id


def test_empty_build_raises() -> None:
    builder = SignalBuilder("s")
    assert builder.empty
    with pytest.raises(SignalError, match="no actions"):
        builder.build()


def test_reset() -> None:
    builder = SignalBuilder("s").buy("BTC/USDT", "binance", 1.0).tag("x", 1)
    assert len(builder) == 1
    builder.reset()
    assert builder.empty
    assert len(builder) == 0


@pytest.mark.parametrize(
    "asset, exchange, qty",
    [
        ("", "binance", 1.0),
        ("BTC/USDT", "", 1.0),
        ("BTC/USDT", "binance", -1.0),
    ],
)
def test_invalid_actions_raise_signal_error(asset: str, exchange: str, qty: float) -> None:
    with pytest.raises(SignalError):
        SignalBuilder("s").buy(asset, exchange, qty)


def test_strategy_name_required() -> None:
    with pytest.raises(SignalError):
        SignalBuilder("")
