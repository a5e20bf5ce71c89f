"""Tests for the strategy scheduler."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from wisp_engine.cache.control import BotState, InMemoryControlPlane
from wisp_engine.config.models import ExecutionConfig, RiskConfig, SchedulerConfig
from wisp_engine.core.clock import SimulatedClock
from wisp_engine.core.scheduler import StrategyScheduler
from wisp_engine.core.state_machine import StrategyState
from wisp_engine.execution.paper_executor import PaperExecutor
from wisp_engine.execution.portfolio import Portfolio
from wisp_engine.indicators.evaluator import IndicatorEvaluator
from wisp_engine.market_data.facade import MarketData
from wisp_engine.market_data.history import PriceHistoryStore
from wisp_engine.market_data.stub_provider import StubMarketDataProvider
from wisp_engine.models.asset import SeriesKey
from wisp_engine.monitoring.metrics import MetricsService
from wisp_engine.persistence.repository import JournalRepository
from wisp_engine.strategies.interface import Strategy

T0 = datetime(2024, 1, 1, 0, 10, tzinfo=timezone.utc)


class ScriptedStrategy(Strategy):
    """Returns (or raises) the next scripted item on each evaluation."""

    name = "scripted"

    def __init__(self, script=None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.script = list(script or [])
        self.calls: list[datetime] = []
        self.fills = []
        self.started = 0

    def on_start(self, ctx) -> None:
        self.started += 1

    def generate_signals(self, ctx):
        self.calls.append(ctx.now)
        item = self.script.pop(0) if self.script else []
        if isinstance(item, Exception):
            raise item
        return item(ctx) if callable(item) else item

    def on_fill(self, fill) -> None:
        self.fills.append(fill)


def buy(qty: float = 1.0):
    return lambda ctx: [ctx.signal().buy("BTC/USDT", "binance", qty).build()]


def sell(qty: float = 1.0):
    return lambda ctx: [ctx.signal().sell("BTC/USDT", "binance", qty).build()]


def buy_and_sell(ctx):
    return [
        ctx.signal()
        .buy("ETH/USDT", "binance", 1.0)
        .sell("BTC/USDT", "binance", 1.0)
        .build()
    ]


def _scheduler(
    journal: JournalRepository | None = None,
    control_plane=None,
    max_errors: int = 3,
    refresh: bool = False,
    metrics=None,
) -> StrategyScheduler:
    clock = SimulatedClock(T0)
    store = PriceHistoryStore()
    market = MarketData(store, {"binance": StubMarketDataProvider(base_price=100.0, now=T0)})
    executor = PaperExecutor(
        Portfolio(10_000.0),
        RiskConfig(max_position_size=5_000.0),
        ExecutionConfig(taker_fee_bps=0.0, slippage_bps=0.0),
        clock=clock.now,
    )
    return StrategyScheduler(
        market=market,
        indicators=IndicatorEvaluator(store),
        executor=executor,
        journal=journal,
        clock=clock,
        control_plane=control_plane,
        metrics=metrics,
        config=SchedulerConfig(max_consecutive_errors=max_errors, refresh_limit=10),
        refresh_market_data=refresh,
    )


class TestTiming:
    def test_runs_once_per_slot(self) -> None:
        scheduler = _scheduler()
        strategy = ScriptedStrategy()
        scheduler.add_strategy(strategy)

        assert scheduler.tick() == 1
        scheduler.clock.advance(20 * 60)
        assert scheduler.tick() == 0
        scheduler.clock.advance_to(datetime(2024, 1, 1, 1, 0, tzinfo=timezone.utc))
        assert scheduler.tick() == 1
        assert len(strategy.calls) == 2
        assert strategy.started == 1

    def test_missed_slots_are_skipped(self) -> None:
        scheduler = _scheduler()
        strategy = ScriptedStrategy()
        scheduled = scheduler.add_strategy(strategy)

        scheduler.tick()
        scheduler.clock.advance_to(datetime(2024, 1, 1, 4, 5, tzinfo=timezone.utc))
        assert scheduler.tick() == 1

        assert scheduled.skipped_slots == 3
        assert scheduled.next_run == datetime(2024, 1, 1, 5, 0, tzinfo=timezone.utc)
        assert len(strategy.calls) == 2

    def test_next_due(self) -> None:
        scheduler = _scheduler()
        scheduler.add_strategy(ScriptedStrategy())
        assert scheduler.next_due() == T0
        scheduler.tick()
        assert scheduler.next_due() == datetime(2024, 1, 1, 1, 0, tzinfo=timezone.utc)

    def test_duplicate_strategy_rejected(self) -> None:
        scheduler = _scheduler()
        scheduler.add_strategy(ScriptedStrategy())
        with pytest.raises(ValueError, match="already scheduled"):
            scheduler.add_strategy(ScriptedStrategy())


class TestRouting:
    def test_buy_is_filled_and_journaled(self, in_memory_db) -> None:
        journal = JournalRepository(in_memory_db)
        scheduler = _scheduler(journal=journal)
        strategy = ScriptedStrategy([buy(2.0)])
        scheduler.add_strategy(strategy)

        scheduler.tick()

        assert len(scheduler.fills) == 1
        assert strategy.fills == scheduler.fills
        assert scheduler.executor.portfolio.quantity("BTC/USDT", "binance") == 2.0
        assert journal.count_signals("scripted") == 1
        [fill] = journal.list_fills()
        assert fill["quantity"] == 2.0
        assert fill["price"] == 100.0
        assert scheduler.equity_curve == [(T0, 10_000.0)]
        assert journal.latest_equity()["open_positions"] == 1
        assert scheduler.state_of("scripted") == StrategyState.IDLE

    def test_rejection_is_journaled(self, in_memory_db) -> None:
        journal = JournalRepository(in_memory_db)
        scheduler = _scheduler(journal=journal)
        scheduler.add_strategy(ScriptedStrategy([sell()]))

        scheduler.tick()

        assert scheduler.fills == []
        assert [r.reason for r in scheduler.rejections] == ["insufficient_position"]
        [event] = journal.list_events("signal.rejected")
        assert event["payload"]["reason"] == "insufficient_position"
        assert event["payload"]["side"] == "SELL"
        assert event["strategy"] == "scripted"

    def test_paused_suppresses_buy_only_signals(self, in_memory_db) -> None:
        journal = JournalRepository(in_memory_db)
        scheduler = _scheduler(journal=journal, control_plane=InMemoryControlPlane(BotState.PAUSED))
        scheduler.add_strategy(ScriptedStrategy([buy()]))

        assert scheduler.tick() == 1

        assert scheduler.fills == []
        assert journal.count_signals() == 0
        assert len(journal.list_events("signal.suppressed")) == 1

    def test_paused_routes_only_sells(self) -> None:
        control = InMemoryControlPlane(BotState.RUNNING)
        scheduler = _scheduler(control_plane=control)
        scheduler.add_strategy(ScriptedStrategy([buy(1.0), buy_and_sell]))
        scheduler.tick()

        control.set_state(BotState.PAUSED)
        scheduler.clock.advance(3600)
        scheduler.tick()

        sides = [(f.side.value, f.pair) for f in scheduler.fills]
        assert sides == [("BUY", "BTC/USDT"), ("SELL", "BTC/USDT")]

    def test_stopped_skips_tick(self) -> None:
        control = InMemoryControlPlane(BotState.STOPPED)
        scheduler = _scheduler(control_plane=control)
        strategy = ScriptedStrategy()
        scheduler.add_strategy(strategy)

        assert scheduler.tick() == 0
        assert strategy.calls == []
        assert control.last_heartbeat() is not None

    def test_refresh_loads_candles(self) -> None:
        scheduler = _scheduler(refresh=True)
        scheduler.add_strategy(ScriptedStrategy(warmup=25))
        scheduler.tick()
        key = SeriesKey.of("BTC/USDT", "binance", "1h")
        assert len(scheduler.market.store.window(key)) == 25

    def test_metrics_recorded(self) -> None:
        metrics = MagicMock(spec=MetricsService)
        scheduler = _scheduler(metrics=metrics)
        scheduler.add_strategy(ScriptedStrategy([buy()]))
        scheduler.tick()

        metrics.record_tick.assert_called_once()
        metrics.record_signal.assert_called_once_with("scripted")
        metrics.record_fill.assert_called_once_with("scripted", "BTC/USDT", "BUY")
        metrics.set_equity.assert_called_once_with(10_000.0)


class TestErrors:
    def test_error_returns_to_idle(self, in_memory_db) -> None:
        journal = JournalRepository(in_memory_db)
        scheduler = _scheduler(journal=journal)
        scheduled = scheduler.add_strategy(ScriptedStrategy([RuntimeError("boom")]))

        scheduler.tick()

        assert scheduled.consecutive_errors == 1
        assert scheduler.state_of("scripted") == StrategyState.IDLE
        [event] = journal.list_events("strategy.error")
        assert event["payload"]["error"] == "boom"
        assert event["payload"]["error_type"] == "RuntimeError"
        assert event["payload"]["phase"] == "evaluate"

    def test_success_resets_error_count(self) -> None:
        scheduler = _scheduler()
        scheduled = scheduler.add_strategy(ScriptedStrategy([RuntimeError("x"), []]))
        scheduler.tick()
        scheduler.clock.advance(3600)
        scheduler.tick()
        assert scheduled.consecutive_errors == 0

    def test_disabled_after_max_errors(self, in_memory_db) -> None:
        journal = JournalRepository(in_memory_db)
        scheduler = _scheduler(journal=journal, max_errors=2)
        strategy = ScriptedStrategy([RuntimeError("a"), RuntimeError("b"), []])
        scheduler.add_strategy(strategy)

        scheduler.tick()
        scheduler.clock.advance(3600)
        scheduler.tick()
        scheduler.clock.advance(3600)

        assert scheduler.state_of("scripted") == StrategyState.DISABLED
        assert scheduler.tick() == 0
        assert len(strategy.calls) == 2
        assert len(journal.list_events("strategy.disabled")) == 1
        assert scheduler.next_due() is None

    def test_non_list_return_is_an_error(self) -> None:
        scheduler = _scheduler()
        scheduled = scheduler.add_strategy(ScriptedStrategy([lambda ctx: None]))
        scheduler.tick()
        assert scheduled.consecutive_errors == 1

    def test_non_signal_item_is_an_error(self) -> None:
        scheduler = _scheduler()
        scheduled = scheduler.add_strategy(ScriptedStrategy([[{"side": "BUY"}]]))
        scheduler.tick()
        assert scheduled.consecutive_errors == 1


class TestRunLoop:
    def test_max_ticks(self, in_memory_db) -> None:
        journal = JournalRepository(in_memory_db)
        scheduler = _scheduler(journal=journal)
        strategy = ScriptedStrategy()
        scheduler.add_strategy(strategy)

        assert scheduler.run(max_ticks=2) == 2

        assert strategy.calls == [T0, datetime(2024, 1, 1, 1, 0, tzinfo=timezone.utc)]
        started = journal.list_events("system.started")[0]
        assert started["payload"] == {"mode": "PAPER", "strategies": ["scripted"]}
        stopped = journal.list_events("system.stopped")[0]
        assert stopped["payload"] == {"ticks_executed": 2, "reason": "max_ticks"}

    def test_stops_on_control_plane(self, in_memory_db) -> None:
        journal = JournalRepository(in_memory_db)
        control = InMemoryControlPlane(BotState.RUNNING)
        scheduler = _scheduler(journal=journal, control_plane=control)

        def stop(ctx):
            control.set_state(BotState.STOPPED)
            return []

        scheduler.add_strategy(ScriptedStrategy([stop]))

        assert scheduler.run() == 1
        assert journal.list_events("system.stopped")[0]["payload"]["reason"] == "control_plane_stopped"

    def test_stops_when_all_disabled(self, in_memory_db) -> None:
        journal = JournalRepository(in_memory_db)
        scheduler = _scheduler(journal=journal, max_errors=1)
        scheduler.add_strategy(ScriptedStrategy([RuntimeError("fatal")]))

        assert scheduler.run() == 1
        assert journal.list_events("system.stopped")[0]["payload"]["reason"] == "all_strategies_disabled"

    def test_shutdown_request(self) -> None:
        scheduler = _scheduler()

        def shutdown(ctx):
            scheduler.request_shutdown()
            return []

        scheduler.add_strategy(ScriptedStrategy([shutdown]))
        assert scheduler.run() == 1
        assert scheduler.clock.now() == T0

    def test_stop_noticed_while_sleeping(self, in_memory_db) -> None:
        journal = JournalRepository(in_memory_db)
        control = InMemoryControlPlane(BotState.RUNNING)
        scheduler = _scheduler(journal=journal, control_plane=control)
        scheduler.add_strategy(ScriptedStrategy())
        clock = scheduler.clock
        advance = clock.sleep
        sleeps: list[float] = []

        def sleep(seconds: float) -> None:
            sleeps.append(seconds)
            control.set_state(BotState.STOPPED)
            advance(seconds)

        clock.sleep = sleep

        assert scheduler.run() == 1
        assert len(sleeps) == 1
        assert journal.list_events("system.stopped")[0]["payload"]["reason"] == "control_plane_stopped"
        assert control.last_heartbeat() is not None

    def test_sleep_waits_for_next_slot(self) -> None:
        scheduler = _scheduler()
        scheduler.add_strategy(ScriptedStrategy())
        scheduler.run(max_ticks=3)
        assert scheduler.clock.now() == T0 + timedelta(minutes=50) + timedelta(hours=1)
