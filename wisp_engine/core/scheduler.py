"""Strategy scheduler: runs strategies on their interval and routes signals.

Each strategy runs on a fixed, epoch-aligned grid of its interval. A
strategy is evaluated when its slot is due; slots missed because the
process was busy or asleep are skipped (and logged), never replayed.
"""

import dataclasses
import logging
import signal as os_signal
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from wisp_engine.cache.control import BotState, ControlPlane
from wisp_engine.config.models import SchedulerConfig
from wisp_engine.errors import MarketDataError, SignalError
from wisp_engine.execution.executor import ExecutionEngine
from wisp_engine.execution.portfolio import PortfolioView, PositionKey
from wisp_engine.indicators.evaluator import IndicatorEvaluator
from wisp_engine.market_data.facade import MarketData
from wisp_engine.models.asset import interval_seconds
from wisp_engine.models.fill import Fill, Rejection
from wisp_engine.models.signal import Signal
from wisp_engine.monitoring.metrics import MetricsService
from wisp_engine.persistence.repository import JournalRepository
from wisp_engine.strategies.interface import Strategy, StrategyContext

from .clock import Clock, SystemClock, floor_to_interval
from .state_machine import StateMachine, StrategyState

logger = logging.getLogger(__name__)

# Longest single sleep in run() so shutdown requests are noticed promptly
_MAX_SLEEP_SECONDS = 1.0


@dataclass
class ScheduledStrategy:
    """Scheduling bookkeeping for one strategy."""

    strategy: Strategy
    machine: StateMachine
    next_run: datetime | None = None
    consecutive_errors: int = 0
    started: bool = False
    runs: int = 0
    skipped_slots: int = 0

    @property
    def name(self) -> str:
        return self.strategy.name


class StrategyScheduler:
    """Coordinates strategy evaluation, execution and journaling."""

    def __init__(
        self,
        market: MarketData,
        indicators: IndicatorEvaluator,
        executor: ExecutionEngine,
        journal: JournalRepository | None = None,
        clock: Clock | None = None,
        control_plane: ControlPlane | None = None,
        metrics: MetricsService | None = None,
        config: SchedulerConfig | None = None,
        refresh_market_data: bool = True,
    ) -> None:
        """
        Initialize scheduler.

        Args:
            market: Market data facade
            indicators: Indicator evaluator over the same store
            executor: Execution engine (paper, backtest or live)
            journal: Optional run journal
            clock: Time source (wall clock by default)
            control_plane: Optional control plane for lifecycle state checks
            metrics: Optional Prometheus metrics
            config: Scheduler settings
            refresh_market_data: Fetch candles before each evaluation
                (False in backtests, where the runner feeds the store)
        """
        self.market = market
        self.indicators = indicators
        self.executor = executor
        self.journal = journal
        self.clock = clock or SystemClock()
        self.control_plane = control_plane
        self.metrics = metrics
        self.config = config or SchedulerConfig()
        self.refresh_market_data = refresh_market_data

        self._scheduled: dict[str, ScheduledStrategy] = {}
        self.equity_curve: list[tuple[datetime, float]] = []
        self.fills: list[Fill] = []
        self.rejections: list[Rejection] = []
        self.ticks = 0

        # Shutdown flag
        self._shutdown_requested = False

    # -- Registration ------------------------------------------------------------

    def add_strategy(self, strategy: Strategy) -> ScheduledStrategy:
        """
        Schedule a strategy.

        Raises:
            ValueError: If a strategy with the same name is already scheduled
        """
        if strategy.name in self._scheduled:
            raise ValueError(f"Strategy '{strategy.name}' is already scheduled")
        scheduled = ScheduledStrategy(strategy=strategy, machine=StateMachine(strategy.name))
        self._scheduled[strategy.name] = scheduled
        logger.info("Scheduled %r", strategy)
        return scheduled

    @property
    def strategies(self) -> dict[str, ScheduledStrategy]:
        return dict(self._scheduled)

    def state_of(self, name: str) -> StrategyState:
        return self._scheduled[name].machine.current_state

    # -- Tick --------------------------------------------------------------------

    def tick(self) -> int:
        """
        Evaluate every strategy whose slot is due.

        Returns:
            Number of strategies evaluated
        """
        now = self.clock.now()

        # Control plane gate
        if self.control_plane is not None:
            self.control_plane.heartbeat()
            state = self.control_plane.get_state()
            entries_allowed = self.control_plane.is_entries_allowed()
            if state == BotState.STOPPED:
                logger.info("Bot is STOPPED, skipping tick")
                return 0
        else:
            entries_allowed = True

        self.ticks += 1
        if self.metrics is not None:
            self.metrics.record_tick()

        evaluated = 0
        for scheduled in self._scheduled.values():
            if scheduled.machine.disabled:
                continue
            if scheduled.next_run is not None and scheduled.next_run > now:
                continue
            self._run_strategy(scheduled, now, entries_allowed=entries_allowed)
            self._schedule_next(scheduled, now)
            evaluated += 1

        if evaluated:
            self._snapshot_equity(now)
        return evaluated

    def _run_strategy(
        self, scheduled: ScheduledStrategy, now: datetime, *, entries_allowed: bool
    ) -> None:
        """IDLE → EVALUATING → ROUTING → IDLE, or DISABLED after repeated errors."""
        strategy = scheduled.strategy
        sm = scheduled.machine
        sm.transition_to(StrategyState.EVALUATING)

        try:
            if self.refresh_market_data:
                self._refresh(strategy)
            ctx = self._context(strategy, now)
            if not scheduled.started:
                strategy.on_start(ctx)
                scheduled.started = True
            signals = strategy.generate_signals(ctx)
            self._validate(strategy, signals)
        except Exception as exc:
            self._record_error(scheduled, exc, now, phase="evaluate")
            return

        scheduled.runs += 1
        sm.transition_to(StrategyState.ROUTING)
        try:
            for sig in signals:
                self._route(strategy, sig, now, entries_allowed=entries_allowed)
        except Exception as exc:
            self._record_error(scheduled, exc, now, phase="route")
            return

        scheduled.consecutive_errors = 0
        sm.transition_to(StrategyState.IDLE)

    def _refresh(self, strategy: Strategy) -> None:
        limit = max(self.config.refresh_limit, strategy.warmup)
        for exchange in strategy.exchanges:
            for asset in strategy.assets:
                self.market.refresh(asset, exchange, strategy.interval, limit)

    def _context(self, strategy: Strategy, now: datetime) -> StrategyContext:
        return StrategyContext(
            strategy=strategy.name,
            interval=strategy.interval,
            now=now,
            market=self.market,
            indicators=self.indicators,
            portfolio=PortfolioView(self.executor.portfolio, self._mark_prices()),
            params=dict(strategy.params),
        )

    @staticmethod
    def _validate(strategy: Strategy, signals: Any) -> None:
        if not isinstance(signals, list):
            raise SignalError(
                f"{strategy.name}.generate_signals returned {type(signals).__name__}, "
                "expected list[Signal]"
            )
        for item in signals:
            if not isinstance(item, Signal):
                raise SignalError(
                    f"{strategy.name}.generate_signals returned a {type(item).__name__} "
                    "inside the list, expected Signal"
                )

    def _route(
        self, strategy: Strategy, sig: Signal, now: datetime, *, entries_allowed: bool
    ) -> None:
        if not entries_allowed and sig.buys:
            if not sig.sells:
                logger.info("Bot is PAUSED, suppressing buy-only signal %s", sig.id[:8])
                self._journal_event(
                    "signal.suppressed",
                    "WARN",
                    {"signal_id": sig.id, "reason": "paused"},
                    strategy.name,
                    now,
                )
                return
            logger.info("Bot is PAUSED, routing only the sells of signal %s", sig.id[:8])
            sig = dataclasses.replace(sig, actions=sig.sells)

        prices = self._action_prices(sig)
        if self.journal is not None:
            self.journal.save_signal(sig)
        if self.metrics is not None:
            self.metrics.record_signal(strategy.name)

        fills = self.executor.execute(sig, prices)
        for fill in fills:
            self.fills.append(fill)
            if self.journal is not None:
                self.journal.save_fill(fill)
            if self.metrics is not None:
                self.metrics.record_fill(strategy.name, fill.pair, fill.side.value)
            strategy.on_fill(fill)

        for rejection in self.executor.drain_rejections():
            self.rejections.append(rejection)
            self._journal_event(
                "signal.rejected",
                "WARN",
                {
                    "signal_id": rejection.signal_id,
                    "side": rejection.action.side,
                    "pair": rejection.action.pair,
                    "exchange": rejection.action.exchange,
                    "quantity": rejection.action.quantity,
                    "reason": rejection.reason,
                },
                strategy.name,
                now,
            )
            if self.metrics is not None:
                self.metrics.record_rejection(strategy.name, rejection.reason)

    def _action_prices(self, sig: Signal) -> dict[PositionKey, float]:
        prices: dict[PositionKey, float] = {}
        for action in sig.actions:
            key = (action.pair, action.exchange)
            if key not in prices:
                prices[key] = self.market.current_price(action.pair, action.exchange)
        return prices

    def _mark_prices(self) -> dict[PositionKey, float]:
        """Current prices for held positions (entry price where unavailable)."""
        prices: dict[PositionKey, float] = {}
        for (pair, exchange), position in self.executor.portfolio.positions.items():
            try:
                prices[(pair, exchange)] = self.market.current_price(pair, exchange)
            except MarketDataError as e:
                logger.warning("No mark price for %s@%s: %s", pair, exchange, e)
                prices[(pair, exchange)] = position.avg_entry_price
        return prices

    def _record_error(
        self, scheduled: ScheduledStrategy, exc: Exception, now: datetime, *, phase: str
    ) -> None:
        scheduled.consecutive_errors += 1
        logger.error(
            "Strategy %s failed during %s (%d/%d consecutive): %s",
            scheduled.name,
            phase,
            scheduled.consecutive_errors,
            self.config.max_consecutive_errors,
            exc,
            exc_info=True,
        )
        self._journal_event(
            "strategy.error",
            "ERROR",
            {
                "phase": phase,
                "error": str(exc),
                "error_type": type(exc).__name__,
                "consecutive_errors": scheduled.consecutive_errors,
            },
            scheduled.name,
            now,
        )
        if self.metrics is not None:
            self.metrics.record_strategy_error(scheduled.name)

        if scheduled.consecutive_errors >= self.config.max_consecutive_errors:
            scheduled.machine.transition_to(StrategyState.DISABLED)
            logger.error("Strategy %s disabled after repeated errors", scheduled.name)
            self._journal_event(
                "strategy.disabled",
                "ERROR",
                {"consecutive_errors": scheduled.consecutive_errors},
                scheduled.name,
                now,
            )
        else:
            scheduled.machine.transition_to(StrategyState.IDLE)

    def _schedule_next(self, scheduled: ScheduledStrategy, now: datetime) -> None:
        step = interval_seconds(scheduled.strategy.interval)
        slot = floor_to_interval(now, step)
        if scheduled.next_run is not None and slot > scheduled.next_run:
            missed = int((slot - scheduled.next_run).total_seconds() // step)
            scheduled.skipped_slots += missed
            logger.warning(
                "Strategy %s skipped %d missed slot(s) since %s",
                scheduled.name,
                missed,
                scheduled.next_run.isoformat(),
            )
        scheduled.next_run = slot + timedelta(seconds=step)

    def _snapshot_equity(self, now: datetime) -> None:
        portfolio = self.executor.portfolio
        equity = portfolio.equity(self._mark_prices())
        self.equity_curve.append((now, equity))
        if self.journal is not None:
            self.journal.save_equity_snapshot(
                equity=equity,
                cash=portfolio.cash,
                realized_pnl=portfolio.realized_pnl,
                open_positions=portfolio.open_positions,
                ts=now,
            )
        if self.metrics is not None:
            self.metrics.set_equity(equity)
            self.metrics.set_open_positions(portfolio.open_positions)

    def _journal_event(
        self,
        event_type: str,
        level: str,
        payload: dict[str, Any],
        strategy: str | None = None,
        ts: datetime | None = None,
    ) -> None:
        if self.journal is not None:
            self.journal.append_event(event_type, level, payload, strategy=strategy, ts=ts)

    # -- Run loop ------------------------------------------------------------------

    def next_due(self) -> datetime | None:
        """Earliest next_run among enabled strategies (None if none are enabled)."""
        due = [
            s.next_run or self.clock.now()
            for s in self._scheduled.values()
            if not s.machine.disabled
        ]
        return min(due) if due else None

    def run(self, max_ticks: int | None = None) -> int:
        """
        Run the scheduler continuously or for a fixed number of ticks.

        Args:
            max_ticks: Maximum number of ticks to run (None = until stopped)

        Returns:
            Number of ticks executed
        """
        self._shutdown_requested = False
        self._journal_event(
            "system.started",
            "INFO",
            {"mode": self.executor.mode, "strategies": list(self._scheduled)},
        )
        self.executor.reconcile_state()

        # Signal handlers can only be installed from the main thread
        previous_handlers: dict[int, Any] = {}
        if threading.current_thread() is threading.main_thread():
            for signum in (os_signal.SIGINT, os_signal.SIGTERM):
                previous_handlers[signum] = os_signal.signal(signum, self._signal_handler)

        tick_count = 0
        reason = "shutdown_requested"
        try:
            while not self._shutdown_requested:
                if (
                    self.control_plane is not None
                    and self.control_plane.get_state() == BotState.STOPPED
                ):
                    reason = "control_plane_stopped"
                    break

                self.tick()
                tick_count += 1

                if max_ticks is not None and tick_count >= max_ticks:
                    reason = "max_ticks"
                    break

                due = self.next_due()
                if due is None:
                    reason = "all_strategies_disabled"
                    logger.error("All strategies disabled, stopping")
                    break
                self._sleep_until(due)
        finally:
            for signum, handler in previous_handlers.items():
                os_signal.signal(signum, handler)
            self._journal_event(
                "system.stopped",
                "INFO",
                {"ticks_executed": tick_count, "reason": reason},
            )
        return tick_count

    def _sleep_until(self, due: datetime) -> None:
        """Sleep in short chunks until ``due``, waking early on shutdown or STOPPED."""
        while not self._shutdown_requested:
            if self.control_plane is not None:
                self.control_plane.heartbeat()
                if self.control_plane.get_state() == BotState.STOPPED:
                    return
            remaining = (due - self.clock.now()).total_seconds()
            if remaining <= 0:
                return
            self.clock.sleep(min(remaining, _MAX_SLEEP_SECONDS))

    def request_shutdown(self) -> None:
        self._shutdown_requested = True

    def _signal_handler(self, signum: int, frame: Any) -> None:
        """Handle shutdown signals gracefully."""
        logger.info("Received signal %d, shutting down", signum)
        self._shutdown_requested = True
