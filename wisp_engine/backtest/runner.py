"""Backtest runner: the same Strategy, driven by a simulated clock."""

import logging
from pathlib import Path
from typing import Mapping

from wisp_engine.config.models import WispConfig
from wisp_engine.core.clock import SimulatedClock
from wisp_engine.core.scheduler import StrategyScheduler
from wisp_engine.execution.paper_executor import PaperExecutor
from wisp_engine.execution.portfolio import Portfolio
from wisp_engine.indicators.evaluator import IndicatorEvaluator
from wisp_engine.market_data.facade import MarketData
from wisp_engine.market_data.history import PriceHistoryStore
from wisp_engine.models.asset import Asset, SeriesKey, interval_seconds
from wisp_engine.models.candle import Candle
from wisp_engine.persistence.repository import JournalRepository
from wisp_engine.strategies.interface import Strategy

from .data import load_candles_csv
from .market_provider import HistoricalMarketDataProvider
from .metrics import BacktestResult, MetricsCalculator

logger = logging.getLogger(__name__)

DataSource = str | Path | list[Candle]


class BacktestRunner:
    """Runs a strategy over historical candles with paper execution.

    At every candle close the runner advances the simulated clock, appends
    the newly closed candles to the price history store and ticks the
    scheduler, exactly as live trading would on its interval.

    Example:
        >>> runner = BacktestRunner(config, strategy, {("BTC/USDT", "binance"): "btc_1h.csv"})
        >>> result = runner.run()
        >>> print(f"Total Return: {result.total_return_pct:.2f}%")
    """

    def __init__(
        self,
        config: WispConfig,
        strategy: Strategy,
        data: Mapping[tuple[str, str], DataSource],
        journal: JournalRepository | None = None,
    ) -> None:
        """Initialize backtest runner.

        Args:
            config: Engine configuration (risk, execution costs, scheduler)
            strategy: Strategy to evaluate
            data: Candles (or a CSV path) per (pair, exchange); the candles
                must be at the strategy interval
            journal: Optional run journal
        """
        self.config = config
        self.strategy = strategy
        self.journal = journal
        self._data = {
            (Asset.parse(pair).pair, exchange.lower()): source
            for (pair, exchange), source in data.items()
        }
        self._check_coverage()

    def _check_coverage(self) -> None:
        required = {(a.pair, e) for e in self.strategy.exchanges for a in self.strategy.assets}
        missing = sorted(required - set(self._data))
        if missing:
            names = ", ".join(f"{pair}@{exchange}" for pair, exchange in missing)
            raise ValueError(f"No backtest data for {names}")

    def _load(self) -> dict[tuple[str, str], list[Candle]]:
        loaded: dict[tuple[str, str], list[Candle]] = {}
        for key, source in self._data.items():
            candles = load_candles_csv(source) if isinstance(source, (str, Path)) else list(source)
            if not candles:
                raise ValueError(f"No candles for {key[0]}@{key[1]}")
            loaded[key] = sorted(candles, key=lambda c: c.timestamp)
        return loaded

    def run(self) -> BacktestResult:
        """Execute the backtest and compute metrics."""
        strategy = self.strategy
        interval = strategy.interval
        step = interval_seconds(interval)
        series = self._load()

        clock = SimulatedClock()
        by_exchange: dict[str, dict[str, list[Candle]]] = {}
        for (pair, exchange), candles in series.items():
            by_exchange.setdefault(exchange, {})[pair] = candles
        providers = {
            exchange: HistoricalMarketDataProvider(clock, interval, pairs, name=exchange)
            for exchange, pairs in by_exchange.items()
        }

        store = PriceHistoryStore(self.config.scheduler.history_limit)
        market = MarketData(store, providers)
        portfolio = Portfolio(self.config.risk.starting_cash)
        executor = PaperExecutor(
            portfolio,
            self.config.risk,
            self.config.execution,
            clock=clock.now,
            mode="BACKTEST",
        )
        scheduler = StrategyScheduler(
            market=market,
            indicators=IndicatorEvaluator(store),
            executor=executor,
            journal=self.journal,
            clock=clock,
            config=self.config.scheduler,
            refresh_market_data=False,
        )
        scheduler.add_strategy(strategy)

        close_times = sorted({t for p in providers.values() for t in p.close_times()})
        fed = {key: 0 for key in series}
        ticks = 0

        logger.info(
            "Backtest %s on %s: %d steps from %s to %s",
            strategy.name,
            interval,
            len(close_times),
            close_times[0],
            close_times[-1],
        )

        for now in close_times:
            clock.advance_to(now)
            for (pair, exchange), candles in series.items():
                closed = providers[exchange].closed_candles(pair)
                key = SeriesKey.of(pair, exchange, interval)
                store.extend(key, closed[fed[(pair, exchange)] :])
                fed[(pair, exchange)] = len(closed)

            if min(fed.values()) < strategy.warmup:
                continue
            scheduler.tick()
            ticks += 1

        logger.info("Backtest finished after %d ticks", ticks)

        calculator = MetricsCalculator(self.config.risk.starting_cash, interval_seconds=step)
        for fill in scheduler.fills:
            calculator.add_fill(fill)
        for ts, equity in scheduler.equity_curve:
            calculator.add_equity_point(ts, equity)
        calculator.rejections = len(scheduler.rejections)
        return calculator.calculate(strategy=strategy.name, interval=interval)
