"""Strategy interface definition."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from wisp_engine.execution.portfolio import PortfolioView
from wisp_engine.indicators.evaluator import IndicatorEvaluator, IndicatorOptions
from wisp_engine.market_data.facade import MarketData
from wisp_engine.models.asset import Asset, TimeframeSpec
from wisp_engine.models.fill import Fill
from wisp_engine.models.signal import Signal
from wisp_engine.signals.builder import SignalBuilder


@dataclass
class StrategyContext:
    """Everything a strategy sees during one evaluation.

    ``now`` is wall time in live trading and simulated time in backtests,
    so the same strategy code runs unchanged in both.
    """

    strategy: str
    interval: str
    now: datetime
    market: MarketData
    indicators: IndicatorEvaluator
    portfolio: PortfolioView
    params: dict[str, Any] = field(default_factory=dict)

    def signal(self) -> SignalBuilder:
        """Fresh builder stamped with the context time."""
        now = self.now
        return SignalBuilder(self.strategy, clock=lambda: now)

    def options(self, **kwargs: Any) -> IndicatorOptions:
        """Indicator options defaulting to the strategy interval."""
        kwargs.setdefault("interval", self.interval)
        return IndicatorOptions(**kwargs)

    @property
    def log(self) -> logging.Logger:
        return logging.getLogger(f"wisp_engine.strategies.{self.strategy}")


class Strategy(ABC):
    """Base class for trading strategies.

    Subclasses set ``name`` and ``default_params`` and implement
    ``generate_signals``. Parameters passed at construction override the
    defaults key by key.
    """

    name = "strategy"
    default_params: dict[str, Any] = {}

    def __init__(
        self,
        interval: str = "1h",
        assets: list["str | Asset"] | None = None,
        exchanges: list[str] | None = None,
        warmup: int = 100,
        params: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize the strategy.

        Args:
            interval: Evaluation interval (e.g. "1h")
            assets: Assets traded (default BTC/USDT)
            exchanges: Exchanges traded on (default binance)
            warmup: Candles needed before the first evaluation
            params: Strategy-specific parameter overrides

        Raises:
            ValueError: Unknown interval, empty assets/exchanges or negative warmup
        """
        self.interval = TimeframeSpec.from_string(interval).name
        self.assets = [Asset.parse(a) for a in (assets or ["BTC/USDT"])]
        self.exchanges = [e.lower() for e in (exchanges or ["binance"])]
        if not self.assets or not self.exchanges:
            raise ValueError("A strategy needs at least one asset and one exchange")
        if warmup < 0:
            raise ValueError("warmup must be >= 0")
        self.warmup = warmup
        self.params = {**self.default_params, **(params or {})}

    @abstractmethod
    def generate_signals(self, ctx: StrategyContext) -> list[Signal]:
        """
        Evaluate the market and return zero or more signals.

        Args:
            ctx: Evaluation context

        Returns:
            List of signals (empty when there is nothing to do)
        """
        ...

    def on_start(self, ctx: StrategyContext) -> None:
        """Called once before the first evaluation."""

    def on_fill(self, fill: Fill) -> None:
        """Called after each fill produced by this strategy's signals."""

    def __repr__(self) -> str:
        pairs = ",".join(a.pair for a in self.assets)
        return f"{type(self).__name__}({self.name}, {self.interval}, {pairs}@{','.join(self.exchanges)})"
