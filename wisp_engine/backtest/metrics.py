"""Performance metrics calculator for backtesting results."""

import json
import math
import statistics
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from wisp_engine.models.fill import Fill
from wisp_engine.models.signal import Side

_SECONDS_PER_YEAR = 365 * 24 * 3600


@dataclass
class RoundTrip:
    """A sell matched against the average cost of the position it reduced."""

    pair: str
    exchange: str
    quantity: float
    entry_price: float  # average cost per unit, buy fees included
    exit_price: float
    pnl: float  # net of fees on both legs
    closed_at: datetime


@dataclass
class BacktestResult:
    """Container for backtest performance metrics.

    Attributes:
        total_return_pct: Total return percentage
        net_profit: Net profit in quote currency
        max_drawdown_pct: Maximum peak-to-trough drawdown percentage
        sharpe_ratio: Annualized Sharpe ratio of per-step returns
        total_fills: Number of executed actions
        round_trips: Number of closing (sell) fills
        win_rate_pct: Share of profitable round trips
        equity_curve: List of (timestamp, equity) tuples
    """

    strategy: str = ""
    interval: str = ""
    total_return_pct: float = 0.0
    net_profit: float = 0.0
    max_drawdown_pct: float = 0.0
    max_drawdown: float = 0.0
    sharpe_ratio: float = 0.0
    total_fills: int = 0
    round_trips: int = 0
    winning_trips: int = 0
    losing_trips: int = 0
    win_rate_pct: float = 0.0
    fees_paid: float = 0.0
    rejections: int = 0
    start_equity: float = 0.0
    end_equity: float = 0.0
    start_time: datetime | None = None
    end_time: datetime | None = None
    equity_curve: list[tuple[datetime, float]] = field(default_factory=list)
    trips: list[RoundTrip] = field(default_factory=list)

    def to_dict(self, include_curve: bool = True) -> dict[str, Any]:
        """Convert metrics to dictionary for JSON serialization."""
        data: dict[str, Any] = {
            "strategy": self.strategy,
            "interval": self.interval,
            "total_return_pct": round(self.total_return_pct, 4),
            "net_profit": round(self.net_profit, 2),
            "max_drawdown_pct": round(self.max_drawdown_pct, 4),
            "max_drawdown": round(self.max_drawdown, 2),
            "sharpe_ratio": round(self.sharpe_ratio, 4),
            "total_fills": self.total_fills,
            "round_trips": self.round_trips,
            "winning_trips": self.winning_trips,
            "losing_trips": self.losing_trips,
            "win_rate_pct": round(self.win_rate_pct, 2),
            "fees_paid": round(self.fees_paid, 4),
            "rejections": self.rejections,
            "start_equity": round(self.start_equity, 2),
            "end_equity": round(self.end_equity, 2),
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
        }
        if include_curve:
            data["equity_curve"] = [[ts.isoformat(), round(eq, 4)] for ts, eq in self.equity_curve]
        return data

    def to_json(self, indent: int = 2) -> str:
        """Convert metrics to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)


class MetricsCalculator:
    """Calculator for backtest performance metrics.

    Example:
        >>> calculator = MetricsCalculator(starting_equity=10000.0, interval_seconds=3600)
        >>> calculator.add_fill(fill)
        >>> calculator.add_equity_point(ts, 10150.0)
        >>> result = calculator.calculate()
    """

    def __init__(self, starting_equity: float = 10000.0, interval_seconds: int = 3600):
        """Initialize metrics calculator.

        Args:
            starting_equity: Starting equity amount
            interval_seconds: Spacing of equity points, used to annualize Sharpe
        """
        self.starting_equity = starting_equity
        self.interval_seconds = interval_seconds
        self.fills: list[Fill] = []
        self.equity_curve: list[tuple[datetime, float]] = []
        self.rejections = 0

    def add_fill(self, fill: Fill) -> None:
        self.fills.append(fill)

    def add_equity_point(self, timestamp: datetime, equity: float) -> None:
        self.equity_curve.append((timestamp, equity))

    def _calculate_return_metrics(self) -> tuple[float, float]:
        """Total return percentage and net profit."""
        if not self.equity_curve:
            return 0.0, 0.0
        net_profit = self.equity_curve[-1][1] - self.starting_equity
        total_return_pct = (
            (net_profit / self.starting_equity) * 100.0 if self.starting_equity > 0 else 0.0
        )
        return total_return_pct, net_profit

    def _calculate_drawdown(self) -> tuple[float, float]:
        """Maximum drawdown as (percentage, absolute)."""
        max_equity = self.starting_equity
        max_drawdown_pct = 0.0
        max_drawdown = 0.0

        for _, equity in self.equity_curve:
            if equity > max_equity:
                max_equity = equity
            drawdown = max_equity - equity
            drawdown_pct = (drawdown / max_equity) * 100.0 if max_equity > 0 else 0.0
            if drawdown_pct > max_drawdown_pct:
                max_drawdown_pct = drawdown_pct
                max_drawdown = drawdown

        return max_drawdown_pct, max_drawdown

    def _calculate_sharpe_ratio(self, risk_free_rate: float = 0.0) -> float:
        """Annualized Sharpe ratio of per-step equity returns."""
        if len(self.equity_curve) < 2:
            return 0.0

        returns = []
        previous = self.starting_equity
        for _, equity in self.equity_curve:
            if previous > 0:
                returns.append((equity - previous) / previous)
            previous = equity

        if len(returns) < 2:
            return 0.0

        periods_per_year = _SECONDS_PER_YEAR / self.interval_seconds
        rf_per_period = risk_free_rate / periods_per_year
        excess_returns = [r - rf_per_period for r in returns]

        std_excess = statistics.stdev(excess_returns)
        if std_excess == 0:
            return 0.0
        return statistics.mean(excess_returns) / std_excess * math.sqrt(periods_per_year)

    def _round_trips(self) -> list[RoundTrip]:
        """Match sells against the running average cost of each position."""
        # (pair, exchange) -> [quantity, total cost including buy fees]
        books: dict[tuple[str, str], list[float]] = {}
        trips: list[RoundTrip] = []

        for fill in sorted(self.fills, key=lambda f: f.timestamp):
            key = (fill.pair, fill.exchange)
            book = books.setdefault(key, [0.0, 0.0])
            if fill.side == Side.BUY:
                book[0] += fill.quantity
                book[1] += fill.notional + fill.fee
                continue

            if book[0] <= 0:
                continue
            quantity = min(fill.quantity, book[0])
            unit_cost = book[1] / book[0]
            pnl = fill.price * quantity - fill.fee - unit_cost * quantity
            book[0] -= quantity
            book[1] -= unit_cost * quantity
            trips.append(
                RoundTrip(
                    pair=fill.pair,
                    exchange=fill.exchange,
                    quantity=quantity,
                    entry_price=unit_cost,
                    exit_price=fill.price,
                    pnl=pnl,
                    closed_at=fill.timestamp,
                )
            )
        return trips

    def calculate(self, strategy: str = "", interval: str = "") -> BacktestResult:
        """Calculate all metrics and return results."""
        total_return_pct, net_profit = self._calculate_return_metrics()
        max_drawdown_pct, max_drawdown = self._calculate_drawdown()
        trips = self._round_trips()
        wins = [t for t in trips if t.pnl > 0]
        losses = [t for t in trips if t.pnl < 0]

        return BacktestResult(
            strategy=strategy,
            interval=interval,
            total_return_pct=total_return_pct,
            net_profit=net_profit,
            max_drawdown_pct=max_drawdown_pct,
            max_drawdown=max_drawdown,
            sharpe_ratio=self._calculate_sharpe_ratio(),
            total_fills=len(self.fills),
            round_trips=len(trips),
            winning_trips=len(wins),
            losing_trips=len(losses),
            win_rate_pct=(len(wins) / len(trips) * 100.0) if trips else 0.0,
            fees_paid=sum(f.fee for f in self.fills),
            rejections=self.rejections,
            start_equity=self.starting_equity,
            end_equity=self.equity_curve[-1][1] if self.equity_curve else self.starting_equity,
            start_time=self.equity_curve[0][0] if self.equity_curve else None,
            end_time=self.equity_curve[-1][0] if self.equity_curve else None,
            equity_curve=list(self.equity_curve),
            trips=trips,
        )
