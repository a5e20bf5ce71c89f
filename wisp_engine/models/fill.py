"""Execution result models."""

from dataclasses import dataclass
from datetime import datetime

from wisp_engine.models.signal import SignalAction, Side


@dataclass(frozen=True)
class Fill:
    """A (simulated or real) execution of one signal action."""

    signal_id: str
    side: Side
    pair: str
    exchange: str
    quantity: float
    price: float
    fee: float
    timestamp: datetime
    mode: str  # "PAPER", "BACKTEST" or "LIVE"
    exchange_order_id: str | None = None

    @property
    def notional(self) -> float:
        """Quote value of the fill before fees."""
        return self.price * self.quantity


@dataclass(frozen=True)
class Rejection:
    """A signal action that was not executed."""

    signal_id: str
    action: SignalAction
    reason: str
