"""Abstract execution engine interface."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping

from wisp_engine.execution.portfolio import Portfolio, PositionKey
from wisp_engine.models.fill import Fill, Rejection
from wisp_engine.models.signal import Signal, SignalAction

logger = logging.getLogger(__name__)


class ExecutionEngine(ABC):
    """Abstract interface for signal execution."""

    mode = "PAPER"

    def __init__(self, portfolio: Portfolio) -> None:
        self.portfolio = portfolio
        self._rejections: list[Rejection] = []

    @abstractmethod
    def execute(self, signal: Signal, prices: Mapping[PositionKey, float]) -> list[Fill]:
        """
        Execute every action of a signal.

        Args:
            signal: Signal to execute
            prices: Current price per (pair, exchange)

        Returns:
            Fills for the actions that executed. Actions that did not execute
            are available from ``drain_rejections``.
        """
        ...

    def reconcile_state(self) -> dict[str, Any]:
        """
        Reconcile internal state with the venue on startup.

        Returns:
            Venue-specific summary (empty for simulated engines)
        """
        return {}

    def drain_rejections(self) -> list[Rejection]:
        """Return and clear rejections recorded since the last call."""
        rejections, self._rejections = self._rejections, []
        return rejections

    def _reject(self, signal: Signal, action: SignalAction, reason: str) -> None:
        logger.info(
            "Rejected %s %s %s@%s (%s): %s",
            action.side.value,
            action.quantity,
            action.pair,
            action.exchange,
            signal.strategy,
            reason,
        )
        self._rejections.append(Rejection(signal_id=signal.id, action=action, reason=reason))
