"""Paper execution engine with deterministic simulated fills."""

import logging
from datetime import datetime, timezone
from typing import Callable, Mapping, cast

from wisp_engine.config.models import ExecutionConfig, RiskConfig
from wisp_engine.models.fill import Fill
from wisp_engine.models.signal import OrderType, Side, Signal, SignalAction

from .executor import ExecutionEngine
from .portfolio import Portfolio, PositionKey

logger = logging.getLogger(__name__)

# Rejection reasons
NO_PRICE = "no_price"
LIMIT_NOT_CROSSED = "limit_not_crossed"
MAX_POSITION_SIZE = "max_position_size"
MAX_OPEN_POSITIONS = "max_open_positions"
INSUFFICIENT_CASH = "insufficient_cash"
INSUFFICIENT_POSITION = "insufficient_position"

_EPSILON = 1e-9


class PaperExecutor(ExecutionEngine):
    """Paper executor that simulates fills against the current price.

    MARKET actions fill at the current price adjusted by slippage. LIMIT
    actions fill at their limit price when the current price has crossed it
    and are rejected otherwise. Risk limits are checked per action; a
    rejected action does not stop the rest of the signal.
    """

    def __init__(
        self,
        portfolio: Portfolio,
        risk: RiskConfig,
        execution: ExecutionConfig,
        clock: Callable[[], datetime] | None = None,
        mode: str = "PAPER",
    ) -> None:
        """
        Initialize paper executor.

        Args:
            portfolio: Portfolio updated by every fill
            risk: Position and cash limits
            execution: Fee and slippage model
            clock: Timestamp source for fills (simulated in backtests)
            mode: Mode recorded on fills ("PAPER" or "BACKTEST")
        """
        super().__init__(portfolio)
        self.risk = risk
        self.execution = execution
        self.mode = mode
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def execute(self, signal: Signal, prices: Mapping[PositionKey, float]) -> list[Fill]:
        fills: list[Fill] = []
        for action in signal.actions:
            fill = self._execute_action(signal, action, prices)
            if fill is not None:
                self.portfolio.apply_fill(fill)
                fills.append(fill)
                logger.info(
                    "%s fill: %s %.8f %s@%s at %.8f (fee %.8f)",
                    self.mode,
                    fill.side.value,
                    fill.quantity,
                    fill.pair,
                    fill.exchange,
                    fill.price,
                    fill.fee,
                )
        return fills

    def _execute_action(
        self,
        signal: Signal,
        action: SignalAction,
        prices: Mapping[PositionKey, float],
    ) -> Fill | None:
        price = prices.get((action.pair, action.exchange))
        if price is None or price <= 0:
            self._reject(signal, action, NO_PRICE)
            return None

        fill_price = self._fill_price(action, price)
        if fill_price is None:
            self._reject(signal, action, LIMIT_NOT_CROSSED)
            return None

        notional = fill_price * action.quantity
        fee = notional * self.execution.taker_fee_bps / 10_000.0

        reason = self._check_risk(action, fill_price, notional, fee)
        if reason is not None:
            self._reject(signal, action, reason)
            return None

        return Fill(
            signal_id=signal.id,
            side=action.side,
            pair=action.pair,
            exchange=action.exchange,
            quantity=action.quantity,
            price=fill_price,
            fee=fee,
            timestamp=self._clock(),
            mode=self.mode,
        )

    def _fill_price(self, action: SignalAction, price: float) -> float | None:
        """Execution price, or None when a limit has not been crossed."""
        if action.order_type == OrderType.LIMIT:
            limit = cast(float, action.price)
            if action.side == Side.BUY and price <= limit:
                return limit
            if action.side == Side.SELL and price >= limit:
                return limit
            return None

        slippage = self.execution.slippage_bps / 10_000.0
        if action.side == Side.BUY:
            return price * (1.0 + slippage)
        return price * (1.0 - slippage)

    def _check_risk(
        self, action: SignalAction, fill_price: float, notional: float, fee: float
    ) -> str | None:
        held = self.portfolio.quantity(action.pair, action.exchange)

        if action.side == Side.SELL:
            if action.quantity > held + _EPSILON:
                return INSUFFICIENT_POSITION
            return None

        if held <= 0 and self.portfolio.open_positions >= self.risk.max_open_positions:
            return MAX_OPEN_POSITIONS
        if (held + action.quantity) * fill_price > self.risk.max_position_size + _EPSILON:
            return MAX_POSITION_SIZE
        if notional + fee > self.portfolio.cash + _EPSILON:
            return INSUFFICIENT_CASH
        return None
