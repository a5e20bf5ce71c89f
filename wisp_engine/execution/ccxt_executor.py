"""Live execution through CCXT exchanges."""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from wisp_engine.errors import ExecutionError
from wisp_engine.models.fill import Fill
from wisp_engine.models.signal import OrderType, Side, Signal, SignalAction

from .executor import ExecutionEngine
from .paper_executor import INSUFFICIENT_POSITION
from .portfolio import Portfolio, PositionKey

logger = logging.getLogger(__name__)

_EPSILON = 1e-9


class CCXTExecutor(ExecutionEngine):
    """Sends signal actions to real exchanges via ``create_order``.

    Market orders are expected to fill immediately; a limit order that
    comes back unfilled is left resting on the exchange and produces no Fill.
    Sells larger than the local position are rejected before reaching the
    exchange.
    """

    mode = "LIVE"

    def __init__(
        self,
        exchanges: Mapping[str, Any],
        portfolio: Portfolio,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Initialize live executor.

        Args:
            exchanges: CCXT exchange instance per exchange name
            portfolio: Local portfolio mirror updated by fills
            clock: Fallback timestamp source when a response has none
        """
        super().__init__(portfolio)
        self.exchanges = {name.lower(): ex for name, ex in exchanges.items()}
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _exchange(self, name: str) -> Any:
        exchange = self.exchanges.get(name.lower())
        if exchange is None:
            raise ExecutionError(f"No exchange client configured for '{name}'")
        return exchange

    def execute(self, signal: Signal, prices: Mapping[PositionKey, float]) -> list[Fill]:
        fills: list[Fill] = []
        for index, action in enumerate(signal.actions):
            if action.side == Side.SELL and not self._holds(action):
                self._reject(signal, action, INSUFFICIENT_POSITION)
                continue
            response = self._place(signal, action, index)
            fill = self._to_fill(signal, action, response)
            if fill is None:
                logger.info(
                    "Order %s for %s@%s accepted but not filled",
                    response.get("id"),
                    action.pair,
                    action.exchange,
                )
                continue
            self.portfolio.apply_fill(fill)
            fills.append(fill)
        return fills

    def _holds(self, action: SignalAction) -> bool:
        """Whether the local mirror can absorb a full fill of this sell."""
        return action.quantity <= self.portfolio.quantity(action.pair, action.exchange) + _EPSILON

    def _place(self, signal: Signal, action: SignalAction, index: int) -> dict[str, Any]:
        exchange = self._exchange(action.exchange)
        order_type = "limit" if action.order_type == OrderType.LIMIT else "market"
        try:
            response = exchange.create_order(
                action.pair,
                order_type,
                action.side.value.lower(),
                action.quantity,
                action.price,
                {"clientOrderId": f"wisp-{signal.id[:8]}-{index}"},
            )
        except Exception as exc:
            raise ExecutionError(
                f"{action.exchange} rejected {order_type} {action.side.value} "
                f"{action.quantity} {action.pair}: {exc}"
            ) from exc
        return response or {}

    def _to_fill(
        self, signal: Signal, action: SignalAction, response: dict[str, Any]
    ) -> Fill | None:
        filled = response.get("filled")
        if filled is None:
            filled = action.quantity if action.order_type == OrderType.MARKET else 0.0
        filled = float(filled)
        if filled <= 0:
            return None

        price = response.get("average") or response.get("price") or action.price
        if not price:
            raise ExecutionError(
                f"{action.exchange} order {response.get('id')} filled without a price"
            )

        fee_info = response.get("fee") or {}
        ts_ms = response.get("timestamp")
        return Fill(
            signal_id=signal.id,
            side=action.side,
            pair=action.pair,
            exchange=action.exchange,
            quantity=filled,
            price=float(price),
            fee=float(fee_info.get("cost") or 0.0),
            timestamp=(
                datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc) if ts_ms else self._clock()
            ),
            mode=self.mode,
            exchange_order_id=str(response["id"]) if response.get("id") is not None else None,
        )

    def reconcile_state(self) -> dict[str, Any]:
        """
        Verify connectivity and fetch balances from every exchange.

        Raises:
            ExecutionError: If an exchange cannot be reached
        """
        balances: dict[str, Any] = {}
        for name, exchange in self.exchanges.items():
            try:
                balance = exchange.fetch_balance()
            except Exception as exc:
                raise ExecutionError(f"Reconcile failed for {name}: {exc}") from exc
            balances[name] = (balance or {}).get("free", {})
            logger.info("Reconciled %s: %d assets with free balance", name, len(balances[name]))
        return balances
