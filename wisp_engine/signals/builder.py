"""Fluent builder that accumulates buy/sell instructions into a Signal.

Example:
    >>> signal = (
    ...     SignalBuilder("rsi_reversion")
    ...     .buy("BTC/USDT", "binance", 0.1, reason="rsi_oversold")
    ...     .sell("ETH/USDT", "binance", 2.0)
    ...     .build()
    ... )
"""

from datetime import datetime, timezone
from typing import Any, Callable

from wisp_engine.errors import SignalError
from wisp_engine.models.asset import Asset
from wisp_engine.models.signal import OrderType, Side, Signal, SignalAction


class SignalBuilder:
    """Mutable accumulator producing immutable Signal batches."""

    def __init__(
        self,
        strategy: str,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Initialize an empty builder.

        Args:
            strategy: Name of the emitting strategy
            clock: Source of ``created_at`` timestamps (simulated in backtests)
        """
        if not strategy:
            raise SignalError("Strategy name must be non-empty")
        self.strategy = strategy
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._actions: list[SignalAction] = []
        self._tags: dict[str, Any] = {}

    def buy(
        self,
        asset: "str | Asset",
        exchange: str,
        quantity: float,
        price: float | None = None,
        reason: str | None = None,
    ) -> "SignalBuilder":
        """Add a buy. A price makes it a limit order."""
        return self._add(Side.BUY, asset, exchange, quantity, price, reason)

    def sell(
        self,
        asset: "str | Asset",
        exchange: str,
        quantity: float,
        price: float | None = None,
        reason: str | None = None,
    ) -> "SignalBuilder":
        """Add a sell. A price makes it a limit order."""
        return self._add(Side.SELL, asset, exchange, quantity, price, reason)

    def tag(self, key: str, value: Any) -> "SignalBuilder":
        """Attach metadata (e.g. indicator readings) to the signal."""
        self._tags[key] = value
        return self

    def _add(
        self,
        side: Side,
        asset: "str | Asset",
        exchange: str,
        quantity: float,
        price: float | None,
        reason: str | None,
    ) -> "SignalBuilder":
        try:
            pair = Asset.parse(asset).pair
        except ValueError as exc:
            raise SignalError(str(exc)) from exc
        self._actions.append(
            SignalAction(
                side=side,
                pair=pair,
                exchange=exchange.lower(),
                quantity=quantity,
                order_type=OrderType.LIMIT if price is not None else OrderType.MARKET,
                price=price,
                reason=reason,
            )
        )
        return self

    @property
    def empty(self) -> bool:
        return not self._actions

    def __len__(self) -> int:
        return len(self._actions)

    def build(self) -> Signal:
        """
        Snapshot the accumulated actions into an immutable Signal.

        Later changes to the builder do not affect the returned Signal.

        Raises:
            SignalError: If no actions were added
        """
        if not self._actions:
            raise SignalError(f"Strategy '{self.strategy}' built a signal with no actions")
        return Signal(
            strategy=self.strategy,
            actions=tuple(self._actions),
            created_at=self._clock(),
            tags=dict(self._tags),
        )

    def reset(self) -> "SignalBuilder":
        """Clear actions and tags."""
        self._actions.clear()
        self._tags.clear()
        return self
