"""Signal models for trading decisions."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from wisp_engine.errors import SignalError


class Side(str, Enum):
    """Order side."""

    BUY = "BUY"
    SELL = "SELL"


class OrderType(str, Enum):
    """Order type."""

    MARKET = "MARKET"
    LIMIT = "LIMIT"


@dataclass(frozen=True)
class SignalAction:
    """One buy/sell instruction inside a signal."""

    side: Side
    pair: str
    exchange: str
    quantity: float
    order_type: OrderType = OrderType.MARKET
    price: float | None = None
    reason: str | None = None

    def __post_init__(self) -> None:
        """Validate action data."""
        if not self.quantity > 0:
            raise SignalError(f"Quantity must be positive, got {self.quantity}")
        if self.order_type == OrderType.LIMIT:
            if self.price is None or not self.price > 0:
                raise SignalError("Limit actions require a positive price")
        elif self.price is not None:
            raise SignalError("Market actions must not carry a price")
        if not self.exchange:
            raise SignalError("Exchange must be non-empty")


@dataclass(frozen=True)
class Signal:
    """Immutable batch of actions emitted by one strategy evaluation."""

    strategy: str
    actions: tuple[SignalAction, ...]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    tags: Mapping[str, Any] = field(default_factory=dict, hash=False)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        """Validate signal data."""
        if not self.actions:
            raise SignalError("Signal must contain at least one action")
        if not isinstance(self.actions, tuple):
            object.__setattr__(self, "actions", tuple(self.actions))
        object.__setattr__(self, "tags", MappingProxyType(dict(self.tags)))

    @property
    def buys(self) -> tuple[SignalAction, ...]:
        return tuple(a for a in self.actions if a.side == Side.BUY)

    @property
    def sells(self) -> tuple[SignalAction, ...]:
        return tuple(a for a in self.actions if a.side == Side.SELL)
