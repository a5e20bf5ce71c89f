"""Cash and position bookkeeping shared by paper trading and backtests."""

from dataclasses import dataclass
from typing import Mapping

from wisp_engine.models.asset import Asset
from wisp_engine.models.fill import Fill
from wisp_engine.models.signal import Side

PositionKey = tuple[str, str]  # (pair, exchange)

# Quantities below this are treated as a closed position
_DUST = 1e-9


@dataclass
class Position:
    """Open long position on one pair/exchange."""

    pair: str
    exchange: str
    quantity: float = 0.0
    avg_entry_price: float = 0.0

    @property
    def cost_basis(self) -> float:
        return self.quantity * self.avg_entry_price


class Portfolio:
    """Quote-currency cash plus long positions keyed by (pair, exchange)."""

    def __init__(self, starting_cash: float) -> None:
        if starting_cash < 0:
            raise ValueError("starting_cash must be non-negative")
        self.starting_cash = starting_cash
        self.cash = starting_cash
        self.realized_pnl = 0.0
        self.fees_paid = 0.0
        self._positions: dict[PositionKey, Position] = {}

    @staticmethod
    def key(asset: "str | Asset", exchange: str) -> PositionKey:
        return Asset.parse(asset).pair, exchange.lower()

    def position(self, asset: "str | Asset", exchange: str) -> Position | None:
        return self._positions.get(self.key(asset, exchange))

    def quantity(self, asset: "str | Asset", exchange: str) -> float:
        position = self.position(asset, exchange)
        return position.quantity if position else 0.0

    @property
    def positions(self) -> dict[PositionKey, Position]:
        return dict(self._positions)

    @property
    def open_positions(self) -> int:
        return len(self._positions)

    def apply_fill(self, fill: Fill) -> float:
        """
        Update cash and positions for a fill.

        Returns:
            Realized PnL of the fill (0 for buys), before fees
        """
        key = (fill.pair, fill.exchange.lower())
        self.fees_paid += fill.fee

        if fill.side == Side.BUY:
            position = self._positions.setdefault(key, Position(*key))
            total_qty = position.quantity + fill.quantity
            position.avg_entry_price = (
                position.cost_basis + fill.quantity * fill.price
            ) / total_qty
            position.quantity = total_qty
            self.cash -= fill.notional + fill.fee
            return 0.0

        position = self._positions.get(key)
        if position is None or fill.quantity > position.quantity + _DUST:
            raise ValueError(
                f"Cannot sell {fill.quantity} {fill.pair}@{fill.exchange}: "
                f"holding {position.quantity if position else 0.0}"
            )
        realized = (fill.price - position.avg_entry_price) * fill.quantity
        position.quantity -= fill.quantity
        if position.quantity <= _DUST:
            del self._positions[key]
        self.cash += fill.notional - fill.fee
        self.realized_pnl += realized
        return realized

    def equity(self, prices: Mapping[PositionKey, float] | None = None) -> float:
        """Cash plus positions marked at ``prices`` (entry price when missing)."""
        prices = prices or {}
        value = self.cash
        for key, position in self._positions.items():
            value += position.quantity * prices.get(key, position.avg_entry_price)
        return value


class PortfolioView:
    """Read-only portfolio access handed to strategies."""

    def __init__(
        self,
        portfolio: Portfolio,
        prices: Mapping[PositionKey, float] | None = None,
    ) -> None:
        self._portfolio = portfolio
        self._prices = dict(prices or {})

    @property
    def cash(self) -> float:
        return self._portfolio.cash

    @property
    def equity(self) -> float:
        return self._portfolio.equity(self._prices)

    @property
    def open_positions(self) -> int:
        return self._portfolio.open_positions

    def position(self, asset: "str | Asset", exchange: str) -> float:
        """Held quantity (0.0 when flat)."""
        return self._portfolio.quantity(asset, exchange)

    def entry_price(self, asset: "str | Asset", exchange: str) -> float | None:
        position = self._portfolio.position(asset, exchange)
        return position.avg_entry_price if position else None
