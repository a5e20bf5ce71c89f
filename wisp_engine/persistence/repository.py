"""Journal repository for run persistence."""

import json
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

import sqlalchemy as sa
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from wisp_engine.models.fill import Fill
from wisp_engine.models.signal import Signal

from .models import Base, EquitySnapshot, Event, FillRecord, SignalRecord


def _json_serial(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return str(obj)


def _json_safe(payload: Any) -> Any:
    return json.loads(json.dumps(payload, default=_json_serial))


def open_session(database_url: str = "sqlite:///:memory:") -> Session:
    """Create the journal tables if needed and return a session."""
    engine = create_engine(database_url, echo=False)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)()


class JournalRepository:
    """Repository wrapping database operations for the run journal."""

    def __init__(self, session: Session):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session

    def append_event(
        self,
        event_type: str,
        level: str = "INFO",
        payload: dict[str, Any] | None = None,
        strategy: str | None = None,
        ts: datetime | None = None,
    ) -> int:
        """
        Append an event to the events table.

        Args:
            event_type: Event type (e.g., "system.started", "strategy.error")
            level: Log level (INFO, WARN, ERROR)
            payload: Event payload as dictionary
            strategy: Strategy the event concerns, if any
            ts: Event time (defaults to now)

        Returns:
            Event sequence number
        """
        event = Event(
            type=event_type,
            level=level,
            payload=_json_safe(payload or {}),
            strategy=strategy,
            ts=ts or datetime.now(timezone.utc),
        )
        self.session.add(event)
        self.session.commit()
        seq: int = event.seq
        return seq

    def save_signal(self, signal: Signal) -> str:
        """Persist a signal and its actions."""
        record = SignalRecord(
            id=signal.id,
            strategy=signal.strategy,
            created_at=signal.created_at,
            actions=_json_safe(
                [
                    {
                        "side": a.side.value,
                        "pair": a.pair,
                        "exchange": a.exchange,
                        "quantity": a.quantity,
                        "order_type": a.order_type.value,
                        "price": a.price,
                        "reason": a.reason,
                    }
                    for a in signal.actions
                ]
            ),
            tags=_json_safe(dict(signal.tags)) if signal.tags else None,
        )
        self.session.add(record)
        self.session.commit()
        return record.id

    def save_fill(self, fill: Fill) -> str:
        """Persist a fill."""
        record = FillRecord(
            signal_id=fill.signal_id,
            side=fill.side.value,
            pair=fill.pair,
            exchange=fill.exchange,
            quantity=fill.quantity,
            price=fill.price,
            fee=fill.fee,
            mode=fill.mode,
            exchange_order_id=fill.exchange_order_id,
            ts=fill.timestamp,
        )
        self.session.add(record)
        self.session.commit()
        return record.id

    def save_equity_snapshot(
        self,
        equity: float,
        cash: float,
        realized_pnl: float = 0.0,
        open_positions: int = 0,
        ts: datetime | None = None,
    ) -> None:
        """
        Save an equity snapshot.

        Args:
            equity: Cash plus marked positions
            cash: Quote-currency cash
            realized_pnl: Realized PnL since start
            open_positions: Count of open positions
            ts: Snapshot time (defaults to now)
        """
        self.session.add(
            EquitySnapshot(
                equity=equity,
                cash=cash,
                realized_pnl=realized_pnl,
                open_positions=open_positions,
                ts=ts or datetime.now(timezone.utc),
            )
        )
        self.session.commit()

    def list_events(self, event_type: str | None = None, limit: int | None = None) -> list[dict[str, Any]]:
        """Events in sequence order, optionally filtered by type."""
        query = self.session.query(Event)
        if event_type is not None:
            query = query.filter(Event.type == event_type)
        query = query.order_by(Event.seq)
        if limit is not None:
            query = query.limit(limit)
        return [
            {
                "seq": e.seq,
                "ts": e.ts,
                "level": e.level,
                "type": e.type,
                "strategy": e.strategy,
                "payload": e.payload,
            }
            for e in query.all()
        ]

    def list_fills(self, signal_id: str | None = None) -> list[dict[str, Any]]:
        """Fills in time order, optionally for one signal."""
        query = self.session.query(FillRecord)
        if signal_id is not None:
            query = query.filter(FillRecord.signal_id == signal_id)
        return [
            {
                "id": f.id,
                "signal_id": f.signal_id,
                "side": f.side,
                "pair": f.pair,
                "exchange": f.exchange,
                "quantity": float(f.quantity),
                "price": float(f.price),
                "fee": float(f.fee),
                "mode": f.mode,
                "exchange_order_id": f.exchange_order_id,
                "ts": f.ts,
            }
            for f in query.order_by(FillRecord.ts).all()
        ]

    def count_signals(self, strategy: str | None = None) -> int:
        query = self.session.query(sa.func.count(SignalRecord.id))
        if strategy is not None:
            query = query.filter(SignalRecord.strategy == strategy)
        return int(query.scalar() or 0)

    def latest_equity(self) -> dict[str, Any] | None:
        """Most recent equity snapshot, or None."""
        snapshot = (
            self.session.query(EquitySnapshot)
            .order_by(EquitySnapshot.id.desc())
            .first()
        )
        if snapshot is None:
            return None
        return {
            "ts": snapshot.ts,
            "equity": float(snapshot.equity),
            "cash": float(snapshot.cash),
            "realized_pnl": float(snapshot.realized_pnl),
            "open_positions": snapshot.open_positions,
        }
