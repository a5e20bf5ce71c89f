"""Run journal database models."""

import datetime as dt
import uuid
from decimal import Decimal
from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Generic JSON for SQLite compatibility (SQLAlchemy handles mapping)
JSON_TYPE = sa.JSON().with_variant(JSONB, "postgresql")
NUMERIC_24_10 = sa.Numeric(24, 10)


def _uuid_str() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    pass


class Event(Base):
    """Engine lifecycle and error events."""
    __tablename__ = "events"

    seq: Mapped[int] = mapped_column(sa.Integer(), primary_key=True, autoincrement=True)
    ts: Mapped[dt.datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    level: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    type: Mapped[str] = mapped_column(sa.Text(), nullable=False, index=True)
    strategy: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON_TYPE, nullable=False)


class SignalRecord(Base):
    """A signal emitted by a strategy."""
    __tablename__ = "signals"

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True)
    strategy: Mapped[str] = mapped_column(sa.Text(), nullable=False, index=True)
    created_at: Mapped[dt.datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    actions: Mapped[list[dict[str, Any]]] = mapped_column(JSON_TYPE, nullable=False)
    tags: Mapped[dict[str, Any] | None] = mapped_column(JSON_TYPE, nullable=True)


class FillRecord(Base):
    """An executed signal action."""
    __tablename__ = "fills"

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=_uuid_str)
    signal_id: Mapped[str] = mapped_column(
        sa.String(36), sa.ForeignKey("signals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    side: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    pair: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    exchange: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(NUMERIC_24_10, nullable=False)
    price: Mapped[Decimal] = mapped_column(NUMERIC_24_10, nullable=False)
    fee: Mapped[Decimal] = mapped_column(NUMERIC_24_10, nullable=False)
    mode: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    exchange_order_id: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    ts: Mapped[dt.datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)


class EquitySnapshot(Base):
    """Portfolio equity at a point in time."""
    __tablename__ = "equity_snapshots"

    id: Mapped[int] = mapped_column(sa.Integer(), primary_key=True, autoincrement=True)
    ts: Mapped[dt.datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    equity: Mapped[Decimal] = mapped_column(NUMERIC_24_10, nullable=False)
    cash: Mapped[Decimal] = mapped_column(NUMERIC_24_10, nullable=False)
    realized_pnl: Mapped[Decimal] = mapped_column(NUMERIC_24_10, nullable=False)
    open_positions: Mapped[int] = mapped_column(sa.Integer(), nullable=False)
