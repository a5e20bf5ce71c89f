"""Tests for the run journal repository."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from wisp_engine.models.fill import Fill
from wisp_engine.models.signal import Side
from wisp_engine.persistence.models import SignalRecord
from wisp_engine.persistence.repository import JournalRepository, open_session
from wisp_engine.signals import SignalBuilder

TS = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)


def test_append_event_returns_increasing_seq(in_memory_db: Session) -> None:
    repo = JournalRepository(in_memory_db)
    first = repo.append_event("system.started", payload={"mode": "PAPER"})
    second = repo.append_event("strategy.error", "ERROR", {"error": "x"}, strategy="rsi", ts=TS)
    assert second > first

    events = repo.list_events()
    assert [e["type"] for e in events] == ["system.started", "strategy.error"]
    assert events[1]["level"] == "ERROR"
    assert events[1]["strategy"] == "rsi"


def test_event_payload_is_json_safe(in_memory_db: Session) -> None:
    repo = JournalRepository(in_memory_db)
    repo.append_event("x", payload={"side": Side.BUY, "amount": Decimal("1.5"), "at": TS})

    [event] = repo.list_events("x")
    assert event["payload"] == {"side": "BUY", "amount": 1.5, "at": TS.isoformat()}


def test_list_events_filter_and_limit(in_memory_db: Session) -> None:
    repo = JournalRepository(in_memory_db)
    for i in range(3):
        repo.append_event("tick", payload={"i": i})
    repo.append_event("other")

    assert len(repo.list_events("tick")) == 3
    assert [e["payload"]["i"] for e in repo.list_events("tick", limit=2)] == [0, 1]


def test_signal_and_fills(in_memory_db: Session) -> None:
    repo = JournalRepository(in_memory_db)
    signal = (
        SignalBuilder("rsi_reversion", clock=lambda: TS)
        .buy("BTC/USDT", "binance", 0.5, reason="oversold")
        .tag("rsi", 21.5)
        .build()
    )
    assert repo.save_signal(signal) == signal.id
    assert in_memory_db.get(SignalRecord, signal.id).tags == {"rsi": 21.5}

    fill = Fill(signal.id, Side.BUY, "BTC/USDT", "binance", 0.5, 100.25, 0.05, TS, "PAPER")
    fill_id = repo.save_fill(fill)

    [stored] = repo.list_fills(signal.id)
    assert stored["id"] == fill_id
    assert stored["quantity"] == 0.5
    assert stored["price"] == 100.25
    assert stored["fee"] == 0.05
    assert stored["side"] == "BUY"
    assert stored["mode"] == "PAPER"
    assert repo.count_signals() == 1
    assert repo.count_signals("other") == 0
    assert repo.list_fills("missing") == []


def test_equity_snapshots(in_memory_db: Session) -> None:
    repo = JournalRepository(in_memory_db)
    assert repo.latest_equity() is None

    repo.save_equity_snapshot(equity=10_000.0, cash=10_000.0, ts=TS)
    repo.save_equity_snapshot(equity=10_050.0, cash=9_000.0, realized_pnl=50.0, open_positions=1)

    latest = repo.latest_equity()
    assert latest is not None
    assert latest["equity"] == 10_050.0
    assert latest["realized_pnl"] == 50.0
    assert latest["open_positions"] == 1


def test_open_session_creates_tables(tmp_path) -> None:
    session = open_session(f"sqlite:///{tmp_path / 'journal.db'}")
    try:
        repo = JournalRepository(session)
        repo.append_event("system.started")
        assert len(repo.list_events()) == 1
    finally:
        session.close()
