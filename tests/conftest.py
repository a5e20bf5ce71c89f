import os
from datetime import datetime, timedelta, timezone
from typing import Callable, Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from wisp_engine.models.candle import Candle

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def in_memory_db() -> Generator[Session, None, None]:
    """Create an in-memory SQLite database for testing."""
    from wisp_engine.persistence.models import Base

    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_candles() -> Callable[..., list[Candle]]:
    """Factory building hourly candles from a list of closes."""

    def _make(
        closes: list[float],
        start: datetime = START,
        step: timedelta = timedelta(hours=1),
        spread: float = 1.0,
    ) -> list[Candle]:
        return [
            Candle(
                timestamp=start + step * i,
                open=close,
                high=close + spread,
                low=close - spread,
                close=close,
                volume=10.0,
            )
            for i, close in enumerate(closes)
        ]

    return _make


@pytest.fixture(autouse=True)
def clean_config_env() -> Generator[None, None, None]:
    """Ensure WISP_* env vars do not interfere with tests unless explicitly set."""
    original_env = {}
    keys_to_clear = [key for key in os.environ if key.startswith("WISP_")]

    for key in keys_to_clear:
        original_env[key] = os.environ[key]
        os.environ.pop(key, None)

    yield

    for key in [k for k in os.environ if k.startswith("WISP_")]:
        os.environ.pop(key, None)
    for key, value in original_env.items():
        os.environ[key] = value
