"""Historical candle loading."""

import logging
from pathlib import Path

import pandas as pd

from wisp_engine.models.candle import Candle

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("timestamp", "open", "high", "low", "close", "volume")


def load_candles_csv(path: str | Path) -> list[Candle]:
    """Load OHLCV candles from a CSV file.

    Timestamps may be ISO strings or epoch milliseconds and are parsed as
    UTC. Rows are sorted by timestamp; duplicate timestamps keep the last row.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If required columns are missing or the file has no rows
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {path}")

    df = pd.read_csv(path)
    df.columns = [str(c).strip().lower() for c in df.columns]
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"{path.name} is missing columns: {', '.join(missing)}")
    if df.empty:
        raise ValueError(f"No candles in {path}")

    if pd.api.types.is_numeric_dtype(df["timestamp"]):
        df["timestamp"] = pd.to_datetime(df["timestamp"], unit="ms", utc=True)
    else:
        df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)

    df = (
        df.sort_values("timestamp")
        .drop_duplicates(subset="timestamp", keep="last")
        .reset_index(drop=True)
    )

    candles = [
        Candle(
            timestamp=row.timestamp.to_pydatetime(),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in df.itertuples(index=False)
    ]
    logger.info(
        "Loaded %d candles from %s (%s to %s)",
        len(candles),
        path.name,
        candles[0].timestamp,
        candles[-1].timestamp,
    )
    return candles
