"""Run journal persistence."""

from .models import Base, EquitySnapshot, Event, FillRecord, SignalRecord
from .repository import JournalRepository, open_session

__all__ = [
    "Base",
    "EquitySnapshot",
    "Event",
    "FillRecord",
    "JournalRepository",
    "SignalRecord",
    "open_session",
]
