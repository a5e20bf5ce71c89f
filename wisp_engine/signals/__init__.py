"""Signal construction."""

from .builder import SignalBuilder

__all__ = ["SignalBuilder"]
