"""Execution engines and portfolio bookkeeping."""

from .ccxt_executor import CCXTExecutor
from .executor import ExecutionEngine
from .paper_executor import PaperExecutor
from .portfolio import Portfolio, PortfolioView, Position

__all__ = [
    "CCXTExecutor",
    "ExecutionEngine",
    "PaperExecutor",
    "Portfolio",
    "PortfolioView",
    "Position",
]
