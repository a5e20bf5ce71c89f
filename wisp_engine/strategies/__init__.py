"""Trading strategies and the strategy registry."""

from .interface import Strategy, StrategyContext
from .ma_crossover import MACrossoverStrategy
from .registry import (
    create_strategy,
    get_strategy_class,
    list_strategies,
    load_strategy_file,
    register_strategy,
    strategy_from_config,
)
from .rsi_reversion import RSIReversionStrategy

__all__ = [
    "MACrossoverStrategy",
    "RSIReversionStrategy",
    "Strategy",
    "StrategyContext",
    "create_strategy",
    "get_strategy_class",
    "list_strategies",
    "load_strategy_file",
    "register_strategy",
    "strategy_from_config",
]
