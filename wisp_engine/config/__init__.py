"""Configuration package for the wisp engine."""

from .loader import deep_merge, load_config
from .models import (
    ExchangeConfig,
    ExecutionConfig,
    RiskConfig,
    SchedulerConfig,
    StrategyConfig,
    WispConfig,
)

__all__ = [
    "ExchangeConfig",
    "ExecutionConfig",
    "RiskConfig",
    "SchedulerConfig",
    "StrategyConfig",
    "WispConfig",
    "deep_merge",
    "load_config",
]
