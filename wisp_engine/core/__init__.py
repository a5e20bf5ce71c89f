"""Core scheduling: clocks, state machine and the strategy scheduler."""

from .clock import Clock, SimulatedClock, SystemClock, floor_to_interval
from .scheduler import ScheduledStrategy, StrategyScheduler
from .state_machine import StateMachine, StrategyState

__all__ = [
    "Clock",
    "ScheduledStrategy",
    "SimulatedClock",
    "StateMachine",
    "StrategyScheduler",
    "StrategyState",
    "SystemClock",
    "floor_to_interval",
]
