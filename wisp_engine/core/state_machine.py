"""Per-strategy scheduling state machine with validated transitions."""

from enum import Enum


class StrategyState(str, Enum):
    """Scheduling states for one strategy."""

    IDLE = "IDLE"  # Waiting for the next slot
    EVALUATING = "EVALUATING"  # Refreshing data and running the callback
    ROUTING = "ROUTING"  # Sending signals to execution
    DISABLED = "DISABLED"  # Too many consecutive errors


# Valid state transitions
VALID_TRANSITIONS: dict[StrategyState, list[StrategyState]] = {
    StrategyState.IDLE: [StrategyState.EVALUATING, StrategyState.DISABLED],
    StrategyState.EVALUATING: [
        StrategyState.ROUTING,
        StrategyState.IDLE,
        StrategyState.DISABLED,
    ],
    StrategyState.ROUTING: [StrategyState.IDLE, StrategyState.DISABLED],
    StrategyState.DISABLED: [],
}


class StateMachine:
    """Per-strategy state machine with transition validation."""

    def __init__(self, strategy: str, initial_state: StrategyState = StrategyState.IDLE):
        """
        Initialize state machine.

        Args:
            strategy: Strategy name
            initial_state: Starting state (default: IDLE)
        """
        self.strategy = strategy
        self._current_state = initial_state

    @property
    def current_state(self) -> StrategyState:
        """Get current state."""
        return self._current_state

    @property
    def disabled(self) -> bool:
        return self._current_state == StrategyState.DISABLED

    def transition_to(self, new_state: StrategyState) -> None:
        """
        Transition to a new state with validation.

        Raises:
            ValueError: If transition is invalid
        """
        if new_state not in VALID_TRANSITIONS[self._current_state]:
            raise ValueError(
                f"Invalid transition from {self._current_state} to {new_state} "
                f"for {self.strategy}"
            )

        self._current_state = new_state

    def can_transition_to(self, new_state: StrategyState) -> bool:
        """Check if transition is valid without executing it."""
        return new_state in VALID_TRANSITIONS[self._current_state]

    def reset(self) -> None:
        """Reset state machine to IDLE (re-enables a disabled strategy)."""
        self._current_state = StrategyState.IDLE
