"""Retry Domain Entities

Entities that track the lifecycle of a single retry loop.

Entities:
- RetryState: The states a retry loop moves through
- RetryOutcome: Attempt bookkeeping, updated as the loop runs

Design Principles:
- Encapsulation: State transitions go through ``transition_to``
- Lifecycle: An outcome starts ATTEMPTING and ends in exactly one terminal state
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


class RetryState(str, Enum):
    """States of a retry loop"""

    ATTEMPTING = "attempting"
    WAITING = "waiting"
    SUCCEEDED = "succeeded"
    FAILED_EXHAUSTED = "failed_exhausted"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES: FrozenSet[RetryState] = frozenset({
    RetryState.SUCCEEDED,
    RetryState.FAILED_EXHAUSTED,
    RetryState.CANCELLED,
    RetryState.TIMED_OUT,
})

_TRANSITIONS: Dict[RetryState, FrozenSet[RetryState]] = {
    RetryState.ATTEMPTING: frozenset({
        RetryState.SUCCEEDED,
        RetryState.WAITING,
        RetryState.FAILED_EXHAUSTED,
        RetryState.CANCELLED,
        RetryState.TIMED_OUT,
    }),
    RetryState.WAITING: frozenset({
        RetryState.ATTEMPTING,
        RetryState.CANCELLED,
        RetryState.TIMED_OUT,
    }),
}


@dataclass
class RetryOutcome:
    """Entity recording what happened during one retry loop.

    ``elapsed`` is measured in seconds with the executor's clock. ``delays``
    holds every backoff delay that was chosen, in order; a run that succeeds
    on the first attempt records none.

    Business Rules:
    - ``attempts`` never exceeds the policy's ``max_attempts``
    - Exactly one terminal state is reached
    - A terminal state is never left
    """

    max_attempts: int
    attempts: int = 0
    elapsed: float = 0.0
    delays: List[float] = field(default_factory=list)
    last_error: Optional[BaseException] = None
    state: RetryState = RetryState.ATTEMPTING

    @property
    def succeeded(self) -> bool:
        return self.state is RetryState.SUCCEEDED

    @property
    def is_finished(self) -> bool:
        return self.state.is_terminal

    @property
    def total_delay(self) -> float:
        return sum(self.delays)

    def record_attempt(self) -> int:
        """Count a new attempt and return its 1-based number"""
        if self.attempts >= self.max_attempts:
            raise ValueError(
                f"Attempt {self.attempts + 1} exceeds max_attempts={self.max_attempts}"
            )
        self.attempts += 1
        return self.attempts

    def record_delay(self, delay: float) -> None:
        self.delays.append(delay)

    def transition_to(self, state: RetryState) -> None:
        """Move to a new state, enforcing the allowed transitions.

        Raises:
            ValueError: If the transition is not allowed.
        """
        if state is self.state:
            return
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if state not in allowed:
            raise ValueError(f"Invalid retry state transition: {self.state.value} -> {state.value}")
        self.state = state

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a dictionary for structured logging"""
        return {
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "succeeded": self.succeeded,
            "state": self.state.value,
            "elapsed": round(self.elapsed, 6),
            "delays": [round(delay, 6) for delay in self.delays],
            "last_error": repr(self.last_error) if self.last_error is not None else None,
        }
