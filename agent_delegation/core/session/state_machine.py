"""
Session Assembly State Machine

Tracks how far a package assembly got. Transitions only move forward and
are validated against an allowed-transition map.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Set


class AssemblyState(str, Enum):
    INIT = "init"
    AGENT_DEPLOYED = "agent_deployed"
    SESSION_CREATED = "session_created"
    SESSION_DEPLOYED = "session_deployed"
    DELEGATED = "delegated"
    SELF_TESTED = "self_tested"
    OPERATOR_APPROVED = "operator_approved"
    ASSEMBLED = "assembled"


class InvalidTransitionError(Exception):
    """Raised when a transition is not in the allowed map."""

    def __init__(self, from_state: AssemblyState, to_state: AssemblyState, message: str):
        super().__init__(message)
        self.from_state = from_state
        self.to_state = to_state


@dataclass
class StateTransition:
    from_state: AssemblyState
    to_state: AssemblyState
    reason: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class AssemblyStateMachine:
    """Forward-only progress tracker for one assembly."""

    TRANSITIONS: Dict[AssemblyState, Set[AssemblyState]] = {
        AssemblyState.INIT: {AssemblyState.AGENT_DEPLOYED},
        AssemblyState.AGENT_DEPLOYED: {AssemblyState.SESSION_CREATED},
        AssemblyState.SESSION_CREATED: {AssemblyState.SESSION_DEPLOYED},
        AssemblyState.SESSION_DEPLOYED: {AssemblyState.DELEGATED},
        AssemblyState.DELEGATED: {AssemblyState.SELF_TESTED},
        AssemblyState.SELF_TESTED: {
            AssemblyState.OPERATOR_APPROVED,
            AssemblyState.ASSEMBLED,   # Operator approval skipped
        },
        AssemblyState.OPERATOR_APPROVED: {AssemblyState.ASSEMBLED},
        AssemblyState.ASSEMBLED: set(),
    }

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._state = AssemblyState.INIT
        self.history: List[StateTransition] = []

    @property
    def current_state(self) -> AssemblyState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return not self.TRANSITIONS[self._state]

    def can_transition_to(self, to_state: AssemblyState) -> bool:
        return to_state in self.TRANSITIONS.get(self._state, set())

    def transition_to(self, to_state: AssemblyState, reason: Optional[str] = None) -> StateTransition:
        """
        Move to ``to_state``.

        Raises:
            InvalidTransitionError: If transition is not allowed
        """
        from_state = self._state
        if not self.can_transition_to(to_state):
            allowed = sorted(s.value for s in self.TRANSITIONS.get(from_state, set()))
            raise InvalidTransitionError(
                from_state=from_state,
                to_state=to_state,
                message=f"Invalid transition from {from_state.value} to {to_state.value}. Allowed: {allowed}",
            )

        transition = StateTransition(from_state=from_state, to_state=to_state, reason=reason)
        self.history.append(transition)
        self._state = to_state
        self.logger.debug(f"Assembly {from_state.value} -> {to_state.value}")
        return transition
