"""
PAYMENT STATE MACHINE

Declares the legal payment_status transitions of a biodata record:

    INITIATED -> SUCCESS

SUCCESS is terminal. ERROR is a declared state with no inbound transition.
The machine validates transitions and builds the field updates for them;
it never writes to the database itself.

Usage:
    payment_state_machine.validate_transition(record["payment_status"], PaymentStatus.SUCCESS)
    update = payment_state_machine.get_status_update(PaymentStatus.SUCCESS)
"""

from typing import Dict, Any, Optional, List, Set, Tuple
from datetime import datetime
from enum import Enum
import logging

logger = logging.getLogger(__name__)


class PaymentStatus(str, Enum):
    INITIATED = "INITIATED"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


# =============================================================================
# EXCEPTIONS
# =============================================================================

class StateMachineError(Exception):
    """Base exception for state machine errors."""
    pass


class InvalidTransitionError(StateMachineError):
    """Raised when attempting an invalid state transition."""
    def __init__(self, entity: str, from_state: str, to_state: str, allowed: List[str] = None):
        self.entity = entity
        self.from_state = from_state
        self.to_state = to_state
        self.allowed = allowed or []

        allowed_str = f" Allowed transitions from '{from_state}': {self.allowed}" if self.allowed else ""
        message = f"Invalid transition for {entity}: '{from_state}' -> '{to_state}'.{allowed_str}"
        super().__init__(message)


# =============================================================================
# STATE MACHINE
# =============================================================================

class Transition:
    """Definition of a state transition."""

    def __init__(self, from_state: str, to_state: str, description: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        self.description = description

    def __repr__(self):
        return f"Transition({self.from_state} -> {self.to_state})"


def _state(value: Any) -> str:
    return value.value if isinstance(value, Enum) else value


class StateMachine:
    """
    Table of allowed transitions for one status field.

    Example:
        machine = StateMachine("biodata_payment", status_field="payment_status")
        machine.register("INITIATED", "SUCCESS")
        machine.validate_transition("SUCCESS", "INITIATED")  # raises
    """

    def __init__(
        self,
        entity_name: str,
        status_field: str = "status",
        history_field: Optional[str] = "state_history",
        states: Optional[List[str]] = None
    ):
        self.entity_name = entity_name
        self.status_field = status_field
        self.history_field = history_field

        self._transitions: Dict[Tuple[str, str], Transition] = {}
        self._states: Set[str] = set(states or [])

    def register(self, from_state: str, to_state: str, description: str = "") -> "StateMachine":
        from_state, to_state = _state(from_state), _state(to_state)
        self._transitions[(from_state, to_state)] = Transition(from_state, to_state, description)
        self._states.add(from_state)
        self._states.add(to_state)

        logger.debug(
            f"[STATE_MACHINE] Registered {self.entity_name}: "
            f"'{from_state}' -> '{to_state}'"
        )
        return self

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def get_allowed_transitions(self, from_state: str) -> List[str]:
        from_state = _state(from_state)
        return [dst for (src, dst) in self._transitions.keys() if src == from_state]

    def can_transition(self, from_state: str, to_state: str) -> bool:
        return (_state(from_state), _state(to_state)) in self._transitions

    def is_terminal(self, state: str) -> bool:
        """A known state with no outgoing transitions."""
        state = _state(state)
        return state in self._states and not self.get_allowed_transitions(state)

    def validate_transition(self, from_state: str, to_state: str) -> None:
        """
        Validate that a transition is registered.
        Raises InvalidTransitionError if not valid.
        """
        if not self.can_transition(from_state, to_state):
            raise InvalidTransitionError(
                entity=self.entity_name,
                from_state=_state(from_state),
                to_state=_state(to_state),
                allowed=self.get_allowed_transitions(from_state)
            )

    # =========================================================================
    # UPDATE BUILDERS
    # =========================================================================

    def get_status_update(self, to_state: str) -> Dict[str, Any]:
        return {
            self.status_field: _state(to_state),
            f"{self.status_field}_changed_at": datetime.utcnow()
        }

    def get_history_entry(
        self,
        from_state: str,
        to_state: str,
        source: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        return {
            "from_state": _state(from_state),
            "to_state": _state(to_state),
            "transitioned_at": datetime.utcnow(),
            "source": source,
            "metadata": metadata or {}
        }

    def get_states(self) -> List[str]:
        return sorted(self._states)

    def __repr__(self):
        return (
            f"StateMachine({self.entity_name}, "
            f"states={len(self._states)}, "
            f"transitions={len(self._transitions)})"
        )


payment_state_machine = StateMachine(
    "biodata_payment",
    status_field="payment_status",
    states=[s.value for s in PaymentStatus]
).register(
    PaymentStatus.INITIATED,
    PaymentStatus.SUCCESS,
    description="Payment confirmed by provider (webhook or client verification)"
)
