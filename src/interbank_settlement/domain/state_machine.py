"""Transaction State Machine Guard.

Uses python-statemachine to enforce legal status transitions at the domain
level. Whatever the processor or an API handler attempts, an illegal move
(e.g., Completed -> Pending) raises TransitionNotAllowed before the ORM row's
status field is touched.

Transition table:
    Pending      -> Failed       (expire)    createdAt + expiry window < now
    Pending      -> In Progress  (claim)     processor takes ownership
    In Progress  -> Failed       (reject)    unknown bank, registry down, peer error
    In Progress  -> Completed    (complete)  peer accepted, receiverName recorded
    In Progress  -> Pending      (release)   transport failure or timeout, retry later
"""

from __future__ import annotations

from statemachine import State, StateMachine


class TransactionStateMachine(StateMachine):
    """State machine that guards the settlement lifecycle of a transaction.

    Usage:
        sm = TransactionStateMachine(current_status="Pending")
        sm.claim()           # transitions to In Progress
        sm.current_state     # State('In Progress', ...)
    """

    # --- States ---
    PENDING = State("Pending", value="Pending", initial=True)
    IN_PROGRESS = State("In Progress", value="In Progress")
    COMPLETED = State("Completed", value="Completed", final=True)
    FAILED = State("Failed", value="Failed", final=True)

    # --- Events / Transitions ---
    expire = PENDING.to(FAILED)
    claim = PENDING.to(IN_PROGRESS)

    reject = IN_PROGRESS.to(FAILED)
    complete = IN_PROGRESS.to(COMPLETED)
    release = IN_PROGRESS.to(PENDING)

    def __init__(self, current_status: str = "Pending") -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current TransactionStatus value (e.g., "In Progress").
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches TransactionStatus)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [str(event.id) for event in self.allowed_events]


def validate_transition(current_status: str, event_name: str) -> str:
    """Validate a state transition and return the new status.

    Args:
        current_status: Current TransactionStatus value.
        event_name: The event to fire (e.g., "claim").

    Returns:
        The new status string after the transition.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is invalid.
    """
    sm = TransactionStateMachine(current_status=current_status)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    event_method()
    return sm.status
