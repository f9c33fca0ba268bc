"""Change lifecycle state machine using the transitions library.

Usage:
    from specflow.workflow.fsm import ChangeFSM

    fsm = ChangeFSM(change)
    fsm.start()             # proposed -> in_progress
    fsm.begin_complete()    # in_progress -> ready_to_complete
    fsm.merged()            # ready_to_complete -> completed
"""

import logging
from typing import Callable

from transitions import Machine, MachineError

from specflow.errors import InvalidTransitionError

from .models import Change, ChangeState

logger = logging.getLogger(__name__)


STATES = [state.value for state in ChangeState]

# Transitions defined as (trigger, source, dest)
# Each trigger becomes a method on the FSM
TRANSITIONS = [
    # Plan tasks created
    {"trigger": "start", "source": "proposed", "dest": "in_progress"},

    # All owned tasks closed; claims the change for a single merge
    {"trigger": "begin_complete", "source": "in_progress", "dest": "ready_to_complete"},

    # Merge outcome
    {"trigger": "merged", "source": "ready_to_complete", "dest": "completed"},
    {"trigger": "merge_failed", "source": "ready_to_complete", "dest": "in_progress"},

    # Bookkeeping dropped
    {"trigger": "archive", "source": "completed", "dest": "archived"},
]


class ChangeFSM:
    """State machine for one change.

    Wraps the transitions library with change-specific logic:
    - Starts from the change's recorded state
    - Writes every new state back onto the change
    - Logs all transitions
    - Raises InvalidTransitionError instead of MachineError
    """

    def __init__(
        self,
        change: Change,
        on_transition: Callable[[str, str, str], None] | None = None,
    ):
        """Initialize FSM for a change.

        Args:
            change: The change whose ``state`` is driven by this machine
            on_transition: Optional callback(from_state, to_state, trigger)
                called after transitions
        """
        self.change = change
        self.on_transition = on_transition

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=str(change.state),
            auto_transitions=False,  # Only explicit transitions
            send_event=True,  # Pass EventData to callbacks
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        """Callback after any state transition."""
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        self.change.state = ChangeState(to_state)
        logger.info(f"[CHANGE] {self.change.change_id}: {from_state} -> {to_state} ({trigger})")

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    def fire(self, trigger: str) -> None:
        """Run ``trigger``, raising InvalidTransitionError if it is not allowed."""
        try:
            self.trigger(trigger)
        except MachineError as exc:
            raise InvalidTransitionError(self.change.change_id, self.state, trigger) from exc

    def can(self, trigger: str) -> bool:
        """Check if a trigger can be executed in current state."""
        return trigger in self.machine.get_triggers(self.state)

    def get_available_triggers(self) -> list[str]:
        return self.machine.get_triggers(self.state)
