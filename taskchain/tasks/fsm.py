"""Task status state machine using the transitions library.

The kanban lifecycle of a task as explicit, named triggers:

    backlog --schedule--> todo --start--> in-progress --complete--> in-review --approve--> done
                                          in-progress --pause-->    todo
                                          in-review   --rework-->   in-progress
    backlog/todo/in-progress/in-review --block--> blocked
    blocked --unblock--> todo
    blocked --defer-->   backlog

done is terminal.

Usage:
    from taskchain.tasks.fsm import TaskFSM

    fsm = TaskFSM(task)
    fsm.start()  # task.status is now in-progress
"""

import logging
from datetime import datetime
from typing import Callable

from transitions import Machine, MachineError

from taskchain.tasks.models import Task, TaskStatus

logger = logging.getLogger(__name__)


STATES = [status.value for status in TaskStatus]

# Ordered by source; the order of destinations per source is the order
# reported back to callers as "allowed".
TRANSITIONS = [
    {"trigger": "schedule", "source": "backlog", "dest": "todo"},
    {"trigger": "block", "source": "backlog", "dest": "blocked"},

    {"trigger": "start", "source": "todo", "dest": "in-progress"},
    {"trigger": "block", "source": "todo", "dest": "blocked"},

    {"trigger": "complete", "source": "in-progress", "dest": "in-review"},
    {"trigger": "block", "source": "in-progress", "dest": "blocked"},
    {"trigger": "pause", "source": "in-progress", "dest": "todo"},

    {"trigger": "approve", "source": "in-review", "dest": "done"},
    {"trigger": "rework", "source": "in-review", "dest": "in-progress"},
    {"trigger": "block", "source": "in-review", "dest": "blocked"},

    {"trigger": "unblock", "source": "blocked", "dest": "todo"},
    {"trigger": "defer", "source": "blocked", "dest": "backlog"},
]


def _build_trigger_lookup() -> dict[tuple[str, str], str]:
    """Build lookup from (source, dest) -> trigger name."""
    lookup: dict[tuple[str, str], str] = {}
    for t in TRANSITIONS:
        key = (t["source"], t["dest"])
        if key not in lookup:
            lookup[key] = t["trigger"]
    return lookup


def _build_allowed() -> dict[TaskStatus, list[TaskStatus]]:
    """Build status -> allowed next statuses, every status present."""
    allowed: dict[TaskStatus, list[TaskStatus]] = {status: [] for status in TaskStatus}
    for t in TRANSITIONS:
        source = TaskStatus(t["source"])
        dest = TaskStatus(t["dest"])
        if dest not in allowed[source]:
            allowed[source].append(dest)
    return allowed


TRIGGER_FOR = _build_trigger_lookup()
ALLOWED_TRANSITIONS = _build_allowed()


def allowed_transitions(status: TaskStatus) -> list[TaskStatus]:
    """Statuses reachable from status in one step."""
    return list(ALLOWED_TRANSITIONS[status])


def can_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """Check if moving from from_status to to_status is a legal single step."""
    return (from_status.value, to_status.value) in TRIGGER_FOR


class TaskFSM:
    """State machine bound to one Task.

    Wraps the transitions library with task-specific logic:
    - Starts from the task's current status
    - Writes the new status and updated_at back onto the task
    - Logs all transitions

    The FSM never touches disk; TaskStore moves the document afterwards.
    """

    def __init__(self, task: Task, on_transition: Callable[[str, str, str], None] | None = None):
        """Initialize FSM for a task.

        Args:
            task: Task to drive; mutated in place on every transition
            on_transition: Optional callback(from_state, to_state, trigger) called after transitions
        """
        self.task = task
        self.on_transition = on_transition

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=task.status.value,
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        """Callback after any state transition."""
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        self.task.status = TaskStatus(to_state)
        self.task.updated_at = datetime.now()

        logger.info(f"[FSM] {self.task.chain_id}/{self.task.id}: {from_state} -> {to_state} ({trigger})")

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    def fire(self, to_status: TaskStatus) -> None:
        """Run whichever trigger leads from the current state to to_status.

        Raises:
            transitions.MachineError: If no trigger leads there
        """
        trigger = TRIGGER_FOR.get((self.state, to_status.value))
        if trigger is None:
            raise MachineError(f"No transition from {self.state} to {to_status.value}")
        getattr(self, trigger)()
