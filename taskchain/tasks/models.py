"""
Data models for task chains.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class TaskStatus(Enum):
    """Kanban column of a task. Also the name of its status directory.

    Declaration order is the lookup order used when scanning directories.
    """

    BACKLOG = "backlog"
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    IN_REVIEW = "in-review"
    DONE = "done"
    BLOCKED = "blocked"


class TaskType(Enum):
    """Which kind of agent acts on a task."""

    IMPL = "impl"
    CONTROL = "control"


class ChainType(Enum):
    """Planning chains vs. execution chains."""

    DESIGN = "design"
    IMPLEMENTATION = "implementation"


def parse_status(value: str | None) -> TaskStatus | None:
    """Parse a status string into TaskStatus.

    Returns None if status is unknown.
    """
    if value is None:
        return None
    for status in TaskStatus:
        if status.value == value:
            return status
    return None


@dataclass
class Task:
    """A single unit of work inside a chain.

    The status field and the directory holding the task document must
    always agree; only TaskStore moves a task between the two.
    """
    id: str                                    # 001-setup-api
    sequence: int
    slug: str
    status: TaskStatus
    chain_id: str
    title: str
    description: str
    expected_files: list[str] = field(default_factory=list)
    acceptance: list[str] = field(default_factory=list)
    constraints: list[str] = field(default_factory=list)
    notes: str = ""
    file_scope: Optional[list[str]] = None     # Glob patterns this task will modify
    rework_of: Optional[str] = None            # Task id this one supersedes
    rework_reason: Optional[str] = None
    rework_count: Optional[int] = None
    type: Optional[TaskType] = None            # None reads as impl
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def task_type(self) -> TaskType:
        return self.type or TaskType.IMPL


@dataclass
class Chain:
    """An ordered group of tasks tied to one change/fix request.

    Only the metadata is persisted in the chain record; tasks are loaded
    from the task store each time the chain is read.
    """
    id: str                                    # CHAIN-001-profile-backend
    sequence: int
    slug: str
    request_id: str                            # CR-20240101-001
    title: str
    description: str = ""
    type: Optional[ChainType] = None
    depends_on: Optional[str] = None           # Usually the design chain this one follows
    skip_design: bool = False
    skip_design_justification: Optional[str] = None
    file_scope: Optional[list[str]] = None
    tasks: list[Task] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass
class TransitionResult:
    """Outcome of TaskStore.transition_task.

    task and previous_status are None only when the task was not found.
    """
    success: bool
    task: Optional[Task]
    previous_status: Optional[TaskStatus]
    new_status: TaskStatus
    allowed: list[TaskStatus] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class ReworkResult:
    """Outcome of TaskStore.create_rework_task."""
    success: bool
    original: Optional[Task] = None
    rework: Optional[Task] = None
    error: Optional[str] = None


@dataclass
class ChainSummary:
    """A chain with its derived status and progress."""
    chain: Chain
    status: TaskStatus
    task_counts: dict[TaskStatus, int]
    progress: float                            # done / total, 0.0 with no tasks
