"""
Tasks and chains.

Tasks move through a kanban lifecycle stored as directories on disk;
chains group tasks under a change request and derive their status from
them. Callers go through ChainStore / TaskStore and never touch the
directory layout directly.
"""

from taskchain.tasks.models import (
    Chain,
    ChainSummary,
    ChainType,
    ReworkResult,
    Task,
    TaskStatus,
    TaskType,
    TransitionResult,
)
from taskchain.tasks.codec import (
    format_chain_id,
    format_task_id,
    parse_chain_id,
    parse_task,
    parse_task_id,
    serialize_task,
)
from taskchain.tasks.store import TaskStore, TaskStoreError
from taskchain.tasks.chains import ChainStore, get_chain_status
from taskchain.tasks.scope import (
    find_conflicting_chains,
    get_overlapping_patterns,
    has_overlap,
    resolve_file_scope,
)

__all__ = [
    "Chain",
    "ChainSummary",
    "ChainType",
    "ReworkResult",
    "Task",
    "TaskStatus",
    "TaskType",
    "TransitionResult",
    "format_chain_id",
    "format_task_id",
    "parse_chain_id",
    "parse_task",
    "parse_task_id",
    "serialize_task",
    "TaskStore",
    "TaskStoreError",
    "ChainStore",
    "get_chain_status",
    "find_conflicting_chains",
    "get_overlapping_patterns",
    "has_overlap",
    "resolve_file_scope",
]
