"""
Task lifecycle operations.

Tasks are stored as markdown documents in status directories:
  <tasks_path>/<status>/<chain-id>/<task-id>.md

The directory a document sits in *is* the task's status. Every status
change goes through transition_task, which writes the document into the
new directory before removing it from the old one.
"""

import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional

from taskchain.lib.config import TaskConfig, load_task_config
from taskchain.lib.constants import CHAINS_DIR, SEQUENCES_FILE, SLUG_PATTERN
from taskchain.tasks.codec import format_task_id, parse_task, parse_task_id, serialize_task
from taskchain.tasks.models import (
    ReworkResult,
    Task,
    TaskStatus,
    TaskType,
    TransitionResult,
    parse_status,
)
from taskchain.tasks.sequence import SequenceLedger
from taskchain.tasks.fsm import TaskFSM, allowed_transitions, can_transition

logger = logging.getLogger(__name__)

# Content fields update_task may change; status only moves via transitions
UPDATABLE_FIELDS = (
    "title",
    "description",
    "expected_files",
    "acceptance",
    "constraints",
    "notes",
    "file_scope",
)

# None clears these; every other field needs a value
NULLABLE_FIELDS = ("file_scope",)

REWORKABLE = (TaskStatus.IN_REVIEW, TaskStatus.DONE)


class TaskStoreError(Exception):
    """A write could not be confirmed on disk."""


def _is_path_component(name: str) -> bool:
    return bool(name) and name not in (".", "..") and "/" not in name and "\\" not in name


def _coerce_status(status: TaskStatus | str) -> TaskStatus:
    if isinstance(status, TaskStatus):
        return status
    parsed = parse_status(status)
    if parsed is None:
        raise ValueError(f"Unknown task status: {status!r}")
    return parsed


class TaskStore:
    """Task CRUD and status transitions for one project root."""

    def __init__(self, project_root: Path, config: TaskConfig | None = None):
        self.project_root = Path(project_root)
        self.config = config or load_task_config(self.project_root)
        self.ledger = SequenceLedger(self.tasks_dir / CHAINS_DIR / SEQUENCES_FILE)

    @property
    def tasks_dir(self) -> Path:
        return self.project_root / self.config.tasks_path

    def status_dir(self, status: TaskStatus) -> Path:
        return self.tasks_dir / status.value

    def chain_dir(self, chain_id: str, status: TaskStatus) -> Path:
        return self.status_dir(status) / chain_id

    def task_path(self, chain_id: str, task_id: str, status: TaskStatus) -> Path:
        return self.chain_dir(chain_id, status) / f"{task_id}{self.config.task_ext}"

    # -- internals ---------------------------------------------------------

    def _read_task(self, path: Path, chain_id: str, status: TaskStatus) -> Optional[Task]:
        task = parse_task(path.read_text(), chain_id, status)
        if task is None:
            logger.warning(f"[TASK] Unparsable task document: {path}")
        return task

    def _write_task(self, task: Task) -> Path:
        chain_dir = self.chain_dir(task.chain_id, task.status)
        chain_dir.mkdir(parents=True, exist_ok=True)
        path = self.task_path(task.chain_id, task.id, task.status)
        path.write_text(serialize_task(task))
        return path

    def _prune_chain_dir(self, chain_id: str, status: TaskStatus) -> None:
        """Remove a chain's status directory once it holds no tasks."""
        chain_dir = self.chain_dir(chain_id, status)
        if chain_dir.is_dir() and not any(chain_dir.iterdir()):
            chain_dir.rmdir()
            logger.debug(f"[TASK] Pruned empty {chain_dir}")

    def _remove_copies(self, chain_id: str, task_id: str, keep: TaskStatus | None = None) -> bool:
        """Delete the task document from every status except keep."""
        removed = False
        for status in TaskStatus:
            if status is keep:
                continue
            path = self.task_path(chain_id, task_id, status)
            if path.exists():
                path.unlink()
                self._prune_chain_dir(chain_id, status)
                removed = True
        return removed

    def _relocate(self, task: Task, previous: TaskStatus) -> None:
        """Move a task document to the directory matching task.status.

        Write new, read it back, then drop every other copy. Rerunning after
        an interruption converges on a single document.
        """
        new_path = self._write_task(task)

        written = self._read_task(new_path, task.chain_id, task.status)
        if written is None or written.id != task.id:
            raise TaskStoreError(
                f"Could not confirm {new_path} after write; "
                f"{previous.value} copy of {task.id} left in place"
            )

        self._remove_copies(task.chain_id, task.id, keep=task.status)

    def _check_ids(self, chain_id: str, task_id: str) -> bool:
        return _is_path_component(chain_id) and _is_path_component(task_id) \
            and parse_task_id(task_id) is not None

    # -- queries -----------------------------------------------------------

    def get_task(self, chain_id: str, task_id: str) -> Optional[Task]:
        """Find a task in whichever status directory holds it.

        Statuses are searched in TaskStatus declaration order.
        """
        if not self._check_ids(chain_id, task_id):
            return None

        for status in TaskStatus:
            path = self.task_path(chain_id, task_id, status)
            if path.exists():
                return self._read_task(path, chain_id, status)

        logger.debug(f"[TASK] {chain_id}/{task_id} not found")
        return None

    def get_tasks_for_chain(self, chain_id: str) -> list[Task]:
        """All tasks of a chain across statuses, sorted by sequence."""
        if not _is_path_component(chain_id):
            return []

        tasks: list[Task] = []
        seen: set[str] = set()
        for status in TaskStatus:
            chain_dir = self.chain_dir(chain_id, status)
            if not chain_dir.is_dir():
                continue
            for path in sorted(chain_dir.glob(f"*{self.config.task_ext}")):
                task = self._read_task(path, chain_id, status)
                if task is None:
                    continue
                if task.id in seen:
                    logger.warning(f"[TASK] Duplicate {chain_id}/{task.id} in {status.value}, ignoring")
                    continue
                seen.add(task.id)
                tasks.append(task)

        return sorted(tasks, key=lambda t: t.sequence)

    def get_next_task(self, chain_id: str) -> Optional[Task]:
        """The task an agent should work on next.

        The in-progress task if there is one, otherwise the lowest-sequence
        todo task, otherwise None.
        """
        tasks = self.get_tasks_for_chain(chain_id)

        for task in tasks:
            if task.status is TaskStatus.IN_PROGRESS:
                return task
        for task in tasks:
            if task.status is TaskStatus.TODO:
                return task
        return None

    # -- mutations ---------------------------------------------------------

    def create_task(
        self,
        chain_id: str,
        slug: str,
        title: str,
        description: str,
        expected_files: list[str] | None = None,
        acceptance: list[str] | None = None,
        constraints: list[str] | None = None,
        notes: str = "",
        file_scope: list[str] | None = None,
        type: TaskType | None = None,
        rework_of: str | None = None,
        rework_reason: str | None = None,
    ) -> Task:
        """Create a task in the chain's backlog.

        Returns:
            Created Task

        Raises:
            ValueError: If chain_id is not a path component or slug is not identifier-safe
        """
        if not _is_path_component(chain_id):
            raise ValueError(f"Invalid chain id: {chain_id!r}")
        if not SLUG_PATTERN.match(slug):
            raise ValueError(f"Invalid task slug: {slug!r}")

        existing = self.get_tasks_for_chain(chain_id)
        highest = max((t.sequence for t in existing), default=0)
        sequence = self.ledger.next_task_sequence(chain_id, highest)

        task = Task(
            id=format_task_id(sequence, slug),
            sequence=sequence,
            slug=slug,
            status=TaskStatus.BACKLOG,
            chain_id=chain_id,
            title=title,
            description=description,
            expected_files=list(expected_files or []),
            acceptance=list(acceptance or []),
            constraints=list(constraints or []),
            notes=notes or "",
            file_scope=list(file_scope) if file_scope else None,
            rework_of=rework_of,
            rework_reason=rework_reason,
            type=type,
        )

        path = self._write_task(task)
        logger.info(f"[TASK] Created {chain_id}/{task.id} at {path}")
        return task

    def transition_task(
        self,
        chain_id: str,
        task_id: str,
        new_status: TaskStatus | str,
    ) -> TransitionResult:
        """Move a task to a new status.

        Illegal moves are reported in the result, not raised, and leave
        the task untouched.
        """
        target = _coerce_status(new_status)

        task = self.get_task(chain_id, task_id)
        if task is None:
            return TransitionResult(
                success=False,
                task=None,
                previous_status=None,
                new_status=target,
                error=f"Task {task_id} not found in chain {chain_id}",
            )

        previous = task.status
        allowed = allowed_transitions(previous)
        if not can_transition(previous, target):
            allowed_str = ", ".join(s.value for s in allowed) or "none (terminal)"
            error = f"Cannot transition from {previous.value} to {target.value}. Allowed: {allowed_str}"
            logger.info(f"[TASK] {chain_id}/{task_id}: {error}")
            return TransitionResult(
                success=False,
                task=task,
                previous_status=previous,
                new_status=target,
                allowed=allowed,
                error=error,
            )

        TaskFSM(task).fire(target)
        self._relocate(task, previous)

        return TransitionResult(
            success=True,
            task=task,
            previous_status=previous,
            new_status=target,
            allowed=allowed,
        )

    def schedule_task(self, chain_id: str, task_id: str) -> TransitionResult:
        """backlog -> todo"""
        return self.transition_task(chain_id, task_id, TaskStatus.TODO)

    def start_task(self, chain_id: str, task_id: str) -> TransitionResult:
        """todo -> in-progress"""
        return self.transition_task(chain_id, task_id, TaskStatus.IN_PROGRESS)

    def complete_task(self, chain_id: str, task_id: str) -> TransitionResult:
        """in-progress -> in-review"""
        return self.transition_task(chain_id, task_id, TaskStatus.IN_REVIEW)

    def approve_task(self, chain_id: str, task_id: str) -> TransitionResult:
        """in-review -> done"""
        return self.transition_task(chain_id, task_id, TaskStatus.DONE)

    def rework_task(self, chain_id: str, task_id: str) -> TransitionResult:
        """in-review -> in-progress"""
        return self.transition_task(chain_id, task_id, TaskStatus.IN_PROGRESS)

    def block_task(self, chain_id: str, task_id: str) -> TransitionResult:
        return self.transition_task(chain_id, task_id, TaskStatus.BLOCKED)

    def unblock_task(self, chain_id: str, task_id: str) -> TransitionResult:
        """blocked -> todo"""
        return self.transition_task(chain_id, task_id, TaskStatus.TODO)

    def update_task(self, chain_id: str, task_id: str, updates: dict) -> Optional[Task]:
        """Update a task's content in place.

        Args:
            updates: Subset of UPDATABLE_FIELDS

        Returns:
            Updated Task or None if not found

        Raises:
            ValueError: If updates names a field outside UPDATABLE_FIELDS, or
                sets a field other than file_scope to None
        """
        unknown = sorted(set(updates) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValueError(f"Cannot update task field(s): {', '.join(unknown)}")
        cleared = sorted(k for k, v in updates.items() if v is None and k not in NULLABLE_FIELDS)
        if cleared:
            raise ValueError(f"Task field(s) cannot be None: {', '.join(cleared)}")

        task = self.get_task(chain_id, task_id)
        if task is None:
            return None

        for key, value in updates.items():
            if isinstance(value, list):
                value = list(value)
            setattr(task, key, value)
        task.updated_at = datetime.now()

        self._write_task(task)
        logger.info(f"[TASK] Updated {chain_id}/{task_id}: {', '.join(sorted(updates))}")
        return task

    def delete_task(self, chain_id: str, task_id: str) -> bool:
        """Delete a task and prune its now-empty chain directory.

        Returns:
            True if a task document was removed
        """
        if self.get_task(chain_id, task_id) is None:
            return False

        self._remove_copies(chain_id, task_id)
        logger.info(f"[TASK] Deleted {chain_id}/{task_id}")
        return True

    def delete_chain_tasks(self, chain_id: str) -> bool:
        """Remove a chain's directory from every status.

        Returns:
            True if any directory existed
        """
        if not _is_path_component(chain_id):
            return False

        removed = False
        for status in TaskStatus:
            chain_dir = self.chain_dir(chain_id, status)
            if chain_dir.is_dir():
                shutil.rmtree(chain_dir)
                removed = True
        return removed

    def create_rework_task(self, chain_id: str, task_id: str, reason: str) -> ReworkResult:
        """Open a follow-up task for work that came back from review.

        The new task lands in todo and points at the original through
        rework_of; the original's rework_count goes up by one.
        """
        reason = " ".join(reason.split())
        if not reason:
            return ReworkResult(success=False, error="Rework reason must not be empty")

        original = self.get_task(chain_id, task_id)
        if original is None:
            return ReworkResult(success=False, error=f"Task {task_id} not found in chain {chain_id}")

        if original.status not in REWORKABLE:
            valid = ", ".join(s.value for s in REWORKABLE)
            return ReworkResult(
                success=False,
                original=original,
                error=f"Task {task_id} is in '{original.status.value}' status. "
                      f"Rework can only be created for tasks in: {valid}",
            )

        number = (original.rework_count or 0) + 1
        acceptance = list(original.acceptance) or ["Address rework feedback"]
        acceptance.append("Verify rework reason has been addressed")

        rework = self.create_task(
            chain_id,
            f"{original.slug}-rework-{number}",
            f"{original.title} (Rework {number})",
            f"Rework of task {original.id}: {original.title}\n\nRework reason: {reason}",
            expected_files=original.expected_files,
            acceptance=acceptance,
            constraints=original.constraints,
            notes=f"This is rework {number} for the original task.",
            file_scope=original.file_scope,
            type=original.type,
            rework_of=original.id,
            rework_reason=reason,
        )

        result = self.schedule_task(chain_id, rework.id)
        if result.task is not None:
            rework = result.task

        original.rework_count = number
        original.updated_at = datetime.now()
        self._write_task(original)

        logger.info(f"[TASK] Rework {number} of {chain_id}/{task_id} opened as {rework.id}")
        return ReworkResult(success=True, original=original, rework=rework)
