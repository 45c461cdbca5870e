"""
Chain lifecycle operations.

Chain metadata is stored as one JSON record per chain:
  <tasks_path>/.chains/CHAIN-xxx-<slug>.json

A chain's tasks are never stored in the record; they are loaded from the
TaskStore each time the chain is read, and chain status is derived from them.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from taskchain.lib.config import TaskConfig, load_task_config
from taskchain.lib.constants import CHAINS_DIR, SLUG_PATTERN
from taskchain.lib.validate import ValidationError, check_record, load_record
from taskchain.tasks.codec import format_chain_id, parse_chain_id
from taskchain.tasks.models import (
    Chain,
    ChainSummary,
    ChainType,
    Task,
    TaskStatus,
    TaskType,
)
from taskchain.tasks.store import TaskStore

logger = logging.getLogger(__name__)

# Metadata fields update_chain may change
UPDATABLE_FIELDS = (
    "title",
    "description",
    "request_id",
    "type",
    "depends_on",
    "skip_design",
    "skip_design_justification",
    "file_scope",
)

# Highest priority first; done and backlog are handled separately
STATUS_PRECEDENCE = (
    TaskStatus.BLOCKED,
    TaskStatus.IN_REVIEW,
    TaskStatus.IN_PROGRESS,
    TaskStatus.TODO,
)


def _parse_timestamp(value: Optional[str]) -> datetime:
    if value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return datetime.now()


def chain_to_record(chain: Chain) -> dict[str, Any]:
    """Chain metadata as its on-disk record (tasks excluded).

    Optional fields are only written when set, matching records written
    before chain types existed.
    """
    record: dict[str, Any] = {
        "id": chain.id,
        "sequence": chain.sequence,
        "slug": chain.slug,
        "requestId": chain.request_id,
        "title": chain.title,
        "description": chain.description,
        "createdAt": chain.created_at.isoformat(),
        "updatedAt": chain.updated_at.isoformat(),
    }

    if chain.type is not None:
        record["type"] = chain.type.value
    if chain.depends_on:
        record["dependsOn"] = chain.depends_on
    if chain.skip_design:
        record["skipDesign"] = True
    if chain.skip_design_justification:
        record["skipDesignJustification"] = chain.skip_design_justification
    if chain.file_scope is not None:
        record["fileScope"] = list(chain.file_scope)

    return record


def chain_from_record(record: dict[str, Any], tasks: list[Task] | None = None) -> Chain:
    """Build a Chain from a validated record."""
    return Chain(
        id=record["id"],
        sequence=record["sequence"],
        slug=record["slug"],
        request_id=record["requestId"],
        title=record["title"],
        description=record.get("description", ""),
        type=ChainType(record["type"]) if record.get("type") else None,
        depends_on=record.get("dependsOn"),
        skip_design=bool(record.get("skipDesign", False)),
        skip_design_justification=record.get("skipDesignJustification"),
        file_scope=list(record["fileScope"]) if "fileScope" in record else None,
        tasks=list(tasks or []),
        created_at=_parse_timestamp(record.get("createdAt")),
        updated_at=_parse_timestamp(record.get("updatedAt")),
    )


def get_chain_status(chain: Chain) -> TaskStatus:
    """Derive a chain's status from its tasks.

    blocked > in-review > in-progress > todo, then done when every task is
    done, else backlog (including the no-task case).
    """
    statuses = {task.status for task in chain.tasks}

    for status in STATUS_PRECEDENCE:
        if status in statuses:
            return status

    if statuses == {TaskStatus.DONE}:
        return TaskStatus.DONE

    return TaskStatus.BACKLOG


class ChainStore:
    """Chain CRUD for one project root. Owns a TaskStore for task operations."""

    def __init__(self, project_root: Path, config: TaskConfig | None = None):
        self.project_root = Path(project_root)
        self.config = config or load_task_config(self.project_root)
        self.task_store = TaskStore(self.project_root, self.config)

    def get_task_store(self) -> TaskStore:
        """The TaskStore bound to the same project root."""
        return self.task_store

    @property
    def chains_dir(self) -> Path:
        return self.task_store.tasks_dir / CHAINS_DIR

    def record_path(self, chain_id: str) -> Path:
        return self.chains_dir / f"{chain_id}{self.config.record_ext}"

    # -- records -----------------------------------------------------------

    def _load_record(self, chain_id: str) -> Optional[dict[str, Any]]:
        if parse_chain_id(chain_id) is None or "/" in chain_id or "\\" in chain_id:
            return None

        path = self.record_path(chain_id)
        if not path.exists():
            logger.debug(f"[CHAIN] No record for {chain_id}")
            return None

        try:
            record = load_record(path, "chain")
        except ValidationError as e:
            logger.warning(f"[CHAIN] Ignoring invalid chain record {path}: {e}")
            return None

        if record["id"] != chain_id:
            logger.warning(f"[CHAIN] Record {path} claims id {record['id']}, ignoring")
            return None
        return record

    def _write_record(self, chain: Chain) -> None:
        record = chain_to_record(chain)
        path = self.record_path(chain.id)
        check_record(record, "chain", path)

        self.chains_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(record, indent=2) + "\n")

    def _list_chain_ids(self) -> list[str]:
        if not self.chains_dir.is_dir():
            return []
        ext = self.config.record_ext
        return [
            path.name[:-len(ext)]
            for path in sorted(self.chains_dir.glob(f"CHAIN-*{ext}"))
        ]

    # -- queries -----------------------------------------------------------

    def get_chain(self, chain_id: str) -> Optional[Chain]:
        """Load a chain and its tasks. None if missing or id malformed."""
        record = self._load_record(chain_id)
        if record is None:
            return None
        return chain_from_record(record, self.task_store.get_tasks_for_chain(chain_id))

    def get_all_chains(self) -> list[Chain]:
        """All chains with their tasks, sorted by sequence."""
        chains = []
        for chain_id in self._list_chain_ids():
            chain = self.get_chain(chain_id)
            if chain is not None:
                chains.append(chain)
        return sorted(chains, key=lambda c: c.sequence)

    def get_chain_status(self, chain: Chain) -> TaskStatus:
        return get_chain_status(chain)

    def get_chain_summary(self, chain_id: str) -> Optional[ChainSummary]:
        """Chain plus derived status, per-status task counts and progress."""
        chain = self.get_chain(chain_id)
        if chain is None:
            return None

        task_counts = {status: 0 for status in TaskStatus}
        for task in chain.tasks:
            task_counts[task.status] += 1

        total = len(chain.tasks)
        progress = task_counts[TaskStatus.DONE] / total if total else 0.0

        return ChainSummary(
            chain=chain,
            status=get_chain_status(chain),
            task_counts=task_counts,
            progress=progress,
        )

    def get_next_task(self, chain_id: str) -> Optional[Task]:
        return self.task_store.get_next_task(chain_id)

    # -- mutations ---------------------------------------------------------

    def create_chain(
        self,
        request_id: str,
        slug: str,
        title: str,
        description: str = "",
        type: ChainType | None = None,
        depends_on: str | None = None,
        skip_design: bool = False,
        skip_design_justification: str | None = None,
        file_scope: list[str] | None = None,
    ) -> Chain:
        """Create a chain with an empty task list.

        Whether an implementation chain names a design dependency or a
        skip justification is checked by governance tooling, not here.

        Raises:
            ValueError: If slug is not identifier-safe
            ValidationError: If the resulting record fails its schema
        """
        if not SLUG_PATTERN.match(slug):
            raise ValueError(f"Invalid chain slug: {slug!r}")

        highest = 0
        for chain_id in self._list_chain_ids():
            parsed = parse_chain_id(chain_id)
            if parsed:
                highest = max(highest, parsed[0])
        sequence = self.task_store.ledger.next_chain_sequence(highest)

        now = datetime.now()
        chain = Chain(
            id=format_chain_id(sequence, slug),
            sequence=sequence,
            slug=slug,
            request_id=request_id,
            title=title,
            description=description or "",
            type=type,
            depends_on=depends_on,
            skip_design=skip_design,
            skip_design_justification=skip_design_justification,
            file_scope=list(file_scope) if file_scope is not None else None,
            created_at=now,
            updated_at=now,
        )

        self._write_record(chain)
        self.task_store.chain_dir(chain.id, TaskStatus.BACKLOG).mkdir(parents=True, exist_ok=True)

        logger.info(f"[CHAIN] Created {chain.id} for {request_id}")
        return chain

    def add_task(
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
    ) -> Task:
        """Create a task in this chain's backlog."""
        return self.task_store.create_task(
            chain_id,
            slug,
            title,
            description,
            expected_files=expected_files,
            acceptance=acceptance,
            constraints=constraints,
            notes=notes,
            file_scope=file_scope,
            type=type,
        )

    def update_chain(self, chain_id: str, updates: dict) -> Optional[Chain]:
        """Update chain metadata.

        Args:
            updates: Subset of UPDATABLE_FIELDS; type may be a ChainType or its value

        Returns:
            Refreshed Chain (tasks reloaded) or None if not found

        Raises:
            ValueError: If updates names a field outside UPDATABLE_FIELDS
        """
        unknown = sorted(set(updates) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValueError(f"Cannot update chain field(s): {', '.join(unknown)}")

        record = self._load_record(chain_id)
        if record is None:
            return None

        chain = chain_from_record(record)
        for key, value in updates.items():
            if key == "type" and isinstance(value, str):
                value = ChainType(value)
            elif key == "file_scope" and value is not None:
                value = list(value)
            setattr(chain, key, value)
        chain.updated_at = datetime.now()

        self._write_record(chain)
        logger.info(f"[CHAIN] Updated {chain_id}: {', '.join(sorted(updates))}")
        return self.get_chain(chain_id)

    def delete_chain(self, chain_id: str) -> bool:
        """Delete a chain's record and all of its task directories.

        Returns:
            True if a record or any task directory existed
        """
        if parse_chain_id(chain_id) is None or "/" in chain_id or "\\" in chain_id:
            return False

        removed = False
        path = self.record_path(chain_id)
        if path.exists():
            path.unlink()
            removed = True

        if self.task_store.delete_chain_tasks(chain_id):
            removed = True

        if removed:
            self.task_store.ledger.forget_chain(chain_id)
            logger.info(f"[CHAIN] Deleted {chain_id}")
        return removed
