"""
Task document codec.

Tasks are stored as markdown documents:

    # Task: <title>

    **Chain**: CHAIN-001-profile
    **Task**: 001-setup-api
    **Status**: todo
    **Created**: 2024-01-01

    ---

    ## Objective
    ...

Sections follow in fixed order: Objective, Expected Files, Acceptance
Criteria, Constraints (only when non-empty), File Scope (only when
non-empty), Notes. Every section before Notes is closed by a '---' line.
"""

import logging
import re
from datetime import datetime
from typing import Optional

from taskchain.lib.constants import CHAIN_ID_PATTERN, TASK_ID_PATTERN
from taskchain.tasks.models import Task, TaskStatus, TaskType

logger = logging.getLogger(__name__)

TITLE_PREFIX = "# Task:"
SECTION_PREFIX = "## "
DELIMITER = "---"
NO_NOTES = "_No notes yet._"

LIST_MARKER_RE = re.compile(r'^[-*]\s*')
CHECKBOX_RE = re.compile(r'^\[[ xX]\]\s*')


def format_sequence(sequence: int) -> str:
    """Zero-pad a sequence number: 1 -> "001"."""
    return f"{sequence:03d}"


def format_task_id(sequence: int, slug: str) -> str:
    """format_task_id(1, "setup-api") -> "001-setup-api"."""
    return f"{format_sequence(sequence)}-{slug}"


def format_chain_id(sequence: int, slug: str) -> str:
    """format_chain_id(1, "profile") -> "CHAIN-001-profile"."""
    return f"CHAIN-{format_sequence(sequence)}-{slug}"


def parse_task_id(task_id: str) -> Optional[tuple[int, str]]:
    """Split "001-setup-api" into (1, "setup-api"), or None if malformed."""
    match = TASK_ID_PATTERN.match(task_id)
    if not match:
        return None
    return int(match.group(1)), match.group(2)


def parse_chain_id(chain_id: str) -> Optional[tuple[int, str]]:
    """Split "CHAIN-001-profile" into (1, "profile"), or None if malformed."""
    match = CHAIN_ID_PATTERN.match(chain_id)
    if not match:
        return None
    return int(match.group(1)), match.group(2)


def _section(lines: list[str], name: str, body: list[str]) -> None:
    lines.extend([f"{SECTION_PREFIX}{name}", ""])
    lines.extend(body)
    lines.extend(["", DELIMITER, ""])


def serialize_task(task: Task) -> str:
    """Render a task as its markdown document."""
    lines = [
        f"{TITLE_PREFIX} {task.title}",
        "",
        f"**Chain**: {task.chain_id}  ",
        f"**Task**: {task.id}  ",
        f"**Status**: {task.status.value}  ",
        f"**Created**: {task.created_at.date().isoformat()}",
    ]

    if task.type is not None:
        lines.append(f"**Type**: {task.type.value}  ")
    if task.rework_of:
        lines.append(f"**Rework-Of**: {task.rework_of}  ")
    if task.rework_reason:
        lines.append(f"**Rework-Reason**: {task.rework_reason}  ")
    if task.rework_count is not None:
        lines.append(f"**Rework-Count**: {task.rework_count}  ")

    lines.extend(["", DELIMITER, ""])

    _section(lines, "Objective", [task.description])
    _section(lines, "Expected Files", [f"- `{path}`" for path in task.expected_files])
    _section(lines, "Acceptance Criteria", [f"- [ ] {criterion}" for criterion in task.acceptance])

    if task.constraints:
        _section(lines, "Constraints", [f"- {constraint}" for constraint in task.constraints])
    if task.file_scope:
        _section(lines, "File Scope", [f"- `{pattern}`" for pattern in task.file_scope])

    lines.extend([
        f"{SECTION_PREFIX}Notes",
        "",
        task.notes or NO_NOTES,
        "",
    ])

    return "\n".join(lines)


def _extract_sections(lines: list[str]) -> dict[str, str]:
    """Map lower-cased section heading -> trimmed body."""
    sections: dict[str, str] = {}
    current: Optional[str] = None
    content: list[str] = []

    for line in lines:
        if line.startswith(SECTION_PREFIX):
            if current:
                sections[current] = "\n".join(content).strip()
            current = line[len(SECTION_PREFIX):].strip().lower()
            content = []
        elif line.strip() == DELIMITER:
            if current:
                sections[current] = "\n".join(content).strip()
                current = None
                content = []
        elif current:
            content.append(line)

    if current:
        sections[current] = "\n".join(content).strip()

    return sections


def _parse_list(body: str) -> list[str]:
    items = []
    for line in body.splitlines():
        item = LIST_MARKER_RE.sub("", line.strip(), count=1)
        item = CHECKBOX_RE.sub("", item, count=1)
        item = item.replace("`", "").strip()
        if item:
            items.append(item)
    return items


def _parse_created(value: Optional[str]) -> datetime:
    if value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            logger.debug(f"Unparsable created date '{value}', using now")
    return datetime.now()


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def parse_task(content: str, chain_id: str, status: TaskStatus) -> Optional[Task]:
    """Parse a task document.

    chain_id and status come from where the document was found, not from
    its metadata block, so the directory stays the source of truth.

    Returns:
        Task, or None if the title heading or the task id is missing/malformed
    """
    lines = content.splitlines()

    title_idx = next((i for i, l in enumerate(lines) if l.startswith(TITLE_PREFIX)), None)
    if title_idx is None:
        return None
    title = lines[title_idx][len(TITLE_PREFIX):].strip()

    metadata: dict[str, str] = {}
    body_start = len(lines)
    for i in range(title_idx + 1, len(lines)):
        line = lines[i]
        if line.strip() == DELIMITER:
            body_start = i + 1
            break
        key, sep, value = line.partition(":")
        key = key.replace("**", "").strip().lower()
        if sep and key:
            metadata[key] = value.strip()

    task_id = metadata.get("task")
    if not task_id:
        return None
    parsed = parse_task_id(task_id)
    if not parsed:
        return None
    sequence, slug = parsed

    sections = _extract_sections(lines[body_start:])

    notes = sections.get("notes", "")
    if notes == NO_NOTES:
        notes = ""

    task_type = None
    if "type" in metadata:
        try:
            task_type = TaskType(metadata["type"])
        except ValueError:
            logger.warning(f"Unknown task type '{metadata['type']}' in {chain_id}/{task_id}")

    file_scope = _parse_list(sections["file scope"]) if "file scope" in sections else None

    return Task(
        id=task_id,
        sequence=sequence,
        slug=slug,
        status=status,
        chain_id=chain_id,
        title=title,
        description=sections.get("objective", ""),
        expected_files=_parse_list(sections.get("expected files", "")),
        acceptance=_parse_list(sections.get("acceptance criteria", "")),
        constraints=_parse_list(sections.get("constraints", "")),
        notes=notes,
        file_scope=file_scope or None,
        rework_of=metadata.get("rework-of") or None,
        rework_reason=metadata.get("rework-reason") or None,
        rework_count=_parse_int(metadata.get("rework-count")),
        type=task_type,
        created_at=_parse_created(metadata.get("created")),
        updated_at=datetime.now(),
    )
