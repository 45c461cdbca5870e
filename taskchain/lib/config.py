"""
Configuration loader for taskchain.

Reads the optional taskchain.env at the project root. Every key has a
default, so a project without the file works out of the box.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from . import envparse
from .constants import CONFIG_FILE, DEFAULT_TASKS_PATH

logger = logging.getLogger(__name__)

KNOWN_KEYS = ("TASKS_PATH", "TASK_EXT", "RECORD_EXT")


@dataclass
class TaskConfig:
    """Storage layout settings, from taskchain.env"""
    tasks_path: str = DEFAULT_TASKS_PATH  # Relative to the project root
    task_ext: str = ".md"  # Task documents
    record_ext: str = ".json"  # Chain metadata records


def _normalize_ext(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("File extension must not be empty")
    return value if value.startswith(".") else f".{value}"


def load_task_config(project_root: Path) -> TaskConfig:
    """Load taskchain.env from the project root, falling back to defaults."""
    env_path = Path(project_root) / CONFIG_FILE
    if not env_path.exists():
        return TaskConfig()

    env = envparse.load_env(env_path)

    for key in env:
        if key not in KNOWN_KEYS:
            logger.warning(f"Unknown key '{key}' in {env_path}, ignoring")

    tasks_path = env.get("TASKS_PATH", DEFAULT_TASKS_PATH).strip() or DEFAULT_TASKS_PATH
    if Path(tasks_path).is_absolute():
        raise ValueError(f"TASKS_PATH must be relative to the project root: {tasks_path}")

    return TaskConfig(
        tasks_path=tasks_path,
        task_ext=_normalize_ext(env.get("TASK_EXT", ".md")),
        record_ext=_normalize_ext(env.get("RECORD_EXT", ".json")),
    )
