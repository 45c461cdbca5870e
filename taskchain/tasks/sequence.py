"""
Sequence high-water marks.

Sequence numbers are allocated as max(highest in use, recorded mark) + 1,
so deleting the newest chain or task never hands its number out again.
Marks live in <tasks_path>/.chains/sequences.json:

    {"chains": 3, "tasks": {"CHAIN-001-auth": 5}}
"""

import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class SequenceLedger:
    """Reads and bumps the recorded high-water marks."""

    def __init__(self, path: Path):
        self.path = path

    def _load(self) -> dict:
        if not self.path.exists():
            return {"chains": 0, "tasks": {}}
        try:
            data = json.loads(self.path.read_text())
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupt sequence ledger {self.path}, rebuilding from scan: {e}")
            return {"chains": 0, "tasks": {}}
        if not isinstance(data, dict) or not isinstance(data.get("tasks", {}), dict):
            logger.warning(f"Corrupt sequence ledger {self.path}, rebuilding from scan: not an object")
            return {"chains": 0, "tasks": {}}
        data.setdefault("chains", 0)
        data.setdefault("tasks", {})
        return data

    def _save(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2, sort_keys=True))

    def next_chain_sequence(self, highest_in_use: int) -> int:
        """Allocate the next project-wide chain sequence."""
        data = self._load()
        sequence = max(highest_in_use, int(data["chains"])) + 1
        data["chains"] = sequence
        self._save(data)
        return sequence

    def next_task_sequence(self, chain_id: str, highest_in_use: int) -> int:
        """Allocate the next task sequence within chain_id."""
        data = self._load()
        sequence = max(highest_in_use, int(data["tasks"].get(chain_id, 0))) + 1
        data["tasks"][chain_id] = sequence
        self._save(data)
        return sequence

    def forget_chain(self, chain_id: str) -> None:
        """Drop the task mark of a deleted chain."""
        data = self._load()
        if data["tasks"].pop(chain_id, None) is not None:
            self._save(data)
