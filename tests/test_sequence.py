"""Tests for taskchain.tasks.sequence module."""

import json
import logging

from taskchain.tasks.sequence import SequenceLedger


class TestSequenceLedger:
    """Test high-water mark allocation."""

    def test_first_allocation(self, tmp_path):
        ledger = SequenceLedger(tmp_path / ".chains" / "sequences.json")
        assert ledger.next_chain_sequence(0) == 1
        assert ledger.next_task_sequence("CHAIN-001-a", 0) == 1

    def test_mark_survives_lower_scan(self, tmp_path):
        ledger = SequenceLedger(tmp_path / "sequences.json")
        assert ledger.next_chain_sequence(4) == 5
        assert ledger.next_chain_sequence(0) == 6

    def test_scan_above_mark_wins(self, tmp_path):
        ledger = SequenceLedger(tmp_path / "sequences.json")
        ledger.next_task_sequence("CHAIN-001-a", 0)
        assert ledger.next_task_sequence("CHAIN-001-a", 9) == 10

    def test_chains_counted_separately(self, tmp_path):
        ledger = SequenceLedger(tmp_path / "sequences.json")
        ledger.next_task_sequence("CHAIN-001-a", 0)
        ledger.next_task_sequence("CHAIN-001-a", 0)
        assert ledger.next_task_sequence("CHAIN-002-b", 0) == 1

    def test_persisted(self, tmp_path):
        path = tmp_path / "sequences.json"
        SequenceLedger(path).next_chain_sequence(2)
        data = json.loads(path.read_text())
        assert data == {"chains": 3, "tasks": {}}

    def test_forget_chain(self, tmp_path):
        path = tmp_path / "sequences.json"
        ledger = SequenceLedger(path)
        ledger.next_task_sequence("CHAIN-001-a", 0)
        ledger.forget_chain("CHAIN-001-a")
        assert json.loads(path.read_text())["tasks"] == {}

    def test_corrupt_file_resets(self, tmp_path, caplog):
        caplog.set_level(logging.WARNING)
        path = tmp_path / "sequences.json"
        path.write_text("{not json")

        assert SequenceLedger(path).next_chain_sequence(2) == 3
        assert "Corrupt sequence ledger" in caplog.text

    def test_non_object_file_resets(self, tmp_path, caplog):
        caplog.set_level(logging.WARNING)
        path = tmp_path / "sequences.json"
        path.write_text("[]")

        ledger = SequenceLedger(path)

        assert ledger.next_chain_sequence(0) == 1
        assert ledger.next_task_sequence("CHAIN-001-a", 0) == 1
        assert json.loads(path.read_text()) == {"chains": 1, "tasks": {"CHAIN-001-a": 1}}
        assert "Corrupt sequence ledger" in caplog.text

    def test_non_object_file_through_store(self, tmp_path):
        from taskchain.tasks.store import TaskStore

        store = TaskStore(tmp_path)
        store.ledger.path.parent.mkdir(parents=True)
        store.ledger.path.write_text("[]")

        assert store.create_task("CHAIN-001-a", "first", "First", "").id == "001-first"
