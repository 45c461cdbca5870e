"""Tests for taskchain.lib.validate module."""

import json

import pytest

from taskchain.lib.validate import ValidationError, check_record, load_record


def make_record(**overrides) -> dict:
    record = {
        "id": "CHAIN-001-a",
        "sequence": 1,
        "slug": "a",
        "requestId": "REQ-1",
        "title": "A",
        "description": "",
        "createdAt": "2024-01-01T00:00:00",
        "updatedAt": "2024-01-01T00:00:00",
    }
    record.update(overrides)
    return record


class TestCheckRecord:
    """Test check_record."""

    def test_valid_record(self):
        check_record(make_record(type="design", fileScope=["src/**"]))

    def test_error_names_record_and_fields(self):
        with pytest.raises(ValidationError) as exc:
            check_record(make_record(title=5, sequence=0))

        err = exc.value
        assert err.record_id == "CHAIN-001-a"
        assert len(err.problems) == 2
        assert any(p.startswith("title:") for p in err.problems)
        assert any(p.startswith("sequence:") for p in err.problems)
        assert "CHAIN-001-a" in str(err)

    def test_missing_id(self):
        record = make_record()
        del record["id"]
        with pytest.raises(ValidationError) as exc:
            check_record(record)
        assert exc.value.record_id is None
        assert "record without id" in str(exc.value)

    def test_unknown_chain_type(self):
        with pytest.raises(ValidationError):
            check_record(make_record(type="research"))


class TestLoadRecord:
    """Test load_record."""

    def test_returns_record(self, tmp_path):
        path = tmp_path / "CHAIN-001-a.json"
        path.write_text(json.dumps(make_record()))
        assert load_record(path)["id"] == "CHAIN-001-a"

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "CHAIN-001-a.json"
        path.write_text("{oops")
        with pytest.raises(ValidationError, match="not valid JSON"):
            load_record(path)

    def test_non_object(self, tmp_path):
        path = tmp_path / "CHAIN-001-a.json"
        path.write_text("[]")
        with pytest.raises(ValidationError) as exc:
            load_record(path)
        assert exc.value.source == path

    def test_missing_file_is_oserror(self, tmp_path):
        with pytest.raises(OSError):
            load_record(tmp_path / "CHAIN-001-a.json")
