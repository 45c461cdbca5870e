"""
Schema checks for chain metadata records.

Every record is checked against schemas/<kind>.schema.json before it is
written and after it is read, so a bad record never reaches disk and a
hand-edited one is caught at the boundary. All violations are reported
at once, each with the field it concerns.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

import jsonschema

SCHEMAS_DIR = Path(__file__).parent.parent / "schemas"


class ValidationError(Exception):
    """A chain record does not match its schema."""

    def __init__(self, record_id: str | None, problems: list[str], source: Path | None = None):
        self.record_id = record_id
        self.problems = problems
        self.source = source
        subject = record_id or "record without id"
        where = f" in {source}" if source else ""
        super().__init__(f"Invalid {subject}{where}: {'; '.join(problems)}")


@lru_cache(maxsize=None)
def _validator(kind: str) -> jsonschema.Draft7Validator:
    schema_path = SCHEMAS_DIR / f"{kind}.schema.json"
    return jsonschema.Draft7Validator(json.loads(schema_path.read_text()))


def _record_id(data: Any) -> str | None:
    if isinstance(data, dict) and isinstance(data.get("id"), str):
        return data["id"]
    return None


def check_record(data: dict[str, Any], kind: str = "chain", source: Path | None = None) -> None:
    """
    Check a record against its schema.

    Raises:
        ValidationError: Listing every violation as "<field>: <message>"
    """
    errors = sorted(_validator(kind).iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path])
    if errors:
        problems = [
            f"{'.'.join(str(p) for p in e.absolute_path) or '(root)'}: {e.message}"
            for e in errors
        ]
        raise ValidationError(_record_id(data), problems, source)


def load_record(path: Path, kind: str = "chain") -> dict[str, Any]:
    """
    Read a JSON record and check it.

    A missing file is an OSError for the caller to handle; only content
    problems are reported as ValidationError.
    """
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ValidationError(None, [f"not valid JSON ({e})"], path) from None

    if not isinstance(data, dict):
        raise ValidationError(None, ["expected a JSON object"], path)

    check_record(data, kind, path)
    return data
