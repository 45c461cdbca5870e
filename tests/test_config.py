"""Tests for taskchain.lib.config and taskchain.lib.envparse modules."""

import pytest
from pathlib import Path
from unittest.mock import patch

from taskchain.lib import envparse
from taskchain.lib.config import KNOWN_KEYS, TaskConfig, load_task_config
from taskchain.lib.constants import DEFAULT_TASKS_PATH


class TestLoadTaskConfig:
    """Test load_task_config."""

    def test_defaults_without_file(self, tmp_path):
        config = load_task_config(tmp_path)
        assert config == TaskConfig()
        assert config.tasks_path == DEFAULT_TASKS_PATH
        assert config.task_ext == ".md"
        assert config.record_ext == ".json"

    def test_reads_file(self, tmp_path):
        (tmp_path / "taskchain.env").write_text(
            "# storage\nTASKS_PATH=work/tasks\nTASK_EXT=markdown\nRECORD_EXT='.json'\n"
        )
        config = load_task_config(tmp_path)
        assert config.tasks_path == "work/tasks"
        assert config.task_ext == ".markdown"
        assert config.record_ext == ".json"

    @patch("taskchain.lib.config.envparse.load_env")
    def test_unknown_key_warns(self, mock_load_env, tmp_path, caplog):
        (tmp_path / "taskchain.env").write_text("")
        mock_load_env.return_value = {"TASK_PATH": "typo"}

        config = load_task_config(tmp_path)

        assert config.tasks_path == DEFAULT_TASKS_PATH
        assert "Unknown key 'TASK_PATH'" in caplog.text

    @patch("taskchain.lib.config.envparse.load_env")
    def test_absolute_tasks_path_rejected(self, mock_load_env, tmp_path):
        (tmp_path / "taskchain.env").write_text("")
        mock_load_env.return_value = {"TASKS_PATH": "/var/tasks"}
        with pytest.raises(ValueError, match="relative"):
            load_task_config(tmp_path)

    @patch("taskchain.lib.config.envparse.load_env")
    def test_empty_extension_rejected(self, mock_load_env, tmp_path):
        (tmp_path / "taskchain.env").write_text("")
        mock_load_env.return_value = {"TASK_EXT": "  "}
        with pytest.raises(ValueError):
            load_task_config(tmp_path)

    def test_known_keys(self):
        assert set(KNOWN_KEYS) == {"TASKS_PATH", "TASK_EXT", "RECORD_EXT"}


class TestParseEnvText:
    """Test envparse.parse_env_text."""

    def test_basic(self):
        text = "A=1\n\n# comment\nexport B = two\nC=\"quoted value\"\nD='single'\n"
        assert envparse.parse_env_text(text) == {
            "A": "1",
            "B": "two",
            "C": "quoted value",
            "D": "single",
        }

    def test_value_may_contain_equals(self):
        assert envparse.parse_env_text("A=b=c") == {"A": "b=c"}

    @pytest.mark.parametrize("value", ["`id`", "$(id)", "${HOME}", "a;b", "a && b", "a | b"])
    def test_forbidden_patterns(self, value):
        with pytest.raises(ValueError, match="Forbidden"):
            envparse.parse_env_text(f"A={value}")

    def test_missing_equals(self):
        with pytest.raises(ValueError, match="<string>:2"):
            envparse.parse_env_text("A=1\nnonsense\n")

    @pytest.mark.parametrize("key", ["lower", "1ABC", "A-B"])
    def test_bad_key(self, key):
        with pytest.raises(ValueError, match="Invalid key"):
            envparse.parse_env_text(f"{key}=1")

    def test_load_env_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            envparse.load_env(Path(tmp_path) / "missing.env")

    def test_load_env_reports_path(self, tmp_path):
        path = tmp_path / "taskchain.env"
        path.write_text("bad line\n")
        with pytest.raises(ValueError, match="taskchain.env:1"):
            envparse.load_env(path)
