"""Tests for RunnerConfig and the YAML loader."""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING

import pytest

from livecode.runtime.config import CONFIG_ENV_VAR, RunnerConfig, default_config, load_config
from livecode.runtime.errors import ConfigError

if TYPE_CHECKING:
    from pathlib import Path


class TestRunnerConfig:
    def test_defaults(self) -> None:
        config = RunnerConfig()
        assert config.node_command == "node"
        assert config.node_permission is True
        assert config.node_args == []
        assert config.python_command == sys.executable
        assert config.python_args == ["-I", "-u"]
        assert config.default_timeout_ms == 5000
        assert config.default_max_log_bytes == 65536
        assert config.inherit_env is False

    def test_child_env_is_minimal(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LIVECODE_HOST_SECRET", "s3cret")
        monkeypatch.setenv("PATH", "/usr/bin")
        assert RunnerConfig().child_env() == {"PATH": "/usr/bin", **_systemroot()}

    def test_child_env_adds_extras(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LIVECODE_HOST_SECRET", "s3cret")
        env = RunnerConfig(env={"LIVECODE_TEST": "1"}).child_env()
        assert env["LIVECODE_TEST"] == "1"
        assert "LIVECODE_HOST_SECRET" not in env

    def test_child_env_inherits_on_request(self) -> None:
        env = RunnerConfig(env={"LIVECODE_TEST": "1"}, inherit_env=True).child_env()
        assert env == {**os.environ, "LIVECODE_TEST": "1"}


def _systemroot() -> dict[str, str]:
    return {"SYSTEMROOT": os.environ["SYSTEMROOT"]} if "SYSTEMROOT" in os.environ else {}


class TestLoadConfig:
    def test_load_valid(self, tmp_path: Path) -> None:
        f = tmp_path / "livecode.yaml"
        f.write_text("node_command: /opt/node/bin/node\ndefault_timeout_ms: 250\n")
        config = load_config(f)
        assert config.node_command == "/opt/node/bin/node"
        assert config.default_timeout_ms == 250

    def test_env_var_interpolation(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LC_NODE", "/custom/node")
        f = tmp_path / "livecode.yaml"
        f.write_text("node_command: ${LC_NODE}\n")
        assert load_config(f).node_command == "/custom/node"

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        f = tmp_path / "empty.yaml"
        f.write_text("")
        assert load_config(f) == RunnerConfig()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Cannot read"):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        f = tmp_path / "bad.yaml"
        f.write_text("node_command: [unclosed\n")
        with pytest.raises(ConfigError, match="YAML parse error"):
            load_config(f)

    def test_non_mapping(self, tmp_path: Path) -> None:
        f = tmp_path / "list.yaml"
        f.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(f)

    def test_schema_violation(self, tmp_path: Path) -> None:
        f = tmp_path / "bad.yaml"
        f.write_text("default_timeout_ms: -5\n")
        with pytest.raises(ConfigError):
            load_config(f)


class TestDefaultConfig:
    def test_without_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        assert default_config() == RunnerConfig()

    def test_with_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        f = tmp_path / "livecode.yaml"
        f.write_text("default_max_log_bytes: 128\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(f))
        assert default_config().default_max_log_bytes == 128
