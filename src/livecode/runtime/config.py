"""Runner configuration and its YAML loader."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from livecode.runtime.errors import ConfigError
from livecode.runtime.models import DEFAULT_MAX_LOG_BYTES, DEFAULT_TIMEOUT_MS

CONFIG_ENV_VAR = "LIVECODE_CONFIG"
_BASE_ENV_KEYS = ("PATH", "SYSTEMROOT")


class RunnerConfig(BaseModel):
    """How the executors launch their isolation contexts."""

    node_command: str = Field(default="node", description="Node.js executable for JavaScript runs.")
    node_permission: bool = Field(
        default=True,
        description="Run the harness under Node's permission model with no --allow-* grants.",
    )
    node_args: list[str] = Field(
        default_factory=list,
        description="Extra flags placed before the harness, e.g. ['--max-old-space-size=128'].",
    )
    python_command: str = Field(
        default=sys.executable, description="Interpreter used for the Python worker."
    )
    python_args: list[str] = Field(
        default_factory=lambda: ["-I", "-u"],
        description="Interpreter flags; -I ignores user site-packages and PYTHON* variables.",
    )
    default_timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    default_max_log_bytes: int = Field(default=DEFAULT_MAX_LOG_BYTES, gt=0)
    env: dict[str, str] = Field(
        default_factory=dict, description="Extra environment variables for child processes."
    )
    inherit_env: bool = Field(
        default=False, description="Start children with the full host environment instead of PATH only."
    )

    def child_env(self) -> dict[str, str]:
        """Environment for child processes.

        ``PATH`` (and ``SYSTEMROOT`` on Windows) plus :attr:`env`; the whole
        host environment only when :attr:`inherit_env` is set.
        """
        if self.inherit_env:
            return {**os.environ, **self.env}
        base = {key: os.environ[key] for key in _BASE_ENV_KEYS if key in os.environ}
        return {**base, **self.env}


def load_config(path: str | Path) -> RunnerConfig:
    """Read a YAML config file, interpolate env vars, and validate.

    Raises:
        ConfigError: On unreadable files, YAML errors, or schema violations.
    """
    config_path = Path(path)
    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read {config_path}: {exc}") from exc

    try:
        data: Any = yaml.safe_load(os.path.expandvars(raw))
    except yaml.YAMLError as exc:
        raise ConfigError(f"YAML parse error: {exc}") from exc

    if data is None:
        return RunnerConfig()
    if not isinstance(data, dict):
        raise ConfigError("Config YAML must be a mapping")

    try:
        return RunnerConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


def default_config() -> RunnerConfig:
    """Config from ``$LIVECODE_CONFIG`` when set, otherwise built-in defaults."""
    path = os.environ.get(CONFIG_ENV_VAR)
    if path:
        return load_config(path)
    return RunnerConfig()
