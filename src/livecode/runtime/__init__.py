"""Execution runtime — sandboxed executors and the unified runner."""

from livecode.runtime.errors import (
    ChannelError,
    ConfigError,
    ExecutorDisposedError,
    LivecodeError,
    SandboxError,
    SandboxUnavailableError,
    UnsupportedLanguageError,
)
from livecode.runtime.models import Language, RunEvent, RunRequest
from livecode.runtime.runner import RunHandle, RunOutcome, run_code, run_to_completion

__all__ = [
    "ChannelError",
    "ConfigError",
    "ExecutorDisposedError",
    "Language",
    "LivecodeError",
    "RunEvent",
    "RunHandle",
    "RunOutcome",
    "RunRequest",
    "SandboxError",
    "SandboxUnavailableError",
    "UnsupportedLanguageError",
    "run_code",
    "run_to_completion",
]
