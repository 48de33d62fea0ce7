"""Data models for the execution runtime.

A :class:`RunRequest` describes one execution attempt; the runner answers
it with a stream of :data:`RunEvent` values, all scoped by the same
``run_id``.
"""

from __future__ import annotations

import secrets
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from livecode.runtime.errors import UnsupportedLanguageError

DEFAULT_TIMEOUT_MS = 5000
DEFAULT_MAX_LOG_BYTES = 64 * 1024


class Language(str, Enum):
    """Languages with a registered executor."""

    JAVASCRIPT = "javascript"
    PYTHON = "python"

    @classmethod
    def resolve(cls, tag: str) -> Language:
        """Map a user-facing language tag (``js``, ``ts``, ``py``, ...) to a member.

        Raises:
            UnsupportedLanguageError: If *tag* names no known language.
        """
        language = _ALIASES.get(str(tag).strip().lower())
        if language is None:
            raise UnsupportedLanguageError(tag)
        return language


_ALIASES: dict[str, Language] = {
    "javascript": Language.JAVASCRIPT,
    "js": Language.JAVASCRIPT,
    # TypeScript is assumed to be transpiled already; no type stripping here.
    "typescript": Language.JAVASCRIPT,
    "ts": Language.JAVASCRIPT,
    "python": Language.PYTHON,
    "py": Language.PYTHON,
}


class RunRequest(BaseModel):
    """An immutable request to execute *code* in *language*."""

    model_config = ConfigDict(frozen=True)

    language: str = Field(default="javascript", description="Language tag, e.g. 'js' or 'python'.")
    code: str = Field(default="", description="Source text to execute.")
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0, description="Host-enforced deadline.")
    max_log_bytes: int = Field(
        default=DEFAULT_MAX_LOG_BYTES, gt=0, description="Cap on cumulative captured output."
    )
    index_url: str | None = Field(
        default=None, description="Python only: extra module location for the worker."
    )


# ---------------------------------------------------------------------------
# Run events
# ---------------------------------------------------------------------------


class _BaseEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    run_id: str
    language: str

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES  # type: ignore[attr-defined]


class InitEvent(_BaseEvent):
    """Run accepted; nothing executes yet."""

    type: Literal["init"] = "init"


class StartEvent(_BaseEvent):
    """Isolation context ready; code about to run."""

    type: Literal["start"] = "start"


class StdoutEvent(_BaseEvent):
    type: Literal["stdout"] = "stdout"
    text: str
    level: str | None = None


class StderrEvent(_BaseEvent):
    type: Literal["stderr"] = "stderr"
    text: str
    level: str | None = None


class LogEvent(_BaseEvent):
    """A raw console call (JavaScript) or a runtime notice."""

    type: Literal["log"] = "log"
    level: str = "log"
    text: str
    truncated: bool = False


class ResultEvent(_BaseEvent):
    """Value of the final expression (Python)."""

    type: Literal["result"] = "result"
    value: str


class ErrorEvent(_BaseEvent):
    type: Literal["error"] = "error"
    message: str
    stack: str | None = None


class TimeoutEvent(_BaseEvent):
    type: Literal["timeout"] = "timeout"
    message: str


class DoneEvent(_BaseEvent):
    type: Literal["done"] = "done"


RunEvent = Annotated[
    Union[
        InitEvent,
        StartEvent,
        StdoutEvent,
        StderrEvent,
        LogEvent,
        ResultEvent,
        ErrorEvent,
        TimeoutEvent,
        DoneEvent,
    ],
    Field(discriminator="type"),
]

RUN_EVENT_ADAPTER: TypeAdapter[RunEvent] = TypeAdapter(RunEvent)

TERMINAL_EVENT_TYPES = frozenset({"done", "error", "timeout"})


def make_event(type_: str, run_id: str, language: str, **fields: object) -> RunEvent:
    """Build the :data:`RunEvent` variant named by *type_*."""
    return RUN_EVENT_ADAPTER.validate_python(
        {"type": type_, "run_id": run_id, "language": language, **fields}
    )


def make_run_id(language: str) -> str:
    """Return a fresh run id; never reused within a process."""
    return f"{language}_{secrets.token_hex(6)}"


def make_session_token() -> str:
    """Return an unguessable token authorizing one isolation context."""
    return secrets.token_urlsafe(24)
