"""Unified runner — one entry point for every supported language.

:func:`run_code` picks the executor registered for the request's language,
translates its executor-specific events into the canonical
:data:`~livecode.runtime.models.RunEvent` stream, applies one output budget
across the whole run, and returns a :class:`RunHandle` for cancellation.

Every ``init`` is followed by exactly one terminal event (``done``,
``error`` or ``timeout``) and nothing after it.  The one exception is an
unsupported language, reported as ``error`` immediately followed by
``done``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Literal, Protocol

from pydantic import BaseModel, Field

from livecode.runtime.budget import TRUNCATION_NOTICE, OutputBudget
from livecode.runtime.config import RunnerConfig
from livecode.runtime.errors import LivecodeError, UnsupportedLanguageError
from livecode.runtime.models import (
    ErrorEvent,
    Language,
    ResultEvent,
    RunEvent,
    RunRequest,
    StderrEvent,
    StdoutEvent,
    make_event,
    make_run_id,
)
from livecode.runtime.sandbox.executor import Executor
from livecode.runtime.sandbox.js_executor import JavaScriptExecutor
from livecode.runtime.sandbox.py_executor import PythonExecutor
from livecode.utils.telemetry import finish_run_span, get_tracer, start_run_span

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

EventCallback = Callable[[RunEvent], None]


class RunHandle:
    """Cancellation handle returned by :func:`run_code`."""

    __slots__ = ("_stop",)

    def __init__(self, stop: Callable[[], None]) -> None:
        self._stop = stop

    def stop(self) -> None:
        """Cancel the run.  Idempotent; a no-op once the run has finished."""
        self._stop()


class _Run:
    """Per-invocation state: emission, budgeting, and cleanup."""

    def __init__(self, request: RunRequest, on_event: EventCallback) -> None:
        self.request = request
        self.language = request.language
        self.run_id = make_run_id(request.language)
        self.budget = OutputBudget(request.max_log_bytes)
        self.finished = False
        self._on_event = on_event
        self._cleanups: list[Callable[[], None]] = []
        self._span = start_run_span(_tracer, request.language, self.run_id)

    def on_cleanup(self, fn: Callable[[], None]) -> None:
        self._cleanups.append(fn)

    def emit(self, type_: str, **fields: Any) -> None:
        if self.finished:
            return
        event = make_event(type_, self.run_id, self.language, **fields)
        if event.is_terminal:
            self.finished = True
        self.deliver(event)
        if event.is_terminal:
            self._close(type_)

    def output(self, type_: Literal["stdout", "stderr"], text: str, level: str | None) -> bool:
        """Emit budgeted output; ``False`` if the budget refused it."""
        if self.finished:
            return False
        if self.budget.admit(text):
            self.emit(type_, text=text, level=level)
            return True
        self.truncate()
        return False

    def truncate(self) -> None:
        if self.budget.mark_truncated():
            self.emit("log", level="warn", text=TRUNCATION_NOTICE, truncated=True)

    def deliver(self, event: RunEvent) -> None:
        try:
            self._on_event(event)
        except Exception:
            logger.exception("Run event callback failed for %s", self.run_id)

    def stop(self) -> None:
        if self.finished:
            return
        logger.debug("Run %s stopped by caller", self.run_id)
        self.emit("done")

    def _close(self, terminal: str) -> None:
        cleanups, self._cleanups = self._cleanups, []
        for fn in reversed(cleanups):
            try:
                fn()
            except Exception:
                logger.exception("Cleanup failed for %s", self.run_id)
        finish_run_span(self._span, terminal, self.budget.used)


# ---------------------------------------------------------------------------
# Language strategies
# ---------------------------------------------------------------------------


class LanguageStrategy(Protocol):
    """Creates an executor for a request and drives one run through it."""

    def create(self, request: RunRequest, config: RunnerConfig) -> Executor: ...
    def launch(self, run: _Run, executor: Any) -> None: ...


class JavaScriptStrategy:
    def create(self, request: RunRequest, config: RunnerConfig) -> JavaScriptExecutor:
        return JavaScriptExecutor(config)

    def launch(self, run: _Run, executor: JavaScriptExecutor) -> None:
        request = run.request

        def forward(event: RunEvent) -> None:
            if event.type == "start":
                run.emit("start")
            elif event.type == "log":
                if event.truncated:
                    run.truncate()
                elif run.output("stdout", event.text, event.level):
                    run.emit("log", level=event.level, text=event.text)
            elif event.type == "error":
                assert isinstance(event, ErrorEvent)
                run.emit("error", message=event.message, stack=event.stack)
            elif event.type == "timeout":
                run.emit("timeout", message=event.message)
            elif event.type == "done":
                run.emit("done")

        run.on_cleanup(executor.dispose)
        stop = executor.run(
            request.code,
            timeout_ms=request.timeout_ms,
            max_log_bytes=request.max_log_bytes,
            on_event=forward,
        )
        run.on_cleanup(stop)


class PythonStrategy:
    def create(self, request: RunRequest, config: RunnerConfig) -> PythonExecutor:
        return PythonExecutor(config, index_url=request.index_url)

    def launch(self, run: _Run, executor: PythonExecutor) -> None:
        request = run.request
        loop = asyncio.get_running_loop()

        def forward(msg: dict[str, Any]) -> None:
            run_id = executor.current_run_id
            if run_id is None or msg.get("run_id") != run_id:
                return
            kind = msg.get("type")
            if kind == "start":
                run.emit("start")
            elif kind == "stdout":
                run.output("stdout", str(msg.get("text", "")), "info")
            elif kind == "stderr":
                run.output("stderr", str(msg.get("text", "")), "warn")
            elif kind == "result":
                run.emit("result", value=str(msg.get("value", "")))
                run.emit("done")
            elif kind == "error":
                run.emit("error", message=str(msg.get("message") or "Error"), stack=msg.get("stack"))

        def on_timeout() -> None:
            # The worker may be stuck in user code; only the host can end it.
            run.emit("timeout", message=f"Execution timed out after {request.timeout_ms}ms")

        async def submit() -> None:
            try:
                await executor.run(request.code)
            except LivecodeError as exc:
                run.emit("error", message=str(exc))

        run.on_cleanup(executor.dispose)
        run.on_cleanup(executor.on_message(forward))
        timer = loop.call_later(request.timeout_ms / 1000, on_timeout)
        run.on_cleanup(timer.cancel)
        task = loop.create_task(submit())
        run.on_cleanup(lambda: _cancel_unless_current(task))


STRATEGIES: dict[Language, LanguageStrategy] = {
    Language.JAVASCRIPT: JavaScriptStrategy(),
    Language.PYTHON: PythonStrategy(),
}


def _cancel_unless_current(task: asyncio.Task[None]) -> None:
    if not task.done() and task is not asyncio.current_task():
        task.cancel()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def run_code(
    request: RunRequest,
    on_event: EventCallback,
    *,
    config: RunnerConfig | None = None,
) -> RunHandle:
    """Execute *request* and stream :data:`RunEvent` values to *on_event*.

    ``init`` is delivered synchronously before this returns.  Must be
    called from a running event loop.

    Raises:
        SandboxUnavailableError: If the host cannot provide an isolation
            context for the language (setup failure, no events emitted).
        RuntimeError: If no event loop is running.
    """
    asyncio.get_running_loop()
    config = config or RunnerConfig()
    run = _Run(request, on_event)

    try:
        language = Language.resolve(request.language)
    except UnsupportedLanguageError as exc:
        logger.info("Rejecting run %s: %s", run.run_id, exc)
        run.emit("init")
        run.deliver(make_event("error", run.run_id, run.language, message=str(exc)))
        run.emit("done")
        return RunHandle(lambda: None)

    strategy = STRATEGIES[language]
    try:
        executor = strategy.create(request, config)
    except LivecodeError:
        run.finished = True
        run._close("unavailable")
        raise

    run.emit("init")
    logger.debug("Run %s dispatched to %s", run.run_id, type(executor).__name__)
    try:
        strategy.launch(run, executor)
    except LivecodeError as exc:
        run.emit("error", message=str(exc))
    return RunHandle(run.stop)


class RunOutcome(BaseModel):
    """Everything a finished run produced, collected in order."""

    run_id: str
    status: Literal["done", "error", "timeout"]
    events: list[RunEvent] = Field(default_factory=list)

    @property
    def stdout(self) -> str:
        return "".join(e.text for e in self.events if isinstance(e, StdoutEvent))

    @property
    def stderr(self) -> str:
        return "".join(e.text for e in self.events if isinstance(e, StderrEvent))

    @property
    def result(self) -> str | None:
        for event in self.events:
            if isinstance(event, ResultEvent):
                return event.value
        return None

    @property
    def error(self) -> ErrorEvent | None:
        for event in self.events:
            if isinstance(event, ErrorEvent):
                return event
        return None


async def run_to_completion(
    request: RunRequest,
    *,
    config: RunnerConfig | None = None,
) -> RunOutcome:
    """Run *request* and wait for its terminal event.

    Cancelling the awaiting task stops the run.
    """
    loop = asyncio.get_running_loop()
    finished: asyncio.Future[str] = loop.create_future()
    events: list[RunEvent] = []

    def collect(event: RunEvent) -> None:
        events.append(event)
        if event.is_terminal and not finished.done():
            finished.set_result(event.type)

    handle = run_code(request, collect, config=config)
    try:
        status = await finished
    finally:
        handle.stop()
    return RunOutcome(run_id=events[0].run_id, status=status, events=events)  # type: ignore[arg-type]
