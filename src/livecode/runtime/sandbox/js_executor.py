"""JavaScriptExecutor — runs untrusted JavaScript in a Node.js sandbox process.

One executor owns at most one harness process (its *session*), created on
first use and reused by later runs until a run is stopped or times out.
Each run is evaluated in a fresh ``vm`` context whose globals are built
inside that context (see :mod:`~livecode.runtime.sandbox.js_harness`), and
by default the process itself runs under Node's permission model with no
grants and a minimal environment.  The session token is handed over on
stdin, never on the command line.  The host never trusts the harness to
stop on its own: the watchdog and :func:`stop` kill the process outright.
"""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
from collections.abc import Callable
from typing import Any

from livecode.runtime.budget import TRUNCATION_NOTICE, OutputBudget
from livecode.runtime.channel import SubprocessChannel
from livecode.runtime.config import RunnerConfig
from livecode.runtime.errors import SandboxError, SandboxUnavailableError
from livecode.runtime.models import (
    Language,
    RunEvent,
    make_event,
    make_run_id,
    make_session_token,
)
from livecode.runtime.sandbox.js_harness import HARNESS_SOURCE

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"v?(\d+)\.(\d+)")
_PERMISSION_FLAGS: dict[str, list[str]] = {}

EventCallback = Callable[[RunEvent], None]
StopFn = Callable[[], None]


class _JsRun:
    """Mutable bookkeeping for one ``run()`` call."""

    __slots__ = ("run_id", "on_event", "budget", "timer", "launch", "finished")

    def __init__(self, run_id: str, on_event: EventCallback, max_log_bytes: int) -> None:
        self.run_id = run_id
        self.on_event = on_event
        self.budget = OutputBudget(max_log_bytes)
        self.timer: asyncio.TimerHandle | None = None
        self.launch: asyncio.Task[None] | None = None
        self.finished = False


class JavaScriptExecutor:
    """Sandboxed JavaScript executor backed by a Node.js harness process."""

    language = Language.JAVASCRIPT

    def __init__(self, config: RunnerConfig | None = None) -> None:
        self._config = config or RunnerConfig()
        node = shutil.which(self._config.node_command)
        if node is None:
            raise SandboxUnavailableError(self._config.node_command, self.language.value)
        self._node = node
        self._channel: SubprocessChannel | None = None
        self._token: str | None = None
        self._active: _JsRun | None = None

    @property
    def session_alive(self) -> bool:
        return self._channel is not None and not self._channel.closed

    def run(
        self,
        code: str,
        *,
        timeout_ms: int | None = None,
        max_log_bytes: int | None = None,
        on_event: EventCallback | None = None,
    ) -> StopFn:
        """Start executing *code*; events are delivered to *on_event*.

        Must be called from a running event loop.  Returns a ``stop``
        function that is idempotent and a no-op after the run finished.
        """
        loop = asyncio.get_running_loop()
        timeout_ms = timeout_ms or self._config.default_timeout_ms
        max_log_bytes = max_log_bytes or self._config.default_max_log_bytes

        if self._active is not None and not self._active.finished:
            logger.debug("New run while %s is active; stopping it", self._active.run_id)
            self._stop(self._active)

        run = _JsRun(make_run_id("js"), on_event or _ignore, max_log_bytes)
        self._active = run
        self._emit(run, "init")

        run.timer = loop.call_later(timeout_ms / 1000, self._on_timeout, run, timeout_ms)
        run.launch = loop.create_task(self._launch(run, code))
        return lambda: self._stop(run)

    def dispose(self) -> None:
        """Stop any active run and destroy the session."""
        if self._active is not None:
            self._stop(self._active)
        self._teardown()

    # -- session ------------------------------------------------------------

    async def _launch(self, run: _JsRun, code: str) -> None:
        try:
            channel = await self._ensure_session()
            await channel.post({"type": "execute", "token": self._token, "run_id": run.run_id, "code": code})
        except SandboxError as exc:
            if not run.finished:
                self._finish(run)
                self._emit(run, "error", message=str(exc))

    async def _ensure_session(self) -> SubprocessChannel:
        if self._channel is not None and not self._channel.closed:
            return self._channel
        token = make_session_token()
        flags = await permission_flags(self._node) if self._config.node_permission else []
        argv = [self._node, *flags, *self._config.node_args, "-e", HARNESS_SOURCE]
        channel = SubprocessChannel(
            argv,
            self._on_message,
            env=self._config.child_env(),
            on_eof=self._on_session_exit,
        )
        self._channel, self._token = channel, token
        try:
            await channel.start()
            await channel.post({"type": "init", "token": token})
        except SandboxError:
            self._teardown()
            raise
        logger.debug("JavaScript session started pid=%s", channel.pid)
        return channel

    def _teardown(self) -> None:
        channel, self._channel = self._channel, None
        self._token = None
        if channel is not None:
            channel.close()

    # -- messages -----------------------------------------------------------

    def _on_message(self, msg: dict[str, Any]) -> None:
        if self._token is None or msg.get("token") != self._token:
            return
        run = self._active
        if run is None or run.finished or msg.get("run_id") != run.run_id:
            if msg.get("type") == "late_error":
                logger.debug("Dropping late error from %s: %s", msg.get("run_id"), msg.get("message"))
            return

        kind = msg.get("type")
        if kind == "start":
            self._emit(run, "start")
        elif kind == "log":
            self._on_log(run, msg)
        elif kind == "done":
            self._finish(run)
            self._emit(run, "done")
        elif kind == "error":
            self._finish(run)
            self._emit(run, "error", message=str(msg.get("message") or "Error"), stack=msg.get("stack"))

    def _on_log(self, run: _JsRun, msg: dict[str, Any]) -> None:
        args = msg.get("args") or []
        text = " ".join(str(a) for a in args)
        level = str(msg.get("level") or "log")
        if run.budget.admit(text):
            self._emit(run, "log", level=level, text=text)
        elif run.budget.mark_truncated():
            self._emit(run, "log", level="warn", text=TRUNCATION_NOTICE, truncated=True)

    def _on_session_exit(self) -> None:
        run = self._active
        self._teardown()
        if run is not None and not run.finished:
            self._finish(run)
            self._emit(run, "error", message="JavaScript sandbox exited unexpectedly")

    # -- lifecycle ----------------------------------------------------------

    def _on_timeout(self, run: _JsRun, timeout_ms: int) -> None:
        if run.finished:
            return
        self._finish(run)
        self._teardown()
        self._emit(run, "timeout", message=f"Execution timed out after {timeout_ms}ms")

    def _stop(self, run: _JsRun) -> None:
        if run.finished:
            return
        self._finish(run)
        self._teardown()

    def _finish(self, run: _JsRun) -> None:
        run.finished = True
        if run.timer is not None:
            run.timer.cancel()
        if run.launch is not None and not run.launch.done() and run.launch is not _current_task():
            run.launch.cancel()
        if self._active is run:
            self._active = None

    def _emit(self, run: _JsRun, type_: str, **fields: object) -> None:
        event = make_event(type_, run.run_id, self.language.value, **fields)
        try:
            run.on_event(event)
        except Exception:
            logger.exception("JavaScript event callback failed for %s", run.run_id)


async def permission_flags(node: str) -> list[str]:
    """Flags that put *node* under its permission model with no grants.

    The flag was renamed in Node 22.13 / 23.5; the answer of
    ``node --version`` is cached per executable.
    """
    if node not in _PERMISSION_FLAGS:
        _PERMISSION_FLAGS[node] = permission_flags_for(await _node_version(node))
    return list(_PERMISSION_FLAGS[node])


def permission_flags_for(version: tuple[int, int] | None) -> list[str]:
    if version is None or version < (20, 0):
        logger.warning(
            "Node.js %s has no permission model; JavaScript runs rely on vm contexts alone",
            "version unknown" if version is None else "%d.%d" % version,
        )
        return []
    if version >= (23, 5) or (22, 13) <= version < (23, 0):
        return ["--permission"]
    return ["--experimental-permission"]


async def _node_version(node: str) -> tuple[int, int] | None:
    try:
        proc = await asyncio.create_subprocess_exec(
            node,
            "--version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as exc:
        logger.debug("Cannot run %s --version: %s", node, exc)
        return None
    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=10)
    except asyncio.TimeoutError:
        proc.kill()
        logger.debug("%s --version did not answer", node)
        return None
    return parse_node_version(stdout.decode(errors="replace"))


def parse_node_version(text: str) -> tuple[int, int] | None:
    """``'v22.13.1'`` -> ``(22, 13)``."""
    match = _VERSION_RE.match(text.strip())
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


def _current_task() -> asyncio.Task[Any] | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


def _ignore(_: RunEvent) -> None:
    return None
