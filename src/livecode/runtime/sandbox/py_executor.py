"""PythonExecutor — hosts a Python interpreter in a separate worker process.

The worker (:mod:`livecode.runtime.sandbox.py_worker`) is started lazily on
first use.  Results never come back through :meth:`PythonExecutor.run`;
they stream through :meth:`PythonExecutor.on_message` listeners.

The worker is an ordinary host process: it starts with a minimal
environment (see :meth:`~livecode.runtime.config.RunnerConfig.child_env`)
but has the same filesystem and network access as the user running
livecode.  Construction warns about this every time.

The worker has no cooperative interrupt once evaluation begins, so the
only way to cancel a run is :meth:`PythonExecutor.dispose`, which kills
the worker and its interpreter state.  A disposed executor cannot be
reused; construct a new one (and pay interpreter startup again).
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import warnings
from collections.abc import Callable
from pathlib import Path
from typing import Any

from livecode.runtime.channel import SubprocessChannel
from livecode.runtime.config import RunnerConfig
from livecode.runtime.errors import ExecutorDisposedError, SandboxUnavailableError
from livecode.runtime.models import Language, make_run_id, make_session_token

logger = logging.getLogger(__name__)

WORKER_SCRIPT = Path(__file__).with_name("py_worker.py")

MessageListener = Callable[[dict[str, Any]], None]

_WARNING_MSG = (
    "PythonExecutor runs code in a host process with NO OS-level isolation: "
    "snippets can read files and open network connections."
)


class PythonExecutor:
    """Session-scoped wrapper around one Python worker process."""

    language = Language.PYTHON

    def __init__(self, config: RunnerConfig | None = None, *, index_url: str | None = None) -> None:
        self._config = config or RunnerConfig()
        python = shutil.which(self._config.python_command)
        if python is None:
            raise SandboxUnavailableError(self._config.python_command, self.language.value)
        self._python = python
        warnings.warn(_WARNING_MSG, stacklevel=2)
        logger.warning(_WARNING_MSG)
        self.index_url = index_url
        # Write-once: every message in either direction must carry it.
        self.token = make_session_token()
        self.ready = False
        self._channel: SubprocessChannel | None = None
        self._starting: asyncio.Task[SubprocessChannel] | None = None
        self._listeners: list[MessageListener] = []
        self._waiters: set[asyncio.Future[None]] = set()
        self._last_run_id: str | None = None
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def current_run_id(self) -> str | None:
        """Id of the most recently submitted run; set before its code is posted."""
        return self._last_run_id

    def on_message(self, callback: MessageListener) -> Callable[[], None]:
        """Subscribe to worker messages; returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def run(self, code: str) -> str:
        """Submit *code* and return its run id without waiting for it to finish.

        Raises:
            ExecutorDisposedError: If called after :meth:`dispose`.
            ChannelError: If the worker cannot be started or reached.
        """
        channel = await self._ensure_worker()
        if not self.ready:
            await self._wait_ready()
        if self._disposed:
            raise ExecutorDisposedError
        run_id = make_run_id("py")
        self._last_run_id = run_id
        await channel.post({"type": "run", "token": self.token, "run_id": run_id, "code": code})
        logger.debug("Submitted %s to worker pid=%s", run_id, channel.pid)
        return run_id

    def dispose(self) -> None:
        """Kill the worker.  Idempotent; pending ``run()`` calls fail."""
        if self._disposed:
            return
        self._disposed = True
        self.ready = False
        if self._starting is not None and not self._starting.done():
            self._starting.cancel()
        channel, self._channel = self._channel, None
        if channel is not None:
            channel.close()
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_exception(ExecutorDisposedError())
        self._waiters.clear()
        self._listeners.clear()

    # -- internals ----------------------------------------------------------

    async def _ensure_worker(self) -> SubprocessChannel:
        if self._disposed:
            raise ExecutorDisposedError
        if self._channel is not None:
            return self._channel
        if self._starting is None:
            self._starting = asyncio.ensure_future(self._start_worker())
        starting = self._starting
        try:
            return await asyncio.shield(starting)
        except asyncio.CancelledError:
            # dispose() cancelled the shared start, not this caller.
            if self._disposed and starting.cancelled():
                raise ExecutorDisposedError from None
            raise

    async def _start_worker(self) -> SubprocessChannel:
        argv = [self._python, *self._config.python_args, str(WORKER_SCRIPT)]
        channel = SubprocessChannel(
            argv,
            self._dispatch,
            env=self._config.child_env(),
            on_eof=self._on_worker_exit,
        )
        await channel.start()
        if self._disposed:
            channel.close()
            raise ExecutorDisposedError
        self._channel = channel
        init: dict[str, Any] = {"type": "init", "token": self.token}
        if self.index_url:
            init["index_url"] = self.index_url
        await channel.post(init)
        logger.debug("Python worker started pid=%s", channel.pid)
        return channel

    async def _wait_ready(self) -> None:
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.add(waiter)

        def on_ready(msg: dict[str, Any]) -> None:
            if msg.get("type") == "ready":
                off()
                if not waiter.done():
                    waiter.set_result(None)

        off = self.on_message(on_ready)
        try:
            await waiter
        finally:
            off()
            self._waiters.discard(waiter)

    def _dispatch(self, msg: dict[str, Any]) -> None:
        if msg.get("token") != self.token:
            return
        if msg.get("type") == "ready":
            self.ready = True
        for listener in list(self._listeners):
            try:
                listener(msg)
            except Exception:
                logger.exception("Python executor listener failed")

    def _on_worker_exit(self) -> None:
        if self._disposed:
            return
        logger.warning("Python worker exited unexpectedly")
        self._dispatch({
            "type": "error",
            "token": self.token,
            "run_id": self._last_run_id,
            "message": "Python worker exited unexpectedly",
        })
        self.dispose()
