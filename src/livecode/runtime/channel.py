"""Message channels between the host and an isolation context.

Each channel satisfies the :class:`Channel` protocol.  Envelopes are plain
JSON mappings; authorization (session tokens, run ids) is the caller's
business, the channel only moves bytes.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

from livecode.runtime.errors import ChannelError

logger = logging.getLogger(__name__)

MessageHandler = Callable[[dict[str, Any]], None]

# Generous line limit: one console call may carry a large serialized value.
_STREAM_LIMIT = 4 * 1024 * 1024


@runtime_checkable
class Channel(Protocol):
    """Bidirectional envelope channel to one isolation context."""

    @property
    def closed(self) -> bool: ...

    async def start(self) -> None: ...
    async def post(self, envelope: Mapping[str, Any]) -> None: ...
    def close(self) -> None: ...


class SubprocessChannel:
    """Talks to a child process via stdin/stdout, newline-delimited JSON.

    Every decoded stdout line is handed to *on_message* on the event loop.
    Lines that are not JSON objects are dropped.  *on_eof* fires if the
    child closes its output before :meth:`close`.  :meth:`close` kills the
    child synchronously, so a runaway child is stopped without waiting for
    it to cooperate.
    """

    def __init__(
        self,
        argv: list[str],
        on_message: MessageHandler,
        *,
        env: dict[str, str] | None = None,
        on_eof: Callable[[], None] | None = None,
    ) -> None:
        self._argv = argv
        self._on_message = on_message
        self._env = env
        self._on_eof = on_eof
        self._process: asyncio.subprocess.Process | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    async def start(self) -> None:
        """Launch the child and begin reading its output."""
        if self._closed:
            msg = "channel already closed"
            raise ChannelError(msg)
        if self._process is not None:
            return
        try:
            process = await asyncio.create_subprocess_exec(
                *self._argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._env,
                limit=_STREAM_LIMIT,
            )
        except OSError as exc:
            raise ChannelError(f"failed to launch {self._argv[0]}: {exc}") from exc

        if self._closed:
            # close() raced with the launch; do not leak the child.
            _kill(process)
            return

        self._process = process
        logger.debug("Channel started pid=%s argv=%s", process.pid, self._argv[0])
        self._tasks = [
            asyncio.create_task(self._read_stdout(process)),
            asyncio.create_task(self._drain_stderr(process)),
        ]

    async def post(self, envelope: Mapping[str, Any]) -> None:
        """Write one envelope as a JSON line to the child's stdin."""
        process = self._process
        if self._closed or process is None or process.stdin is None:
            msg = "Channel not connected"
            raise ChannelError(msg)
        line = json.dumps(dict(envelope)) + "\n"
        try:
            process.stdin.write(line.encode())
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise ChannelError(f"child closed its input: {exc}") from exc

    def close(self) -> None:
        """Kill the child and stop delivering messages.  Idempotent."""
        if self._closed:
            return
        self._closed = True
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        process, self._process = self._process, None
        if process is not None:
            _kill(process)
            try:
                asyncio.get_running_loop().create_task(_reap(process))
            except RuntimeError:
                logger.debug("No running loop; child pid=%s left for the OS to reap", process.pid)

    async def _read_stdout(self, process: asyncio.subprocess.Process) -> None:
        assert process.stdout is not None
        while not self._closed:
            try:
                line = await process.stdout.readline()
            except (ValueError, asyncio.LimitOverrunError):
                logger.warning("Dropping oversized message from pid=%s", process.pid)
                continue
            if not line:
                break
            message = _decode(line)
            if message is None or self._closed:
                continue
            try:
                self._on_message(message)
            except Exception:
                logger.exception("Message handler failed")
        logger.debug("Channel reader finished pid=%s", process.pid)
        if not self._closed and self._on_eof is not None:
            try:
                self._on_eof()
            except Exception:
                logger.exception("EOF handler failed")

    @staticmethod
    async def _drain_stderr(process: asyncio.subprocess.Process) -> None:
        assert process.stderr is not None
        while True:
            line = await process.stderr.readline()
            if not line:
                return
            logger.debug("child[%s] stderr: %s", process.pid, line.decode(errors="replace").rstrip())


def _decode(line: bytes) -> dict[str, Any] | None:
    try:
        data = json.loads(line)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.debug("Dropping non-JSON line: %r", line[:200])
        return None
    if not isinstance(data, dict):
        logger.debug("Dropping non-object message: %r", line[:200])
        return None
    return data


def _kill(process: asyncio.subprocess.Process) -> None:
    if process.stdin is not None:
        process.stdin.close()
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass


async def _reap(process: asyncio.subprocess.Process) -> None:
    await process.wait()
    logger.debug("Child pid=%s exited rc=%s", process.pid, process.returncode)
