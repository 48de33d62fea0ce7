"""Python worker: the child-process side of :class:`~livecode.runtime.sandbox.py_executor.PythonExecutor`.

Runs as a standalone script inside a separate interpreter
(``python -I -u py_worker.py``) and must only import the standard library.

Protocol (newline-delimited JSON on stdin/stdout):

Host -> worker::

    {"type": "init", "token", "index_url"?}
    {"type": "run", "token", "run_id", "code"}

Worker -> host (always echoes the token, and the run id when known)::

    {"type": "ready"}
    {"type": "start", "run_id"}
    {"type": "stdout" | "stderr", "run_id", "text"}
    {"type": "result", "run_id", "value"}
    {"type": "error", "run_id", "message", "stack"}

There is no interrupt: a run that never returns blocks the worker until
the host kills the process.
"""

from __future__ import annotations

import ast
import asyncio
import inspect
import io
import json
import linecache
import sys
import traceback
from typing import Any

SOURCE_NAME = "<exec>"

# Captured before any redirection; user code never writes here directly.
_CHANNEL_OUT = sys.stdout
_CHANNEL_IN = sys.stdin


def post(message: dict[str, Any]) -> None:
    _CHANNEL_OUT.write(json.dumps(message) + "\n")
    _CHANNEL_OUT.flush()


class StreamBridge(io.TextIOBase):
    """File-like object forwarding every write to the host as a message."""

    def __init__(self, kind: str, token: str, run_id: str | None) -> None:
        super().__init__()
        self.kind = kind
        self.token = token
        self.run_id = run_id

    @property
    def encoding(self) -> str:  # type: ignore[override]
        return "utf-8"

    def writable(self) -> bool:
        return True

    def write(self, s: str) -> int:
        text = str(s)
        if text:
            post({"type": self.kind, "token": self.token, "run_id": self.run_id, "text": text})
        return len(text)


def evaluate(code: str, namespace: dict[str, Any]) -> Any:
    """Execute *code*; return the value of a trailing expression, if any.

    Top-level ``await`` is allowed and runs on a private event loop.
    """
    linecache.cache[SOURCE_NAME] = (len(code), None, code.splitlines(True), SOURCE_NAME)
    tree = ast.parse(code, filename=SOURCE_NAME, mode="exec")
    tail: ast.Expression | None = None
    if tree.body and isinstance(tree.body[-1], ast.Expr):
        tail = ast.Expression(tree.body.pop().value)

    flags = ast.PyCF_ALLOW_TOP_LEVEL_AWAIT
    body = compile(tree, SOURCE_NAME, "exec", flags=flags, dont_inherit=True)
    loop: asyncio.AbstractEventLoop | None = None
    try:
        loop = _run(body, namespace, loop)
        if tail is None:
            return None
        expr = compile(tail, SOURCE_NAME, "eval", flags=flags, dont_inherit=True)
        value = eval(expr, namespace)
        if expr.co_flags & inspect.CO_COROUTINE:
            loop = loop or asyncio.new_event_loop()
            value = loop.run_until_complete(value)
        return value
    finally:
        if loop is not None:
            loop.close()


def _run(
    code_obj: Any, namespace: dict[str, Any], loop: asyncio.AbstractEventLoop | None
) -> asyncio.AbstractEventLoop | None:
    outcome = eval(code_obj, namespace)
    if code_obj.co_flags & inspect.CO_COROUTINE:
        loop = loop or asyncio.new_event_loop()
        loop.run_until_complete(outcome)
    return loop


def describe_error(exc: BaseException) -> tuple[str, str]:
    """Return ``(message, stack)``, the stack trimmed to frames of user code."""
    message = traceback.format_exception_only(type(exc), exc)[-1].strip()
    tb = exc.__traceback__
    while tb is not None and tb.tb_frame.f_code.co_filename != SOURCE_NAME:
        tb = tb.tb_next
    stack = "".join(traceback.format_exception(type(exc), exc, tb))
    return message, stack


class Worker:
    """Holds the session token and the interpreter namespace."""

    def __init__(self) -> None:
        self.token: str | None = None
        self.namespace: dict[str, Any] = {"__name__": "__main__", "__builtins__": __builtins__}

    def handle(self, msg: dict[str, Any]) -> None:
        kind = msg.get("type")
        if kind == "init":
            self.init(msg)
        elif kind == "run":
            if self.token is None or msg.get("token") != self.token:
                return
            self.run(msg.get("run_id"), str(msg.get("code") or ""))

    def init(self, msg: dict[str, Any]) -> None:
        token = msg.get("token")
        if not isinstance(token, str) or not token:
            return
        if self.token is not None and token != self.token:
            # The token is write-once for the lifetime of the worker.
            return
        self.token = token
        index_url = msg.get("index_url")
        if isinstance(index_url, str) and index_url and index_url not in sys.path:
            sys.path.insert(0, index_url)
        post({"type": "ready", "token": self.token})

    def run(self, run_id: str | None, code: str) -> None:
        assert self.token is not None
        base = {"token": self.token, "run_id": run_id}
        saved = sys.stdout, sys.stderr
        sys.stdout = StreamBridge("stdout", self.token, run_id)
        sys.stderr = StreamBridge("stderr", self.token, run_id)
        try:
            post({"type": "start", **base})
            try:
                value = evaluate(code, self.namespace)
            except (Exception, SystemExit) as exc:
                message, stack = describe_error(exc)
                post({"type": "error", **base, "message": message, "stack": stack})
                return
            try:
                text = "" if value is None else str(value)
            except Exception as exc:
                message, stack = describe_error(exc)
                post({"type": "error", **base, "message": message, "stack": stack})
                return
            post({"type": "result", **base, "value": text})
        finally:
            sys.stdout, sys.stderr = saved


def main() -> int:
    sys.stdin = io.StringIO("")
    worker = Worker()
    for line in _CHANNEL_IN:
        try:
            msg = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(msg, dict):
            worker.handle(msg)
    return 0


if __name__ == "__main__":
    sys.exit(main())
