"""Tests for PythonExecutor (real worker process on the current interpreter)."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import pytest

from livecode.runtime.config import RunnerConfig
from livecode.runtime.errors import ExecutorDisposedError, SandboxUnavailableError
from livecode.runtime.sandbox.executor import Executor
from livecode.runtime.sandbox.py_executor import PythonExecutor

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path


@pytest.fixture
async def executor() -> AsyncIterator[PythonExecutor]:
    ex = PythonExecutor()
    yield ex
    ex.dispose()


async def _run_to_end(ex: PythonExecutor, code: str, timeout: float = 10.0) -> list[dict[str, Any]]:
    """Submit *code* and collect messages until its result or error."""
    messages: list[dict[str, Any]] = []
    finished = asyncio.Event()
    run_id: str | None = None

    def listener(msg: dict[str, Any]) -> None:
        messages.append(msg)
        if msg.get("type") in {"result", "error"} and (run_id is None or msg.get("run_id") == run_id):
            finished.set()

    off = ex.on_message(listener)
    try:
        run_id = await ex.run(code)
        await asyncio.wait_for(finished.wait(), timeout)
    finally:
        off()
    return [m for m in messages if m.get("run_id") == run_id]


class TestPythonExecutor:
    def test_satisfies_protocol(self, executor: PythonExecutor) -> None:
        assert isinstance(executor, Executor)

    def test_missing_interpreter(self) -> None:
        with pytest.raises(SandboxUnavailableError):
            PythonExecutor(RunnerConfig(python_command="/nonexistent/python3"))

    async def test_print_and_result(self, executor: PythonExecutor) -> None:
        messages = await _run_to_end(executor, "print('x')\n'y'")
        kinds = [m["type"] for m in messages]

        assert kinds[0] == "start"
        assert {"x", "\n"} <= {m["text"] for m in messages if m["type"] == "stdout"}
        assert messages[-1]["type"] == "result"
        assert messages[-1]["value"] == "y"
        assert executor.ready

    async def test_all_messages_carry_token(self, executor: PythonExecutor) -> None:
        messages = await _run_to_end(executor, "print('a')")
        assert all(m["token"] == executor.token for m in messages)

    async def test_state_persists_between_runs(self, executor: PythonExecutor) -> None:
        await _run_to_end(executor, "total = 20")
        messages = await _run_to_end(executor, "total * 2")
        assert messages[-1]["value"] == "40"

    async def test_error_message(self, executor: PythonExecutor) -> None:
        messages = await _run_to_end(executor, "raise RuntimeError('boom')")
        assert messages[-1]["type"] == "error"
        assert "boom" in messages[-1]["message"]

    async def test_concurrent_first_runs_share_one_worker(self, executor: PythonExecutor) -> None:
        first, second = await asyncio.gather(executor.run("1"), executor.run("2"))
        assert first != second

    async def test_index_url_is_importable(self, tmp_path: Path) -> None:
        (tmp_path / "lab_helpers.py").write_text("VALUE = 'from index'\n")
        ex = PythonExecutor(index_url=str(tmp_path))
        try:
            messages = await _run_to_end(ex, "import lab_helpers\nlab_helpers.VALUE")
        finally:
            ex.dispose()
        assert messages[-1]["value"] == "from index"

    async def test_worker_crash_reports_error_and_disposes(self, executor: PythonExecutor) -> None:
        messages = await _run_to_end(executor, "import os\nos._exit(1)")
        assert messages[-1]["type"] == "error"
        assert messages[-1]["message"] == "Python worker exited unexpectedly"
        assert executor.disposed

    async def test_run_after_dispose(self, executor: PythonExecutor) -> None:
        executor.dispose()
        executor.dispose()
        with pytest.raises(ExecutorDisposedError):
            await executor.run("1")

    async def test_dispose_while_starting_fails_pending_run(self, executor: PythonExecutor) -> None:
        pending = asyncio.ensure_future(executor.run("1"))
        await asyncio.sleep(0)
        executor.dispose()
        with pytest.raises(ExecutorDisposedError):
            await pending

    async def test_forged_token_is_not_dispatched(self, executor: PythonExecutor) -> None:
        seen: list[dict[str, Any]] = []
        executor.on_message(seen.append)
        executor._dispatch({"type": "stdout", "token": "forged", "text": "x"})
        executor._dispatch({"type": "stdout", "token": executor.token, "text": "y"})
        assert [m["text"] for m in seen] == ["y"]

    async def test_unsubscribe(self, executor: PythonExecutor) -> None:
        seen: list[dict[str, Any]] = []
        off = executor.on_message(seen.append)
        off()
        off()
        executor._dispatch({"type": "stdout", "token": executor.token, "text": "x"})
        assert seen == []


class TestWorkerExposure:
    def test_warns_that_worker_is_a_host_process(self) -> None:
        with pytest.warns(UserWarning, match="NO OS-level isolation"):
            ex = PythonExecutor()
        ex.dispose()

    async def test_current_run_id_tracks_last_submission(self, executor: PythonExecutor) -> None:
        assert executor.current_run_id is None
        first = await executor.run("1")
        second = await executor.run("2")
        assert first != second
        assert executor.current_run_id == second

    async def test_worker_does_not_inherit_host_env(
        self, executor: PythonExecutor, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("LIVECODE_HOST_SECRET", "s3cret")
        messages = await _run_to_end(executor, "import os\nos.environ.get('LIVECODE_HOST_SECRET')")
        assert messages[-1] == {**messages[-1], "type": "result", "value": ""}

    async def test_inherit_env_opt_in(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LIVECODE_HOST_SECRET", "s3cret")
        ex = PythonExecutor(RunnerConfig(inherit_env=True))
        try:
            messages = await _run_to_end(ex, "import os\nos.environ.get('LIVECODE_HOST_SECRET')")
        finally:
            ex.dispose()
        assert messages[-1]["value"] == "s3cret"
