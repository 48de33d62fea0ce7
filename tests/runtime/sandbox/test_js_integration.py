"""End-to-end tests for JavaScriptExecutor against a real Node.js harness."""

from __future__ import annotations

import asyncio
import shutil
from typing import TYPE_CHECKING

import pytest

from livecode.runtime.models import ErrorEvent, LogEvent, RunEvent
from livecode.runtime.sandbox.js_executor import JavaScriptExecutor

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

pytestmark = pytest.mark.skipif(shutil.which("node") is None, reason="node is not installed")


@pytest.fixture
async def executor() -> AsyncIterator[JavaScriptExecutor]:
    ex = JavaScriptExecutor()
    yield ex
    ex.dispose()


async def _run(ex: JavaScriptExecutor, code: str, **kwargs: int) -> list[RunEvent]:
    events: list[RunEvent] = []
    finished = asyncio.Event()

    def collect(event: RunEvent) -> None:
        events.append(event)
        if event.is_terminal:
            finished.set()

    ex.run(code, on_event=collect, **kwargs)
    await asyncio.wait_for(finished.wait(), timeout=10)
    return events


def _logs(events: list[RunEvent]) -> list[str]:
    return [e.text for e in events if isinstance(e, LogEvent)]


class TestJavaScriptHarness:
    async def test_console_log(self, executor: JavaScriptExecutor) -> None:
        events = await _run(executor, "console.log(1 + 1)")
        assert [e.type for e in events] == ["init", "start", "log", "done"]
        assert _logs(events) == ["2"]

    async def test_serializes_arguments(self, executor: JavaScriptExecutor) -> None:
        events = await _run(executor, "console.warn('a', 1, {b: [2]}, undefined)")
        log = next(e for e in events if isinstance(e, LogEvent))
        assert log.text == 'a 1 {"b":[2]} undefined'
        assert log.level == "warn"

    async def test_throw_is_error(self, executor: JavaScriptExecutor) -> None:
        events = await _run(executor, "throw new Error('boom')")
        assert events[-1].type == "error"
        assert isinstance(events[-1], ErrorEvent)
        assert "boom" in events[-1].message
        assert "done" not in [e.type for e in events]

    async def test_no_host_capabilities(self, executor: JavaScriptExecutor) -> None:
        events = await _run(
            executor,
            "console.log(typeof process, typeof require, typeof globalThis.process)",
        )
        assert _logs(events) == ["undefined undefined undefined"]

    async def test_constructor_chains_stay_in_context(self, executor: JavaScriptExecutor) -> None:
        code = """
        const viaFn = (f) => f.constructor('return typeof process')();
        const viaObj = (o) => o.constructor.constructor('return typeof process')();
        console.log(
          viaFn(console.log), viaFn(console.warn), viaFn(setTimeout), viaFn(setInterval),
          viaFn(clearTimeout), viaFn(queueMicrotask), viaObj(console), viaObj(this), viaObj(globalThis),
        );
        """
        events = await _run(executor, code)
        assert events[-1].type == "done"
        assert _logs(events) == [" ".join(["undefined"] * 9)]

    async def test_timer_handles_are_plain_numbers(self, executor: JavaScriptExecutor) -> None:
        events = await _run(executor, "const t = setTimeout(() => {}, 10); clearTimeout(t); console.log(typeof t)")
        assert _logs(events) == ["number"]

    async def test_harness_process_is_not_reachable(self, executor: JavaScriptExecutor) -> None:
        code = """
        let reached = 'blocked';
        try {
          const p = console.log.constructor('return process')();
          reached = typeof p.pid + ' ' + p.argv.join(' ');
        } catch (err) {
          reached = err.name;
        }
        console.log(reached);
        """
        events = await _run(executor, code)
        assert _logs(events) == ["ReferenceError"]

    async def test_infinite_loop_times_out(self, executor: JavaScriptExecutor) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        events = await _run(executor, "while (true) {}", timeout_ms=300)
        elapsed = loop.time() - started

        assert events[-1].type == "timeout"
        assert elapsed < 3
        assert not executor.session_alive

    async def test_runs_do_not_share_globals(self, executor: JavaScriptExecutor) -> None:
        await _run(executor, "globalThis.leak = 1; var alsoLeak = 2")
        events = await _run(executor, "console.log(typeof leak, typeof alsoLeak)")
        assert _logs(events) == ["undefined undefined"]
        assert executor.session_alive

    async def test_runs_after_timeout_get_fresh_session(self, executor: JavaScriptExecutor) -> None:
        await _run(executor, "while (true) {}", timeout_ms=200)
        events = await _run(executor, "console.log('again')")
        assert _logs(events) == ["again"]

    async def test_late_async_error_is_dropped(self, executor: JavaScriptExecutor) -> None:
        events = await _run(executor, "setTimeout(() => { throw new Error('late') }, 0)")
        await asyncio.sleep(0.2)
        assert events[-1].type == "done"
        assert [e.type for e in events].count("error") == 0

    async def test_budget(self, executor: JavaScriptExecutor) -> None:
        events = await _run(executor, "for (let i = 0; i < 100; i++) console.log('xxxxxxxxxx')", max_log_bytes=35)
        logs = [e for e in events if isinstance(e, LogEvent)]
        assert len(logs) == 4
        assert logs[-1].truncated
        assert events[-1].type == "done"
