"""``livecode run`` — execute a source file in the sandbox."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from livecode.cli_commands._output import err_console, print_event

if TYPE_CHECKING:
    from livecode.runtime.config import RunnerConfig
    from livecode.runtime.models import RunEvent, RunRequest

EXIT_CODES = {"done": 0, "error": 1, "timeout": 124}

_SUFFIX_LANGUAGES = {
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".py": "python",
}


def infer_language(path: Path) -> str | None:
    """Guess the language tag from a file suffix."""
    return _SUFFIX_LANGUAGES.get(path.suffix.lower())


@click.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--language", "-l", default=None, help="Language tag; inferred from the suffix if omitted.")
@click.option("--timeout-ms", type=click.IntRange(min=1), default=None, help="Execution deadline.")
@click.option("--max-log-bytes", type=click.IntRange(min=1), default=None, help="Output byte budget.")
@click.option("--index-url", default=None, help="Extra import location for Python runs (prepended to sys.path).")
@click.option("--json", "as_json", is_flag=True, help="Print events as JSON lines.")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None)
@click.option("--telemetry", is_flag=True, help="Trace runs (OTLP if $OTEL_EXPORTER_OTLP_ENDPOINT is set, else console).")
def run(
    file: str,
    language: str | None,
    timeout_ms: int | None,
    max_log_bytes: int | None,
    index_url: str | None,
    as_json: bool,
    config_path: str | None,
    telemetry: bool,
) -> None:
    """Execute FILE and stream its output."""
    from livecode.runtime.config import default_config, load_config
    from livecode.runtime.errors import LivecodeError
    from livecode.runtime.models import RunRequest

    source = Path(file)
    language = language or infer_language(source)
    if language is None:
        err_console.print(f"[red]Cannot infer language for {source.name}; pass --language.[/red]")
        sys.exit(2)

    try:
        config = load_config(config_path) if config_path else default_config()
    except LivecodeError as exc:
        err_console.print(f"[red]Config error:[/red] {exc}")
        sys.exit(2)

    if telemetry:
        from livecode.utils.telemetry import configure_from_env

        try:
            configure_from_env()
        except ImportError as exc:
            err_console.print(f"[red]Telemetry error:[/red] {exc}")
            sys.exit(2)

    request = RunRequest(
        language=language,
        code=source.read_text(encoding="utf-8"),
        timeout_ms=timeout_ms or config.default_timeout_ms,
        max_log_bytes=max_log_bytes or config.default_max_log_bytes,
        index_url=index_url,
    )

    try:
        status = asyncio.run(_stream(request, config, as_json))
    except LivecodeError as exc:
        err_console.print(f"[red]Sandbox unavailable:[/red] {exc}")
        sys.exit(1)

    sys.exit(EXIT_CODES[status])


async def _stream(request: RunRequest, config: RunnerConfig, as_json: bool) -> str:
    from livecode.runtime.runner import run_code

    finished: asyncio.Future[str] = asyncio.get_running_loop().create_future()

    def on_event(event: RunEvent) -> None:
        print_event(event, as_json=as_json)
        if event.is_terminal and not finished.done():
            finished.set_result(event.type)

    handle = run_code(request, on_event, config=config)
    try:
        return await finished
    finally:
        handle.stop()
