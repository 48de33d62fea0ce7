"""Shared CLI output formatters."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from livecode.runtime.errors import UnsupportedLanguageError
from livecode.runtime.models import (
    ErrorEvent,
    Language,
    LogEvent,
    ResultEvent,
    RunEvent,
    StderrEvent,
    StdoutEvent,
    TimeoutEvent,
)
from livecode.snippets.models import Snippet  # noqa: TC001

console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)


def print_event(event: RunEvent, *, as_json: bool = False) -> None:
    """Render one run event; JSON mode prints one object per line."""
    if as_json:
        console.out(event.model_dump_json(exclude_none=True))
        return

    if isinstance(event, StdoutEvent):
        # Python stdout arrives as raw write() chunks, JavaScript as one line per console call.
        console.out(event.text, end="" if _is_python(event.language) else "\n")
    elif isinstance(event, StderrEvent):
        err_console.out(event.text, end="", style="red")
    elif isinstance(event, LogEvent):
        if event.truncated:
            err_console.print(f"[yellow]{escape(event.text)}[/yellow]")
    elif isinstance(event, ResultEvent):
        if event.value:
            console.print(f"[green]=>[/green] {escape(event.value)}")
    elif isinstance(event, ErrorEvent):
        err_console.print(f"[red]Error:[/red] {escape(event.message)}")
        if event.stack:
            err_console.print(escape(event.stack), style="dim")
    elif isinstance(event, TimeoutEvent):
        err_console.print(f"[yellow]Timeout:[/yellow] {escape(event.message)}")


def print_snippets_table(snippets: list[Snippet]) -> None:
    """Pretty-print stored snippets as a table."""
    table = Table(title="Snippets")
    table.add_column("ID", style="cyan")
    table.add_column("Language")
    table.add_column("Created")
    table.add_column("Code")

    for snippet in snippets:
        table.add_row(
            snippet.id,
            snippet.language,
            str(snippet.created_at),
            _truncate(snippet.code.replace("\n", " ")),
        )

    console.print(table)


def _is_python(language: str) -> bool:
    try:
        return Language.resolve(language) is Language.PYTHON
    except UnsupportedLanguageError:
        return False


def _truncate(text: str, max_len: int = 60) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
