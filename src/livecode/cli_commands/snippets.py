"""``livecode snippets`` — serve, save and load stored snippets."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from livecode.cli_commands._output import console, err_console, print_snippets_table
from livecode.cli_commands.run import infer_language
from livecode.snippets.client import DEFAULT_BASE_URL

if TYPE_CHECKING:
    from livecode.snippets.models import Snippet

server_option = click.option(
    "--server", "-s", default=DEFAULT_BASE_URL, show_default=True, help="Snippet service URL."
)


@click.group()
def snippets() -> None:
    """Persist snippets through the snippet service."""


@snippets.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=4000, show_default=True, type=int)
@click.option("--data", type=click.Path(dir_okay=False), default=None, help="JSON data file.")
def serve(host: str, port: int, data: str | None) -> None:
    """Run the snippet HTTP API."""
    import uvicorn

    from livecode.snippets.server import DEFAULT_DATA_FILE, create_app
    from livecode.snippets.store import SnippetStore

    store = SnippetStore(Path(data or DEFAULT_DATA_FILE))
    console.print(f"Serving snippets from [cyan]{store.path}[/cyan] on http://{host}:{port}")
    uvicorn.run(create_app(store), host=host, port=port)


@snippets.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--language", "-l", default=None, help="Language tag; inferred from the suffix if omitted.")
@server_option
def save(file: str, language: str | None, server: str) -> None:
    """Upload FILE and print its snippet id."""
    from livecode.snippets.client import SnippetClient
    from livecode.snippets.errors import SnippetError

    source = Path(file)
    code = source.read_text(encoding="utf-8")
    lang = language or infer_language(source) or "python"

    async def _save() -> str:
        async with SnippetClient(server) as client:
            return await client.save_snippet(code, lang, {"filename": source.name})

    try:
        snippet_id = asyncio.run(_save())
    except SnippetError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    console.out(snippet_id)


@snippets.command()
@click.argument("snippet_id")
@click.option("--json", "as_json", is_flag=True, help="Print the full snippet as JSON.")
@server_option
def load(snippet_id: str, as_json: bool, server: str) -> None:
    """Print the code of snippet SNIPPET_ID."""
    from livecode.snippets.client import SnippetClient
    from livecode.snippets.errors import SnippetError

    async def _load() -> Snippet:
        async with SnippetClient(server) as client:
            return await client.load_snippet(snippet_id)

    try:
        snippet = asyncio.run(_load())
    except SnippetError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    if as_json:
        console.out(json.dumps(snippet.model_dump(by_alias=True)))
    else:
        console.out(snippet.code, end="" if snippet.code.endswith("\n") else "\n")


@snippets.command(name="list")
@server_option
def list_(server: str) -> None:
    """Show the most recent snippets."""
    from livecode.snippets.client import SnippetClient
    from livecode.snippets.errors import SnippetError

    async def _list() -> list[Snippet]:
        async with SnippetClient(server) as client:
            return await client.list_snippets()

    try:
        items = asyncio.run(_list())
    except SnippetError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    if not items:
        console.print("No snippets stored.")
        return
    print_snippets_table(items)
