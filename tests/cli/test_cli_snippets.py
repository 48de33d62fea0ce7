"""Tests for ``livecode snippets`` CLI commands."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any
from unittest.mock import patch

import httpx
import pytest
from click.testing import CliRunner

from livecode.cli import main
from livecode.snippets import client as client_module
from livecode.snippets.server import create_app
from livecode.snippets.store import SnippetStore

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> SnippetStore:
    """Route every SnippetClient the CLI creates to an in-process app."""
    snippet_store = SnippetStore(tmp_path / "snippets.json")
    app = create_app(snippet_store)
    real_client = client_module.SnippetClient

    def in_process_client(base_url: str = client_module.DEFAULT_BASE_URL, **_: Any) -> Any:
        return real_client(base_url, transport=httpx.ASGITransport(app=app))

    monkeypatch.setattr(client_module, "SnippetClient", in_process_client)
    return snippet_store


class TestSnippetsCommands:
    def test_save_prints_id(self, tmp_path: Path, store: SnippetStore) -> None:
        f = tmp_path / "lesson.js"
        f.write_text("console.log('saved')")

        result = CliRunner().invoke(main, ["snippets", "save", str(f)])

        assert result.exit_code == 0, result.output
        snippet = store.get(result.output.strip())
        assert snippet.code == "console.log('saved')"
        assert snippet.language == "javascript"
        assert snippet.meta == {"filename": "lesson.js"}

    def test_load_prints_code(self, store: SnippetStore) -> None:
        snippet = store.create("print('loaded')\n")

        result = CliRunner().invoke(main, ["snippets", "load", snippet.id])

        assert result.exit_code == 0, result.output
        assert result.output == "print('loaded')\n"

    def test_load_json(self, store: SnippetStore) -> None:
        snippet = store.create("x = 1", meta={"k": "v"})

        result = CliRunner().invoke(main, ["snippets", "load", snippet.id, "--json"])

        assert result.exit_code == 0, result.output
        body = json.loads(result.output)
        assert body["id"] == snippet.id
        assert body["meta"] == {"k": "v"}

    def test_load_missing(self, store: SnippetStore) -> None:
        result = CliRunner().invoke(main, ["snippets", "load", "nope"])

        assert result.exit_code == 1
        assert "Snippet not found: nope" in result.output

    def test_list(self, store: SnippetStore) -> None:
        snippet = store.create("print('listed')")

        result = CliRunner().invoke(main, ["snippets", "list"])

        assert result.exit_code == 0, result.output
        assert snippet.id in result.output

    def test_list_empty(self, store: SnippetStore) -> None:
        result = CliRunner().invoke(main, ["snippets", "list"])
        assert "No snippets stored" in result.output

    def test_serve(self, tmp_path: Path) -> None:
        data = tmp_path / "served.json"

        with patch("uvicorn.run") as run:
            result = CliRunner().invoke(main, ["snippets", "serve", "--port", "4123", "--data", str(data)])

        assert result.exit_code == 0, result.output
        app = run.call_args.args[0]
        assert app.state.store.path == data
        assert run.call_args.kwargs == {"host": "127.0.0.1", "port": 4123}
