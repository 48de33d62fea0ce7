"""SnippetClient — saves and loads snippets through the HTTP API."""

from __future__ import annotations

from typing import Any

import httpx

from livecode.snippets.errors import SnippetNotFoundError, SnippetServiceError
from livecode.snippets.models import Snippet, SnippetCreated

DEFAULT_BASE_URL = "http://localhost:4000"


class SnippetClient:
    """Async client for the snippet service.

    Usage::

        async with SnippetClient("http://localhost:4000") as client:
            snippet_id = await client.save_snippet("print('hi')")
            snippet = await client.load_snippet(snippet_id)
    """

    def __init__(self, base_url: str = DEFAULT_BASE_URL, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> SnippetClient:
        self._client = httpx.AsyncClient(base_url=self._base_url, transport=self._transport)
        return self

    async def __aexit__(self, *_: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            msg = "SnippetClient must be used as an async context manager"
            raise RuntimeError(msg)
        return self._client

    async def save_snippet(
        self,
        code: str,
        language: str = "python",
        meta: dict[str, Any] | None = None,
    ) -> str:
        """POST a snippet and return its id."""
        payload = {"code": code, "language": language, "meta": meta or {}}
        try:
            response = await self._http().post("/api/snippets", json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise SnippetServiceError(f"Failed to save snippet: {exc}") from exc
        return SnippetCreated.model_validate(response.json()).id

    async def load_snippet(self, snippet_id: str) -> Snippet:
        """GET a snippet by id."""
        try:
            response = await self._http().get(f"/api/snippets/{snippet_id}")
        except httpx.HTTPError as exc:
            raise SnippetServiceError(f"Failed to load snippet: {exc}") from exc
        if response.status_code == 404:
            raise SnippetNotFoundError(snippet_id)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SnippetServiceError(f"Failed to load snippet: {exc}") from exc
        return Snippet.model_validate(response.json())

    async def list_snippets(self) -> list[Snippet]:
        try:
            response = await self._http().get("/api/snippets")
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise SnippetServiceError(f"Failed to list snippets: {exc}") from exc
        return [Snippet.model_validate(item) for item in response.json()]
