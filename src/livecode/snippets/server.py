"""HTTP API for the snippet store, built on FastAPI.

Endpoints::

    GET  /api/health
    GET  /api/snippets          newest first, at most 100
    POST /api/snippets          {code, language, meta} -> {id}
    GET  /api/snippets/{id}     404 if absent
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from livecode.snippets.errors import InvalidSnippetError, SnippetError, SnippetNotFoundError
from livecode.snippets.models import SnippetCreate, SnippetCreated
from livecode.snippets.store import SnippetStore

logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = os.environ.get("LIVECODE_SNIPPETS_FILE", "./data/snippets.json")


def create_app(store: SnippetStore | None = None) -> FastAPI:
    """Build the snippet API around *store* (a file store under ./data by default)."""
    snippets = store or SnippetStore(Path(DEFAULT_DATA_FILE))
    app = FastAPI(title="livecode snippets")
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.state.store = snippets

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(_: Request, exc: RequestValidationError) -> JSONResponse:
        logger.debug("Rejected snippet request: %s", exc.errors())
        return JSONResponse(status_code=400, content={"error": "Invalid request"})

    @app.exception_handler(SnippetError)
    async def _storage_failure(_: Request, exc: SnippetError) -> JSONResponse:
        logger.error("Snippet storage failure: %s", exc)
        return JSONResponse(status_code=500, content={"error": "Snippet storage unavailable"})

    @app.get("/api/health")
    def health() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/api/snippets")
    def list_snippets() -> list[dict[str, object]]:
        return [s.model_dump(by_alias=True) for s in snippets.list()]

    @app.post("/api/snippets", response_model=None)
    def create_snippet(body: SnippetCreate) -> SnippetCreated | JSONResponse:
        try:
            snippet = snippets.create(body.code, body.language, body.meta)
        except InvalidSnippetError as exc:
            return JSONResponse(status_code=400, content={"error": str(exc)})
        return SnippetCreated(id=snippet.id)

    @app.get("/api/snippets/{snippet_id}", response_model=None)
    def get_snippet(snippet_id: str) -> dict[str, object] | JSONResponse:
        try:
            return snippets.get(snippet_id).model_dump(by_alias=True)
        except SnippetNotFoundError:
            return JSONResponse(status_code=404, content={"error": "Not found"})

    return app
