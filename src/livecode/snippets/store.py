"""SnippetStore — a JSON-file backed key-value store for code snippets."""

from __future__ import annotations

import json
import logging
import os
import secrets
import string
import threading
import time
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from livecode.snippets.errors import InvalidSnippetError, SnippetError, SnippetNotFoundError
from livecode.snippets.models import MAX_CODE_LENGTH, Snippet

logger = logging.getLogger(__name__)

ID_LENGTH = 10
LIST_LIMIT = 100
_ID_ALPHABET = string.ascii_letters + string.digits + "_-"


def new_snippet_id() -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(ID_LENGTH))


class SnippetStore:
    """Persists snippets as one JSON object keyed by id.

    The whole file is rewritten on every save (via a temp file and an
    atomic rename), which is fine for the few hundred snippets a lab
    session produces.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        if not self._path.exists():
            self._write({})

    @property
    def path(self) -> Path:
        return self._path

    def list(self, limit: int = LIST_LIMIT) -> list[Snippet]:
        """Return up to *limit* snippets, newest first."""
        with self._lock:
            snippets = list(self._read().values())
        snippets.sort(key=lambda s: s.created_at, reverse=True)
        return snippets[:limit]

    def get(self, snippet_id: str) -> Snippet:
        with self._lock:
            snippet = self._read().get(snippet_id)
        if snippet is None:
            raise SnippetNotFoundError(snippet_id)
        return snippet

    def create(
        self,
        code: str,
        language: str = "python",
        meta: dict[str, Any] | None = None,
    ) -> Snippet:
        """Store a new snippet and return it with its generated id.

        Raises:
            InvalidSnippetError: If *code* is not a string or is too long.
        """
        if not isinstance(code, str) or len(code) > MAX_CODE_LENGTH:
            raise InvalidSnippetError("Invalid code")
        with self._lock:
            data = self._read()
            snippet_id = new_snippet_id()
            while snippet_id in data:
                snippet_id = new_snippet_id()
            snippet = Snippet(
                id=snippet_id,
                code=code,
                language=language,
                meta=meta or {},
                created_at=int(time.time() * 1000),
            )
            data[snippet_id] = snippet
            self._write(data)
        logger.info("Stored snippet %s (%s, %d chars)", snippet_id, language, len(code))
        return snippet

    def _read(self) -> dict[str, Snippet]:
        try:
            raw: Any = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            raise SnippetError(f"Cannot read {self._path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise SnippetError(f"{self._path} must hold a JSON object")
        snippets: dict[str, Snippet] = {}
        for key, value in raw.items():
            try:
                snippets[key] = Snippet.model_validate(value)
            except ValidationError:
                logger.warning("Skipping malformed snippet %s in %s", key, self._path)
        return snippets

    def _write(self, data: dict[str, Snippet]) -> None:
        payload = {k: v.model_dump(by_alias=True) for k, v in data.items()}
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp, self._path)
