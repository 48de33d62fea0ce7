"""Pydantic models for stored code snippets."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

MAX_CODE_LENGTH = 200_000


class Snippet(BaseModel):
    """A saved piece of code, as stored and as served over HTTP."""

    id: str
    code: str
    language: str = "python"
    meta: dict[str, Any] = Field(default_factory=dict)
    created_at: int = Field(..., alias="createdAt", description="Creation time, epoch milliseconds.")

    model_config = {"populate_by_name": True}


class SnippetCreate(BaseModel):
    """Body of ``POST /api/snippets``."""

    code: Any = Field(default="", description="Source text; checked by SnippetStore.create.")
    language: str = "python"
    meta: dict[str, Any] = Field(default_factory=dict)


class SnippetCreated(BaseModel):
    id: str
