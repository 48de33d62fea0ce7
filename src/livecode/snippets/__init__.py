"""Snippet persistence — a small key-value store behind an HTTP API."""

from livecode.snippets.client import SnippetClient
from livecode.snippets.errors import (
    InvalidSnippetError,
    SnippetError,
    SnippetNotFoundError,
    SnippetServiceError,
)
from livecode.snippets.models import Snippet
from livecode.snippets.store import SnippetStore

__all__ = [
    "InvalidSnippetError",
    "Snippet",
    "SnippetClient",
    "SnippetError",
    "SnippetNotFoundError",
    "SnippetServiceError",
    "SnippetStore",
]
