"""Executor protocol — what every per-language sandbox has in common."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from livecode.runtime.models import Language


@runtime_checkable
class Executor(Protocol):
    """Owns at most one isolation context for its lifetime.

    The run contracts differ per language (JavaScript returns a ``stop``
    function, Python streams through listeners), but every executor names
    its language and can be torn down with ``dispose()``.
    """

    language: Language

    def dispose(self) -> None:
        """Destroy the isolation context and stop delivering events."""
        ...
