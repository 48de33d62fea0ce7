"""Error types for the snippet service."""

from livecode.runtime.errors import LivecodeError


class SnippetError(LivecodeError):
    """Base error for snippet persistence failures."""


class SnippetNotFoundError(SnippetError):
    """No snippet is stored under the requested id."""

    def __init__(self, snippet_id: str) -> None:
        self.snippet_id = snippet_id
        super().__init__(f"Snippet not found: {snippet_id}")


class InvalidSnippetError(SnippetError):
    """A snippet was rejected before being stored."""


class SnippetServiceError(SnippetError):
    """The remote snippet service could not be reached or refused a request."""
