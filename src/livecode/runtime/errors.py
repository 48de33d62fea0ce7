"""Shared error types for the execution runtime."""


class LivecodeError(Exception):
    """Base error for all livecode failures."""


class SandboxError(LivecodeError):
    """A sandbox operation failed (launch, messaging, or teardown)."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__("Sandbox error" + (f": {detail}" if detail else ""))


class SandboxUnavailableError(SandboxError):
    """The host provides no usable isolation primitive for a language.

    Raised synchronously when an executor is constructed, never delivered
    as a run event.
    """

    def __init__(self, command: str, language: str) -> None:
        self.command = command
        self.language = language
        super().__init__(f"cannot run {language}: executable {command!r} not found")


class ChannelError(SandboxError):
    """The message channel to an isolation context could not be used."""


class ExecutorDisposedError(SandboxError):
    """An executor was used after ``dispose()``."""

    def __init__(self) -> None:
        super().__init__("executor has been disposed; create a new one")


class UnsupportedLanguageError(LivecodeError):
    """A language tag has no registered executor."""

    def __init__(self, language: str) -> None:
        self.language = language
        super().__init__(f"Unsupported language: {language}")


class ConfigError(LivecodeError):
    """A configuration file failed to load or validate."""
