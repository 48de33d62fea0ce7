"""OutputBudget — caps the cumulative size of captured output for one run."""

from __future__ import annotations

TRUNCATION_NOTICE = "[output truncated]"


class OutputBudget:
    """Counts UTF-8 bytes of admitted output against a fixed limit.

    Once a chunk would push the total past ``max_bytes`` the budget is
    exhausted for good: later chunks are refused even if they are small.
    """

    def __init__(self, max_bytes: int) -> None:
        if max_bytes <= 0:
            msg = "max_bytes must be positive"
            raise ValueError(msg)
        self.max_bytes = max_bytes
        self.used = 0
        self._exhausted = False
        self._notified = False

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def admit(self, text: str) -> bool:
        """Charge *text* to the budget; return ``False`` if it does not fit."""
        if self._exhausted:
            return False
        size = len(text.encode("utf-8", errors="replace"))
        if self.used + size > self.max_bytes:
            self._exhausted = True
            return False
        self.used += size
        return True

    def mark_truncated(self) -> bool:
        """Exhaust the budget; ``True`` only the first time (notify once)."""
        self._exhausted = True
        if self._notified:
            return False
        self._notified = True
        return True
