"""livecode — sandboxed JavaScript and Python execution for live coding labs."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from livecode.runtime.models import RunRequest as RunRequest
    from livecode.runtime.runner import run_code as run_code
    from livecode.runtime.runner import run_to_completion as run_to_completion

_RUNTIME_EXPORTS = {
    "RunRequest": "livecode.runtime.models",
    "run_code": "livecode.runtime.runner",
    "run_to_completion": "livecode.runtime.runner",
}


def __getattr__(name: str) -> object:
    module_path = _RUNTIME_EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'livecode' has no attribute {name!r}")
