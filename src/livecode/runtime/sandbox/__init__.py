"""Sandbox subsystem — per-language isolated executors."""

from livecode.runtime.sandbox.executor import Executor
from livecode.runtime.sandbox.js_executor import JavaScriptExecutor
from livecode.runtime.sandbox.py_executor import PythonExecutor

__all__ = [
    "Executor",
    "JavaScriptExecutor",
    "PythonExecutor",
]
