"""
File operations run by background jobs: copy, move, delete, split, join,
compare, size scan, archive extract/compress.

Exports are lazy: archive providers import ``file_ops.common`` and the
executor imports the archive manager.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = ["FileOperationExecutor", "OperationContext", "compare_entries"]


def __getattr__(name: str) -> Any:
    if name == "FileOperationExecutor":
        return import_module("twinpane.services.file_ops.executor").FileOperationExecutor
    if name == "OperationContext":
        return import_module("twinpane.services.file_ops.common").OperationContext
    if name == "compare_entries":
        return import_module("twinpane.services.file_ops.compare").compare_entries
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
