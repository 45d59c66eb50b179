"""Infrastructure: Qt bridge between job workers and the interactive thread.

Keep this package import lightweight: PySide6 is imported only when one of the
lazy exports below is requested.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = ["QtDispatcher", "JobSignals", "create_core_application"]


def __getattr__(name: str) -> Any:
    if name in ("QtDispatcher", "JobSignals"):
        return getattr(import_module("twinpane.ui.infrastructure.signals"), name)
    if name == "create_core_application":
        return import_module("twinpane.ui.infrastructure.application").create_core_application
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
