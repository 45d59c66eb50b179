"""
QCoreApplication setup for the headless job runner: names only, no widgets.
"""

from __future__ import annotations

import sys

from PySide6.QtCore import QCoreApplication

from twinpane import __version__


def create_core_application(argv: list[str] | None = None) -> QCoreApplication:
    """Reuse the running instance if there is one (tests create it once per session)."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication(argv if argv is not None else sys.argv)
    app.setApplicationName("twinpane")
    app.setOrganizationName("twinpane")
    app.setApplicationVersion(__version__)
    return app
