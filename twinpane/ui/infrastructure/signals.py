"""
Thread-safe signal bridge: job workers hand events to the Qt main thread.
Create these objects on the main thread; emit from any thread, slots run on main.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from PySide6.QtCore import QObject, Qt, Signal, Slot

from twinpane.core.events import (
    CollisionRaised,
    EventBus,
    JobFinalized,
    JobLogLine,
    JobProgress,
    JobStateChanged,
    Subscription,
)

log = logging.getLogger(__name__)


class _Invoker(QObject):
    invoke = Signal(object)

    def __init__(self) -> None:
        super().__init__()
        self.invoke.connect(self._run, Qt.ConnectionType.QueuedConnection)

    @Slot(object)
    def _run(self, fn: Callable[[], None]) -> None:
        try:
            fn()
        except Exception:
            log.exception("UI callback failed")


class QtDispatcher:
    """Dispatcher that runs callbacks on the thread owning it (the Qt main thread)."""

    def __init__(self) -> None:
        self._invoker = _Invoker()

    def post(self, fn: Callable[[], None]) -> None:
        self._invoker.invoke.emit(fn)


class JobSignals(QObject):
    """Job lifecycle as Qt signals. ``bind`` forwards EventBus events from worker threads."""

    progress = Signal(str, object)  # (job_id, ProgressSnapshot)
    state_changed = Signal(str, str, str)  # (job_id, old_state, new_state)
    collision = Signal(str, object)  # (job_id, CollisionRequest)
    log_line = Signal(str, str)  # (job_id, line)
    finished = Signal(str, object)  # (job_id, JobFinalized)

    def __init__(self) -> None:
        super().__init__()
        self._subs: list[Subscription] = []
        self._bus: EventBus | None = None

    def bind(self, bus: EventBus) -> None:
        self.unbind()
        self._bus = bus
        self._subs = [
            bus.subscribe(JobProgress, lambda e: self.progress.emit(e.job_id, e.snapshot)),
            bus.subscribe(
                JobStateChanged,
                lambda e: self.state_changed.emit(e.job_id, e.old_state.value, e.new_state.value),
            ),
            bus.subscribe(CollisionRaised, lambda e: self.collision.emit(e.job_id, e.request)),
            bus.subscribe(JobLogLine, lambda e: self.log_line.emit(e.job_id, e.line)),
            bus.subscribe(JobFinalized, lambda e: self.finished.emit(e.job_id, e)),
        ]

    def unbind(self) -> None:
        if self._bus is not None:
            for sub in self._subs:
                self._bus.unsubscribe(sub)
        self._subs = []
        self._bus = None
