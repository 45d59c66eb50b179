"""Hand-off of callbacks from worker threads to the interactive loop.

Workers never touch UI state. They post closures; the interactive thread
runs them from its own loop, one at a time, in posting order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from queue import Empty, Queue
from typing import Protocol

log = logging.getLogger(__name__)


class Dispatcher(Protocol):
    def post(self, fn: Callable[[], None]) -> None:
        """Schedule ``fn`` on the consumer loop. Safe to call from any thread."""


class DirectDispatcher:
    """Runs callbacks immediately in the posting thread (no UI loop)."""

    def post(self, fn: Callable[[], None]) -> None:
        fn()


class QueueDispatcher:
    """Single-consumer queue pumped by the interactive loop.

    The terminal UI calls ``run_pending()`` once per loop iteration; the
    headless runner and tests may block on it with a timeout.
    """

    def __init__(self) -> None:
        self._q: Queue[Callable[[], None]] = Queue()

    def post(self, fn: Callable[[], None]) -> None:
        self._q.put(fn)

    def pending(self) -> int:
        return self._q.qsize()

    def run_pending(self, *, timeout: float = 0.0, max_items: int | None = None) -> int:
        """Run queued callbacks; wait up to ``timeout`` for the first one."""
        ran = 0
        block = timeout > 0
        while max_items is None or ran < max_items:
            try:
                fn = self._q.get(block=block, timeout=timeout if block else None)
            except Empty:
                break
            block = False
            try:
                fn()
            except Exception:
                log.exception("UI callback failed")
            ran += 1
        return ran
