"""Progress throttle.

Executors report per file and per chunk; a terminal UI cannot redraw that
often. The aggregator lets at most one snapshot per job through per interval,
remembers the newest suppressed one, and never drops the final snapshot.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from threading import Lock

from twinpane.config import DEFAULT_PROGRESS_INTERVAL_MS
from twinpane.core.jobs.models import ProgressSnapshot


class ProgressAggregator:
    def __init__(
        self,
        interval_sec: float = DEFAULT_PROGRESS_INTERVAL_MS / 1000.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._interval = max(0.0, float(interval_sec))
        self._clock = clock
        self._lock = Lock()
        self._last_emit: dict[str, float] = {}
        self._pending: dict[str, ProgressSnapshot] = {}

    @property
    def interval_sec(self) -> float:
        with self._lock:
            return self._interval

    def set_interval(self, interval_sec: float) -> None:
        with self._lock:
            self._interval = max(0.0, float(interval_sec))

    def offer(self, snap: ProgressSnapshot) -> ProgressSnapshot | None:
        """Return the snapshot to deliver now, or None if it was coalesced."""
        with self._lock:
            if snap.final:
                self._last_emit.pop(snap.job_id, None)
                self._pending.pop(snap.job_id, None)
                return snap
            now = self._clock()
            last = self._last_emit.get(snap.job_id)
            if last is None or (now - last) >= self._interval:
                self._last_emit[snap.job_id] = now
                self._pending.pop(snap.job_id, None)
                return snap
            self._pending[snap.job_id] = snap
            return None

    def flush(self, job_id: str) -> ProgressSnapshot | None:
        """Release the newest coalesced snapshot (e.g. before a job parks)."""
        with self._lock:
            snap = self._pending.pop(job_id, None)
            if snap is not None:
                self._last_emit[job_id] = self._clock()
            return snap

    def forget(self, job_id: str) -> None:
        with self._lock:
            self._last_emit.pop(job_id, None)
            self._pending.pop(job_id, None)
