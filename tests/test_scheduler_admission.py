from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest

from twinpane.core.errors import ValidationError
from twinpane.core.events import EventBus, JobFinalized, JobQueued, JobStarted
from twinpane.core.jobs.job_registry import JobRegistry
from twinpane.core.jobs.models import JobKind, JobSpec, JobState
from twinpane.core.jobs.scheduler import JobScheduler


def _wait_until(pred, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not pred():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.005)


class _GatedExecutor:
    """Each job blocks until its gate (keyed by job name) is opened."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.gates: dict[str, threading.Event] = {}
        self.started: list[str] = []
        self.active = 0
        self.max_active = 0

    def gate(self, name: str) -> threading.Event:
        with self._lock:
            return self.gates.setdefault(name, threading.Event())

    def execute(self, spec, ctx):
        gate = self.gate(spec.name)
        with self._lock:
            self.started.append(spec.name)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            gate.wait(timeout=5.0)
            ctx.checkpoint()
            ctx.file_done("Deleted", Path(spec.name))
            return ctx.build_result(message="done")
        finally:
            with self._lock:
                self.active -= 1


def _spec(name: str) -> JobSpec:
    return JobSpec(kind=JobKind.DELETE, sources=(Path(f"/nonexistent/{name}"),), name=name)


def _scheduler(executor, cap: int, bus: EventBus | None = None) -> JobScheduler:
    return JobScheduler(
        JobRegistry(), executor, event_bus=bus, max_simultaneous_jobs=cap, progress_interval_ms=0
    )


def test_third_job_waits_for_a_free_slot() -> None:
    ex = _GatedExecutor()
    bus = EventBus()
    queued: list[JobQueued] = []
    bus.subscribe(JobQueued, queued.append)
    sched = _scheduler(ex, 2, bus)
    try:
        a = sched.submit(_spec("A"))
        b = sched.submit(_spec("B"))
        c = sched.submit(_spec("C"))

        # Admission is synchronous: no sleeping needed to see these states.
        assert a.state is JobState.RUNNING
        assert b.state is JobState.RUNNING
        assert c.state is JobState.QUEUED
        assert [e.job_id for e in queued] == [c.job_id]
        assert queued[0].position == 1

        ex.gate("A").set()
        assert a.wait(timeout=5.0) is not None
        # The slot passes to C before A's waiters are released.
        assert c.state is JobState.RUNNING
        assert b.state is JobState.RUNNING

        ex.gate("B").set()
        ex.gate("C").set()
        assert b.wait(timeout=5.0).success
        assert c.wait(timeout=5.0).success
        assert [s.state for s in sched.list_jobs()] == [JobState.COMPLETED] * 3
    finally:
        for g in ex.gates.values():
            g.set()
        sched.shutdown()


def test_running_jobs_never_exceed_the_cap() -> None:
    ex = _GatedExecutor()
    sched = _scheduler(ex, 2)
    try:
        handles = [sched.submit(_spec(f"J{i}")) for i in range(6)]
        for i in range(6):
            _wait_until(lambda: sched.running_count() <= 2)
            assert sched.running_count() <= 2
            ex.gate(f"J{i}").set()
        for h in handles:
            assert h.wait(timeout=5.0) is not None
        assert ex.max_active <= 2
    finally:
        sched.shutdown()


def test_queue_is_fifo() -> None:
    ex = _GatedExecutor()
    sched = _scheduler(ex, 1)
    try:
        names = ["first", "second", "third", "fourth"]
        handles = [sched.submit(_spec(n)) for n in names]
        for n in names:
            ex.gate(n).set()
        for h in handles:
            h.wait(timeout=5.0)
        assert ex.started == names
    finally:
        sched.shutdown()


def test_started_and_finalized_events_once_per_job() -> None:
    ex = _GatedExecutor()
    bus = EventBus()
    started: list[str] = []
    finalized: list[JobFinalized] = []
    bus.subscribe(JobStarted, lambda e: started.append(e.job_id))
    bus.subscribe(JobFinalized, finalized.append)
    sched = _scheduler(ex, 1, bus)
    try:
        a = sched.submit(_spec("A"))
        b = sched.submit(_spec("B"))
        ex.gate("A").set()
        a.wait(timeout=5.0)
        ex.gate("B").set()
        b.wait(timeout=5.0)
        assert sorted(started) == sorted([a.job_id, b.job_id])
        assert [e.job_id for e in finalized] == [a.job_id, b.job_id]
        assert finalized[0].summary.startswith(f"#{a.job.short_id} Delete A: completed, processed=1")
    finally:
        sched.shutdown()


def test_invalid_spec_is_rejected_synchronously() -> None:
    sched = _scheduler(_GatedExecutor(), 1)
    try:
        with pytest.raises(ValidationError):
            sched.submit(JobSpec(kind=JobKind.COPY, sources=(Path("a"),)))
        assert sched.list_jobs() == []
    finally:
        sched.shutdown()


def test_unexpected_executor_crash_fails_only_that_job() -> None:
    class _Boom(_GatedExecutor):
        def execute(self, spec, ctx):
            if spec.name == "bad":
                raise RuntimeError("kaboom")
            return super().execute(spec, ctx)

    ex = _Boom()
    sched = _scheduler(ex, 2)
    try:
        bad = sched.submit(_spec("bad"))
        good = sched.submit(_spec("good"))
        result = bad.wait(timeout=5.0)
        assert bad.state is JobState.FAILED
        assert result is not None and result.message == "kaboom"
        assert isinstance(bad.job.fatal_error, RuntimeError)
        ex.gate("good").set()
        assert good.wait(timeout=5.0).success
    finally:
        sched.shutdown()


def test_update_settings_changes_throttle_interval() -> None:
    sched = _scheduler(_GatedExecutor(), 1)
    try:
        sched.update_settings(progress_interval_ms=750)
        assert sched._aggregator.interval_sec == pytest.approx(0.75)
    finally:
        sched.shutdown()
