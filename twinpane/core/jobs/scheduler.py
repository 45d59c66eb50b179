"""JobScheduler: bounded parallelism for background file jobs.

At most ``max_simultaneous_jobs`` jobs are Running or Paused at once; the rest
wait in a FIFO queue. Admission happens synchronously in ``submit`` (a free
slot means the job is Running before ``submit`` returns) and, when a job
finalizes, the oldest queued job takes its slot.

Everything a job produces (progress, collisions, completion) goes out as
events on the ``EventBus``. ``subscribe`` binds per-job callbacks to a
``Dispatcher`` so the interactive thread runs them on its own loop.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from threading import Lock, RLock
from typing import TYPE_CHECKING

from twinpane.config import DEFAULT_MAX_SIMULTANEOUS_JOBS, DEFAULT_PROGRESS_INTERVAL_MS
from twinpane.core.errors import (
    AppError,
    CancelledError,
    JobFatalError,
    UnsupportedArchiveError,
    ValidationError,
)
from twinpane.core.events import (
    CollisionRaised,
    CollisionResolved,
    EventBus,
    JobFinalized,
    JobLogLine,
    JobProgress,
    JobQueued,
    JobStarted,
    JobStateChanged,
    Subscription,
)
from twinpane.core.jobs.collision import CollisionResolver
from twinpane.core.jobs.dispatch import DirectDispatcher, Dispatcher
from twinpane.core.jobs.job import Job, JobSnapshot
from twinpane.core.jobs.job_registry import JobRegistry, StateFilter, format_summary
from twinpane.core.jobs.models import (
    CollisionDecision,
    CollisionRequest,
    JobSpec,
    JobState,
    OperationResult,
    ProgressSnapshot,
)
from twinpane.core.jobs.progress import ProgressAggregator

if TYPE_CHECKING:
    from twinpane.core.engine_config import EngineConfig
    from twinpane.services.file_ops.common import OperationContext
    from twinpane.services.file_ops.executor import FileOperationExecutor

log = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Operation cancelled by user"

ProgressCallback = Callable[[ProgressSnapshot], None]
CompletionCallback = Callable[[JobFinalized], None]


@dataclass(slots=True)
class JobHandle:
    job_id: str
    name: str
    job: Job
    scheduler: JobScheduler

    @property
    def state(self) -> JobState:
        return self.job.state

    def snapshot(self) -> JobSnapshot:
        return self.job.snapshot()

    def cancel(self) -> bool:
        return self.scheduler.cancel(self.job_id)

    def resolve(self, decision: CollisionDecision) -> bool:
        return self.scheduler.resolve_collision(self.job_id, decision)

    def wait(self, timeout: float | None = None) -> OperationResult | None:
        """Block until finalized; None on timeout. Never call from the UI thread."""
        return self.job.wait(timeout)


@dataclass(slots=True)
class JobSubscription:
    bus: EventBus
    subscriptions: list[Subscription] = field(default_factory=list)

    def close(self) -> None:
        for sub in self.subscriptions:
            self.bus.unsubscribe(sub)
        self.subscriptions.clear()


class JobScheduler:
    """Admission control plus a thread pool sized to the concurrency cap."""

    def __init__(
        self,
        registry: JobRegistry,
        executor: FileOperationExecutor,
        *,
        event_bus: EventBus | None = None,
        max_simultaneous_jobs: int = DEFAULT_MAX_SIMULTANEOUS_JOBS,
        progress_interval_ms: int = DEFAULT_PROGRESS_INTERVAL_MS,
        dispatcher: Dispatcher | None = None,
        aggregator: ProgressAggregator | None = None,
    ) -> None:
        if max_simultaneous_jobs < 1:
            raise ValidationError("max_simultaneous_jobs must be at least 1")
        self._registry = registry
        self._executor = executor
        self._bus = event_bus or EventBus()
        self._dispatcher: Dispatcher = dispatcher or DirectDispatcher()
        self._aggregator = aggregator or ProgressAggregator(progress_interval_ms / 1000.0)
        self._resolver = CollisionResolver(
            on_pause=self._on_collision_pause,
            on_resume=self._on_collision_resume,
        )
        self._cap = max_simultaneous_jobs
        self._pool = ThreadPoolExecutor(max_workers=max_simultaneous_jobs, thread_name_prefix="job")
        self._lock = RLock()
        self._queue: deque[Job] = deque()
        self._running: set[str] = set()
        self._closed = False

    @classmethod
    def from_config(
        cls,
        cfg: EngineConfig,
        registry: JobRegistry,
        executor: FileOperationExecutor,
        *,
        event_bus: EventBus | None = None,
        dispatcher: Dispatcher | None = None,
    ) -> JobScheduler:
        return cls(
            registry,
            executor,
            event_bus=event_bus,
            max_simultaneous_jobs=cfg.max_simultaneous_jobs,
            progress_interval_ms=cfg.progress_interval_ms,
            dispatcher=dispatcher,
        )

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def registry(self) -> JobRegistry:
        return self._registry

    @property
    def max_simultaneous_jobs(self) -> int:
        return self._cap

    # ---- public API -------------------------------------------------------

    def submit(self, spec: JobSpec) -> JobHandle:
        """Register a job and start it now or queue it. Raises ValidationError on a bad spec."""
        spec.validate()
        job = Job(spec)
        with self._lock:
            if self._closed:
                raise ValidationError("Scheduler is shut down")
            self._registry.add(job)
            admitted = len(self._running) < self._cap
            if admitted:
                self._admit_locked(job)
            else:
                self._queue.append(job)
                position = len(self._queue)
        log.info(
            "Job #%s submitted: %s", job.short_id, job.name,
            extra={"job_id": job.job_id, "kind": job.kind.value},
        )
        if not admitted:
            self._bus.publish(JobQueued(job_id=job.job_id, name=job.name, kind=job.kind, position=position))
        return JobHandle(job_id=job.job_id, name=job.name, job=job, scheduler=self)

    def cancel(self, job_id: str) -> bool:
        """Request cancellation. False if the job is unknown or already finalized."""
        job = self._registry.get(job_id)
        if job is None:
            return False
        with self._lock:
            state = job.state
            if state.is_terminal:
                return False
            job.cancel_token.cancel()
            queued = state is JobState.QUEUED and job in self._queue
            if queued:
                self._queue.remove(job)
        log.info("Cancel requested for job #%s (%s)", job.short_id, state.value, extra={"job_id": job_id})
        if queued:
            result = OperationResult(success=False, message="Cancelled before start")
            self._finalize(job, JobState.CANCELLED, result)
        else:
            # A job parked on a collision must wake up to see the flag.
            self._resolver.wake()
        return True

    def resolve_collision(self, job_id: str, decision: CollisionDecision) -> bool:
        return self._resolver.resolve(job_id, decision)

    def get(self, job_id: str) -> JobSnapshot | None:
        job = self._registry.get(job_id)
        return job.snapshot() if job is not None else None

    def list_jobs(self, state_filter: StateFilter = None) -> list[JobSnapshot]:
        return self._registry.list(state_filter)

    def running_count(self) -> int:
        with self._lock:
            return len(self._running)

    def queued_count(self) -> int:
        with self._lock:
            return len(self._queue)

    def subscribe(
        self,
        job_id: str,
        on_progress: ProgressCallback | None = None,
        on_completion: CompletionCallback | None = None,
        *,
        dispatcher: Dispatcher | None = None,
    ) -> JobSubscription:
        """Per-job callbacks, delivered through ``dispatcher`` (default: the scheduler's)."""
        disp = dispatcher or self._dispatcher
        handle = JobSubscription(bus=self._bus)
        if on_progress is not None:
            handle.subscriptions.append(
                self._bus.subscribe(
                    JobProgress, lambda e: on_progress(e.snapshot), job_id=job_id, dispatcher=disp
                )
            )
        if on_completion is not None:
            on_completion = _once(on_completion)
            handle.subscriptions.append(
                self._bus.subscribe(JobFinalized, on_completion, job_id=job_id, dispatcher=disp)
            )
            job = self._registry.get(job_id)
            if job is not None and job.state.is_terminal and job.result is not None:
                # Finalized before the caller got here: replay the completion.
                snap = job.snapshot()
                event = JobFinalized(
                    job_id=job.job_id,
                    name=job.name,
                    state=snap.state,
                    result=job.result,
                    summary=format_summary(snap),
                )
                disp.post(lambda: on_completion(event))
        return handle

    def update_settings(self, *, progress_interval_ms: int | None = None) -> None:
        if progress_interval_ms is not None:
            self._aggregator.set_interval(max(0, progress_interval_ms) / 1000.0)
            log.info("Progress interval set to %d ms", progress_interval_ms)

    def shutdown(self, *, wait: bool = True, cancel_pending: bool = True) -> None:
        with self._lock:
            self._closed = True
            active = [j for j in self._registry.jobs() if not j.state.is_terminal]
        if cancel_pending:
            for job in active:
                self.cancel(job.job_id)
        self._pool.shutdown(wait=wait)

    # ---- admission and execution ------------------------------------------

    def _admit_locked(self, job: Job) -> None:
        job.transition(JobState.RUNNING)
        self._running.add(job.job_id)
        self._pool.submit(self._run, job)

    def _publish_started(self, job: Job) -> None:
        self._bus.publish(JobStarted(job_id=job.job_id, name=job.name, kind=job.kind))
        self._bus.publish(
            JobStateChanged(
                job_id=job.job_id, name=job.name, old_state=JobState.QUEUED, new_state=JobState.RUNNING
            )
        )

    def _make_context(self, job: Job) -> OperationContext:
        from twinpane.services.file_ops.common import OperationContext

        def on_progress(snap: ProgressSnapshot) -> None:
            job.apply_progress(snap)
            out = self._aggregator.offer(snap)
            if out is not None:
                self._bus.publish(JobProgress(job_id=job.job_id, name=job.name, snapshot=out))

        def on_collision(request: CollisionRequest) -> CollisionDecision:
            return self._resolver.request(job, request)

        def on_log_line(line: str) -> None:
            self._bus.publish(JobLogLine(job_id=job.job_id, name=job.name, line=line))

        return OperationContext(
            job.job_id,
            job.cancel_token,
            on_progress=on_progress,
            on_collision=on_collision,
            on_log_line=on_log_line,
            on_error=job.record_error,
        )

    def _run(self, job: Job) -> None:
        self._publish_started(job)
        ctx = self._make_context(job)
        try:
            result = self._executor.execute(job.spec, ctx)
            # Cancelled after the last checkpoint: still reported as cancelled.
            if job.cancel_token.is_cancelled():
                state = JobState.CANCELLED
                result = ctx.build_result(success=False, message=CANCELLED_MESSAGE)
            else:
                state = JobState.COMPLETED
        except CancelledError:
            state = JobState.CANCELLED
            result = ctx.build_result(success=False, message=CANCELLED_MESSAGE)
        except (JobFatalError, ValidationError, UnsupportedArchiveError) as e:
            log.warning("Job #%s failed: %s", job.short_id, e.message, extra={"job_id": job.job_id})
            state, result = self._failed(job, ctx, e)
        except AppError as e:
            log.exception("Job #%s failed", job.short_id, extra={"job_id": job.job_id})
            state, result = self._failed(job, ctx, e)
        except Exception as e:  # noqa: BLE001
            log.exception("Job #%s crashed", job.short_id, extra={"job_id": job.job_id})
            state, result = self._failed(job, ctx, e)
        self._finalize(job, state, result, ctx.snapshot(final=True))

    def _failed(self, job: Job, ctx: OperationContext, exc: Exception) -> tuple[JobState, OperationResult]:
        message = exc.message if isinstance(exc, AppError) else (str(exc) or type(exc).__name__)
        job.fatal_error = exc
        job.record_error(message)
        result = ctx.build_result(success=False, message=message)
        result.errors.append(message)
        return JobState.FAILED, result

    def _finalize(
        self,
        job: Job,
        state: JobState,
        result: OperationResult,
        final: ProgressSnapshot | None = None,
    ) -> None:
        with self._lock:
            old = job.state
            job.finish(state, result)
            freed = job.job_id in self._running
            self._running.discard(job.job_id)
            if freed and not self._closed:
                self._admit_next_locked()

        final = final or ProgressSnapshot(job.job_id, final=True)
        job.apply_progress(final)
        self._aggregator.forget(job.job_id)
        self._bus.publish(JobProgress(job_id=job.job_id, name=job.name, snapshot=final))
        self._bus.publish(JobStateChanged(job_id=job.job_id, name=job.name, old_state=old, new_state=state))
        snap = job.snapshot()
        summary = format_summary(snap)
        log.info(summary, extra={"job_id": job.job_id, "kind": job.kind.value, "state": state.value})
        self._bus.publish(
            JobFinalized(job_id=job.job_id, name=job.name, state=state, result=result, summary=summary)
        )
        self._registry.trim()
        job.mark_done()

    def _admit_next_locked(self) -> None:
        while self._queue:
            candidate = self._queue.popleft()
            if candidate.state is JobState.QUEUED:
                self._admit_locked(candidate)
                return

    # ---- collision hooks (worker thread) ----------------------------------

    def _on_collision_pause(self, job: Job, request: CollisionRequest) -> None:
        pending = self._aggregator.flush(job.job_id)
        if pending is not None:
            self._bus.publish(JobProgress(job_id=job.job_id, name=job.name, snapshot=pending))
        self._bus.publish(
            JobStateChanged(
                job_id=job.job_id, name=job.name, old_state=JobState.RUNNING, new_state=JobState.PAUSED
            )
        )
        self._bus.publish(CollisionRaised(job_id=job.job_id, name=job.name, request=request))

    def _on_collision_resume(self, job: Job, decision: CollisionDecision) -> None:
        self._bus.publish(CollisionResolved(job_id=job.job_id, name=job.name, decision=decision))
        self._bus.publish(
            JobStateChanged(
                job_id=job.job_id, name=job.name, old_state=JobState.PAUSED, new_state=JobState.RUNNING
            )
        )



def _once(callback: CompletionCallback) -> CompletionCallback:
    # The live event and the late-subscriber replay may both arrive.
    lock = Lock()
    fired = False

    def wrapper(event: JobFinalized) -> None:
        nonlocal fired
        with lock:
            if fired:
                return
            fired = True
        callback(event)

    return wrapper
