"""Job: one logical multi-file operation tracked as a unit.

A job is mutated from two sides: the worker thread (progress, errors, pause)
and the interactive thread (cancel request, collision decision). Every
mutation goes through ``_lock``; readers get immutable ``JobSnapshot`` copies.
"""

from __future__ import annotations

import itertools
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from threading import Event, RLock

from twinpane.core.errors import InvalidTransitionError
from twinpane.core.jobs.models import (
    ALLOWED_TRANSITIONS,
    CollisionDecision,
    CollisionRequest,
    JobKind,
    JobSpec,
    JobState,
    OperationResult,
    ProgressSnapshot,
)

_SHORT_IDS = itertools.count(1)


class CancelToken:
    """Cooperative cancellation flag checked at job checkpoints."""

    def __init__(self) -> None:
        self._evt = Event()

    def cancel(self) -> None:
        self._evt.set()

    def is_cancelled(self) -> bool:
        return self._evt.is_set()


@dataclass(frozen=True, slots=True)
class JobSnapshot:
    job_id: str
    short_id: int
    name: str
    kind: JobKind
    state: JobState
    tab_id: int
    tab_name: str
    sources: tuple[Path, ...]
    destination: Path | None
    files_done: int
    files_total: int | None
    bytes_done: int
    bytes_total: int | None
    current_item: str
    errors: tuple[str, ...]
    pending_collision: CollisionRequest | None
    cancel_requested: bool
    created_at: datetime
    started_at: datetime | None
    finished_at: datetime | None
    result: OperationResult | None = field(default=None)

    @property
    def duration_sec(self) -> float | None:
        if self.started_at is None:
            return None
        end = self.finished_at or datetime.now()
        return (end - self.started_at).total_seconds()


class Job:
    def __init__(self, spec: JobSpec) -> None:
        self.spec = spec
        self.job_id = uuid.uuid4().hex
        self.short_id = next(_SHORT_IDS)
        self.cancel_token = CancelToken()
        self.created_at = datetime.now()
        self.started_at: datetime | None = None
        self.finished_at: datetime | None = None
        self._lock = RLock()
        self._done = Event()
        self._state = JobState.QUEUED
        self._files_done = 0
        self._files_total: int | None = None
        self._bytes_done = 0
        self._bytes_total: int | None = None
        self._current_item = ""
        self._errors: list[str] = []
        self._pending_collision: CollisionRequest | None = None
        # A decision given up front applies to every collision of the job.
        self._sticky_decision: CollisionDecision | None = spec.on_collision
        self.fatal_error: Exception | None = None
        self.result: OperationResult | None = None

    def __repr__(self) -> str:
        return f"<Job #{self.short_id} {self.spec.kind.value} {self.state.value}>"

    @property
    def name(self) -> str:
        return self.spec.display_name

    @property
    def kind(self) -> JobKind:
        return self.spec.kind

    @property
    def state(self) -> JobState:
        with self._lock:
            return self._state

    @property
    def sticky_decision(self) -> CollisionDecision | None:
        with self._lock:
            return self._sticky_decision

    @property
    def pending_collision(self) -> CollisionRequest | None:
        with self._lock:
            return self._pending_collision

    def transition(self, new_state: JobState) -> JobState:
        """Move to ``new_state``; returns the previous state."""
        with self._lock:
            old = self._state
            if new_state not in ALLOWED_TRANSITIONS[old]:
                raise InvalidTransitionError(
                    f"Job #{self.short_id}: {old.value} -> {new_state.value} is not allowed"
                )
            self._state = new_state
            if new_state is JobState.RUNNING and self.started_at is None:
                self.started_at = datetime.now()
            if new_state.is_terminal:
                self.finished_at = datetime.now()
                self._pending_collision = None
            return old

    def pause(self, request: CollisionRequest) -> None:
        with self._lock:
            self.transition(JobState.PAUSED)
            self._pending_collision = request

    def resume(self, decision: CollisionDecision) -> None:
        with self._lock:
            self._pending_collision = None
            if decision.is_sticky:
                self._sticky_decision = decision
            self.transition(JobState.RUNNING)

    def finish(self, state: JobState, result: OperationResult) -> None:
        with self._lock:
            self.transition(state)
            self.result = result

    def mark_done(self) -> None:
        """Release ``wait()`` callers; the scheduler calls this after finalization."""
        self._done.set()

    def wait(self, timeout: float | None = None) -> OperationResult | None:
        if not self._done.wait(timeout):
            return None
        return self.result

    def apply_progress(self, snap: ProgressSnapshot) -> None:
        # Counters only move forward, whatever order snapshots arrive in.
        with self._lock:
            self._files_done = max(self._files_done, snap.files_done)
            self._bytes_done = max(self._bytes_done, snap.bytes_done)
            if snap.files_total is not None:
                self._files_total = max(self._files_total or 0, snap.files_total)
            if snap.bytes_total is not None:
                self._bytes_total = max(self._bytes_total or 0, snap.bytes_total)
            if snap.current_file:
                self._current_item = snap.current_file

    def record_error(self, message: str) -> None:
        with self._lock:
            self._errors.append(message)

    @property
    def errors(self) -> list[str]:
        with self._lock:
            return list(self._errors)

    def snapshot(self) -> JobSnapshot:
        with self._lock:
            result = self.result
            if result is not None:
                result = replace(result, errors=list(result.errors), extra=dict(result.extra))
            return JobSnapshot(
                job_id=self.job_id,
                short_id=self.short_id,
                name=self.name,
                kind=self.kind,
                state=self._state,
                tab_id=self.spec.tab_id,
                tab_name=self.spec.tab_name,
                sources=self.spec.sources,
                destination=self.spec.destination,
                files_done=self._files_done,
                files_total=self._files_total,
                bytes_done=self._bytes_done,
                bytes_total=self._bytes_total,
                current_item=self._current_item,
                errors=tuple(self._errors),
                pending_collision=self._pending_collision,
                cancel_requested=self.cancel_token.is_cancelled(),
                created_at=self.created_at,
                started_at=self.started_at,
                finished_at=self.finished_at,
                result=result,
            )
