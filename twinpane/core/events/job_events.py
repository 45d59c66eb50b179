from __future__ import annotations

from dataclasses import dataclass

from twinpane.core.jobs.models import (
    CollisionDecision,
    CollisionRequest,
    JobKind,
    JobState,
    OperationResult,
    ProgressSnapshot,
)


@dataclass(frozen=True, slots=True)
class JobQueued:
    job_id: str
    name: str
    kind: JobKind
    position: int  # 1-based place in the wait queue


@dataclass(frozen=True, slots=True)
class JobStarted:
    job_id: str
    name: str
    kind: JobKind


@dataclass(frozen=True, slots=True)
class JobStateChanged:
    job_id: str
    name: str
    old_state: JobState
    new_state: JobState


@dataclass(frozen=True, slots=True)
class JobProgress:
    """Throttled progress; at most one per interval per job, plus the final one."""

    job_id: str
    name: str
    snapshot: ProgressSnapshot


@dataclass(frozen=True, slots=True)
class CollisionRaised:
    job_id: str
    name: str
    request: CollisionRequest


@dataclass(frozen=True, slots=True)
class CollisionResolved:
    job_id: str
    name: str
    decision: CollisionDecision


@dataclass(frozen=True, slots=True)
class JobLogLine:
    """One audit-trail line ("Copied a -> b") produced by a job."""

    job_id: str
    name: str
    line: str


@dataclass(frozen=True, slots=True)
class JobFinalized:
    job_id: str
    name: str
    state: JobState
    result: OperationResult
    summary: str
