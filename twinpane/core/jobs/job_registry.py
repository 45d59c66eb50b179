from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from threading import RLock

from twinpane.config import DEFAULT_MAX_HISTORY
from twinpane.core.errors import UnknownJobError
from twinpane.core.jobs.job import Job, JobSnapshot
from twinpane.core.jobs.models import JobState

StateFilter = JobState | Iterable[JobState] | None


def _normalize_filter(states: StateFilter) -> frozenset[JobState] | None:
    if states is None:
        return None
    if isinstance(states, JobState):
        return frozenset({states})
    return frozenset(JobState(s) for s in states)


def format_summary(snap: JobSnapshot) -> str:
    """One line per finalized job, for the message log."""
    result = snap.result
    processed = result.files_processed if result else snap.files_done
    skipped = result.files_skipped if result else 0
    errors = len(result.errors) if result else len(snap.errors)
    duration = result.duration_sec if result else (snap.duration_sec or 0.0)
    # Default names ("Copy b.txt") already lead with the kind.
    title = snap.name if snap.name.startswith(f"{snap.kind.label} ") else f"{snap.kind.label} {snap.name}"
    return (
        f"#{snap.short_id} {title}: {snap.state.value}, "
        f"processed={processed}, skipped={skipped}, errors={errors}, duration={duration:.1f}s"
    )


class JobRegistry:
    """Active and historical jobs, owned by the composition root.

    Not a singleton: the scheduler and the job-monitor view receive the same
    instance explicitly.
    """

    def __init__(self, *, max_history: int = DEFAULT_MAX_HISTORY) -> None:
        self._max_history = max_history
        self._jobs: dict[str, Job] = {}
        self._lock = RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def add(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.job_id] = job
            self._purge_if_needed()

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            return self._jobs.get(job_id)

    def require(self, job_id: str) -> Job:
        job = self.get(job_id)
        if job is None:
            raise UnknownJobError(f"Unknown job: {job_id}")
        return job

    def find_by_short_id(self, short_id: int) -> Job | None:
        with self._lock:
            for job in self._jobs.values():
                if job.short_id == short_id:
                    return job
        return None

    def jobs(self, states: StateFilter = None) -> list[Job]:
        wanted = _normalize_filter(states)
        with self._lock:
            items = list(self._jobs.values())
        if wanted is None:
            return items
        return [j for j in items if j.state in wanted]

    def list(self, states: StateFilter = None) -> list[JobSnapshot]:
        """Snapshots in submission order, optionally filtered by state."""
        wanted = _normalize_filter(states)
        snaps = [j.snapshot() for j in self.jobs()]
        if wanted is None:
            return snaps
        return [s for s in snaps if s.state in wanted]

    def active(self) -> list[JobSnapshot]:
        return [s for s in self.list() if not s.state.is_terminal]

    def remove(self, job_id: str) -> bool:
        """Drop one finalized job. Active jobs stay."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or not job.state.is_terminal:
                return False
            del self._jobs[job_id]
            return True

    def clear(self) -> int:
        """Drop all finalized jobs; returns how many were removed."""
        with self._lock:
            done = [jid for jid, j in self._jobs.items() if j.state.is_terminal]
            for jid in done:
                del self._jobs[jid]
            return len(done)

    def summary(self, job_id: str) -> str:
        return format_summary(self.require(job_id).snapshot())

    def summaries(self) -> list[str]:
        return [format_summary(s) for s in self.list() if s.state.is_terminal]

    def is_tab_busy(self, tab_id: int) -> bool:
        return self.active_count(tab_id) > 0

    def active_count(self, tab_id: int | None = None) -> int:
        return sum(
            1
            for j in self.jobs()
            if not j.state.is_terminal and (tab_id is None or j.spec.tab_id == tab_id)
        )

    def busy_paths(self) -> list[Path]:
        """Paths active jobs read or write; panes show them as busy."""
        out: list[Path] = []
        seen: set[Path] = set()
        for snap in self.active():
            candidates = list(snap.sources)
            if snap.destination is not None:
                candidates.append(snap.destination)
            if snap.current_item:
                candidates.append(Path(snap.current_item))
            for p in candidates:
                if p not in seen:
                    seen.add(p)
                    out.append(p)
        return out

    def trim(self) -> None:
        """Forget the oldest finalized jobs beyond the history limit."""
        with self._lock:
            self._purge_if_needed()

    def _purge_if_needed(self) -> None:
        if self._max_history <= 0:
            return
        finished = [j for j in self._jobs.values() if j.state.is_terminal]
        overflow = len(finished) - self._max_history
        if overflow <= 0:
            return
        finished.sort(key=lambda j: j.finished_at or j.created_at)
        for job in finished[:overflow]:
            self._jobs.pop(job.job_id, None)
