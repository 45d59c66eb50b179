"""Destination-name collision handling.

The worker that hits an existing destination parks on a condition variable
until the UI answers or the job is cancelled. Only that job stops: other
workers, the registry and the interactive thread carry on. The parked worker
keeps its pool thread, so the job keeps its concurrency slot.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from threading import Condition

from twinpane.core.errors import CancelledError
from twinpane.core.jobs.job import Job
from twinpane.core.jobs.models import CollisionDecision, CollisionRequest

log = logging.getLogger(__name__)

PauseHook = Callable[[Job, CollisionRequest], None]
ResumeHook = Callable[[Job, CollisionDecision], None]


class CollisionResolver:
    def __init__(
        self,
        *,
        on_pause: PauseHook | None = None,
        on_resume: ResumeHook | None = None,
    ) -> None:
        self._cond = Condition()
        self._waiting: set[str] = set()
        self._decisions: dict[str, CollisionDecision] = {}
        self._on_pause = on_pause
        self._on_resume = on_resume

    def request(self, job: Job, request: CollisionRequest) -> CollisionDecision:
        """Called on the worker thread. Blocks only this job until answered."""
        sticky = job.sticky_decision
        if sticky is not None:
            return sticky

        with self._cond:
            if job.cancel_token.is_cancelled():
                raise CancelledError("Job cancelled")
            job.pause(request)
            self._waiting.add(job.job_id)
        log.info(
            "Job #%s paused: %s", job.short_id, request.describe(), extra={"job_id": job.job_id}
        )
        if self._on_pause is not None:
            self._on_pause(job, request)

        with self._cond:
            while job.job_id not in self._decisions and not job.cancel_token.is_cancelled():
                self._cond.wait()
            decision = self._decisions.pop(job.job_id, None)
            self._waiting.discard(job.job_id)

        if decision is None or job.cancel_token.is_cancelled():
            raise CancelledError("Job cancelled while awaiting a collision decision")
        job.resume(decision)
        log.info(
            "Job #%s resumed with %s", job.short_id, decision.action.value,
            extra={"job_id": job.job_id},
        )
        if self._on_resume is not None:
            self._on_resume(job, decision)
        return decision

    def resolve(self, job_id: str, decision: CollisionDecision) -> bool:
        """Called on the interactive thread. False if the job is not waiting."""
        with self._cond:
            if job_id not in self._waiting or job_id in self._decisions:
                return False
            self._decisions[job_id] = decision
            self._cond.notify_all()
        return True

    def is_waiting(self, job_id: str) -> bool:
        with self._cond:
            return job_id in self._waiting

    def wake(self) -> None:
        """Let parked workers re-check their cancel flags."""
        with self._cond:
            self._cond.notify_all()
