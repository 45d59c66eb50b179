"""Background jobs infrastructure.

Bounded, cancellable, pausable execution of file operations so the
interactive session never blocks. Exports are lazy: ``core.events`` imports
``core.jobs.models`` while the scheduler imports ``core.events``.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS = {
    "CancelToken": "twinpane.core.jobs.job",
    "Job": "twinpane.core.jobs.job",
    "JobSnapshot": "twinpane.core.jobs.job",
    "JobHandle": "twinpane.core.jobs.scheduler",
    "JobScheduler": "twinpane.core.jobs.scheduler",
    "JobSubscription": "twinpane.core.jobs.scheduler",
    "JobRegistry": "twinpane.core.jobs.job_registry",
    "CollisionResolver": "twinpane.core.jobs.collision",
    "ProgressAggregator": "twinpane.core.jobs.progress",
    "DirectDispatcher": "twinpane.core.jobs.dispatch",
    "QueueDispatcher": "twinpane.core.jobs.dispatch",
    "JobKind": "twinpane.core.jobs.models",
    "JobSpec": "twinpane.core.jobs.models",
    "JobState": "twinpane.core.jobs.models",
    "CollisionAction": "twinpane.core.jobs.models",
    "CollisionDecision": "twinpane.core.jobs.models",
    "CompareCriteria": "twinpane.core.jobs.models",
    "OperationResult": "twinpane.core.jobs.models",
    "ProgressSnapshot": "twinpane.core.jobs.models",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    module = _EXPORTS.get(name)
    if module is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    return getattr(import_module(module), name)
