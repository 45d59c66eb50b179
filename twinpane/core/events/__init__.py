"""Lightweight in-process event bus.

Decouples the job engine from the UI: the scheduler publishes job lifecycle
events; monitoring views and the log sink subscribe.
"""

from .event_bus import EventBus, Subscription
from .job_events import (
    CollisionRaised,
    CollisionResolved,
    JobFinalized,
    JobLogLine,
    JobProgress,
    JobQueued,
    JobStarted,
    JobStateChanged,
)

__all__ = [
    "EventBus",
    "Subscription",
    "JobQueued",
    "JobStarted",
    "JobStateChanged",
    "JobProgress",
    "CollisionRaised",
    "CollisionResolved",
    "JobLogLine",
    "JobFinalized",
]
