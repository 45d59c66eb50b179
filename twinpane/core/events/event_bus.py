from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from threading import RLock
from typing import TYPE_CHECKING, Any, TypeVar, cast

if TYPE_CHECKING:
    from twinpane.core.jobs.dispatch import Dispatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Subscription:
    event_type: type[object]
    handler: Callable[[object], None]


TEvent = TypeVar("TEvent")


class EventBus:
    """Simple in-process event bus.

    - Thread-safe subscribe/unsubscribe/publish.
    - By default handlers run synchronously in the publisher's thread (a
      worker, for job events). Pass ``dispatcher`` to have the handler posted
      to the interactive loop instead.
    - ``job_id`` narrows a subscription to events of one job.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._subs: defaultdict[type[object], list[Callable[[object], None]]] = defaultdict(list)

    def subscribe(
        self,
        event_type: type[TEvent],
        handler: Callable[[TEvent], None],
        *,
        job_id: str | None = None,
        dispatcher: Dispatcher | None = None,
    ) -> Subscription:
        def _wrapped(event: object) -> None:
            if job_id is not None and getattr(event, "job_id", None) != job_id:
                return
            typed = cast(TEvent, event)
            if dispatcher is None:
                handler(typed)
            else:
                dispatcher.post(lambda: handler(typed))

        with self._lock:
            self._subs[event_type].append(_wrapped)
        return Subscription(event_type=event_type, handler=_wrapped)

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            handlers = self._subs.get(subscription.event_type)
            if not handlers:
                return
            try:
                handlers.remove(subscription.handler)
            except ValueError:
                return

    def publish(self, event: Any) -> None:
        # Copy handlers under lock, then execute outside the lock.
        with self._lock:
            handlers = list(self._subs.get(type(event), []))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Event handler failed",
                    extra={"event": type(event).__name__, "job_id": getattr(event, "job_id", None)},
                )

    def clear(self) -> None:
        """Remove all subscriptions."""
        with self._lock:
            self._subs.clear()
