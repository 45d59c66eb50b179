from __future__ import annotations

from dataclasses import dataclass

from twinpane.core.events import EventBus, JobLogLine
from twinpane.core.jobs.dispatch import QueueDispatcher


@dataclass(frozen=True)
class _Evt:
    value: int


def test_publish_continues_when_one_handler_raises() -> None:
    bus = EventBus()
    received: list[int] = []

    def broken(_evt: _Evt) -> None:
        raise RuntimeError("boom")

    bus.subscribe(_Evt, broken)
    bus.subscribe(_Evt, lambda evt: received.append(evt.value))

    bus.publish(_Evt(7))

    assert received == [7]


def test_job_id_filter() -> None:
    bus = EventBus()
    lines: list[str] = []
    bus.subscribe(JobLogLine, lambda e: lines.append(e.line), job_id="job-1")

    bus.publish(JobLogLine(job_id="job-2", name="other", line="Deleted /b"))
    bus.publish(JobLogLine(job_id="job-1", name="mine", line="Deleted /a"))

    assert lines == ["Deleted /a"]


def test_unsubscribe_stops_delivery() -> None:
    bus = EventBus()
    received: list[int] = []
    sub = bus.subscribe(_Evt, lambda e: received.append(e.value))
    bus.publish(_Evt(1))
    bus.unsubscribe(sub)
    bus.unsubscribe(sub)
    bus.publish(_Evt(2))
    assert received == [1]


def test_dispatcher_defers_handlers_to_the_consumer_loop() -> None:
    bus = EventBus()
    disp = QueueDispatcher()
    received: list[int] = []
    bus.subscribe(_Evt, lambda e: received.append(e.value), dispatcher=disp)

    bus.publish(_Evt(1))
    bus.publish(_Evt(2))
    assert received == []
    assert disp.pending() == 2

    assert disp.run_pending() == 2
    assert received == [1, 2]


def test_clear_drops_everything() -> None:
    bus = EventBus()
    received: list[int] = []
    bus.subscribe(_Evt, lambda e: received.append(e.value))
    bus.clear()
    bus.publish(_Evt(3))
    assert received == []
