from __future__ import annotations

from pathlib import Path

import pytest

from twinpane.core.errors import UnknownJobError
from twinpane.core.jobs.job import Job
from twinpane.core.jobs.job_registry import JobRegistry, format_summary
from twinpane.core.jobs.models import JobKind, JobSpec, JobState, OperationResult


def _job(name: str = "job", *, tab_id: int = -1, kind: JobKind = JobKind.COPY) -> Job:
    return Job(
        JobSpec(
            kind=kind,
            sources=(Path(f"/src/{name}"),),
            destination=Path("/dst"),
            name=name,
            tab_id=tab_id,
        )
    )


def _finish(job: Job, state: JobState = JobState.COMPLETED, **result) -> None:
    job.transition(JobState.RUNNING)
    job.finish(state, OperationResult(success=state is JobState.COMPLETED, **result))


def test_add_get_require() -> None:
    reg = JobRegistry()
    job = _job()
    reg.add(job)
    assert reg.get(job.job_id) is job
    assert reg.require(job.job_id) is job
    assert reg.find_by_short_id(job.short_id) is job
    with pytest.raises(UnknownJobError):
        reg.require("missing")


def test_list_filters_by_state() -> None:
    reg = JobRegistry()
    a, b, c = _job("a"), _job("b"), _job("c")
    for j in (a, b, c):
        reg.add(j)
    _finish(a)
    b.transition(JobState.RUNNING)

    assert [s.name for s in reg.list()] == ["a", "b", "c"]
    assert [s.name for s in reg.list(JobState.RUNNING)] == ["b"]
    assert [s.name for s in reg.list([JobState.QUEUED, JobState.COMPLETED])] == ["a", "c"]
    assert [s.name for s in reg.active()] == ["b", "c"]


def test_clear_keeps_active_jobs() -> None:
    reg = JobRegistry()
    done, running = _job("done"), _job("running")
    reg.add(done)
    reg.add(running)
    _finish(done)
    running.transition(JobState.RUNNING)

    assert reg.clear() == 1
    assert [s.name for s in reg.list()] == ["running"]
    assert reg.remove(running.job_id) is False


def test_history_limit_drops_oldest_finalized() -> None:
    reg = JobRegistry(max_history=2)
    jobs = [_job(f"j{i}") for i in range(4)]
    for j in jobs:
        reg.add(j)
        _finish(j)
        reg.trim()
    assert [s.name for s in reg.list()] == ["j2", "j3"]


def test_summary_line_format() -> None:
    reg = JobRegistry()
    job = _job("photos")
    reg.add(job)
    _finish(
        job,
        JobState.FAILED,
        files_processed=12,
        files_skipped=2,
        errors=["a", "b"],
        duration_sec=3.14,
    )
    assert reg.summary(job.job_id) == (
        f"#{job.short_id} Copy photos: failed, processed=12, skipped=2, errors=2, duration=3.1s"
    )
    assert reg.summaries() == [format_summary(job.snapshot())]


def test_summary_of_default_named_job_names_the_kind_once() -> None:
    job = Job(JobSpec(kind=JobKind.COPY, sources=(Path("/src/b.txt"),), destination=Path("/dst")))
    _finish(job, files_processed=1)
    assert job.snapshot().name == "Copy b.txt"
    assert format_summary(job.snapshot()).startswith(f"#{job.short_id} Copy b.txt: completed, processed=1,")


def test_tab_busy_and_active_count() -> None:
    reg = JobRegistry()
    left = _job("left", tab_id=1)
    right = _job("right", tab_id=2)
    reg.add(left)
    reg.add(right)
    _finish(right)
    assert reg.is_tab_busy(1)
    assert not reg.is_tab_busy(2)
    assert reg.active_count() == 1
    assert reg.active_count(tab_id=2) == 0


def test_busy_paths_cover_sources_and_destination() -> None:
    reg = JobRegistry()
    job = _job("x")
    reg.add(job)
    assert reg.busy_paths() == [Path("/src/x"), Path("/dst")]
    _finish(job)
    assert reg.busy_paths() == []
