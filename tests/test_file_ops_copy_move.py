from __future__ import annotations

import errno
import os
from pathlib import Path

import pytest

from twinpane.core.errors import JobFatalError
from twinpane.core.events import EventBus
from twinpane.core.jobs.job_registry import JobRegistry
from twinpane.core.jobs.models import CollisionDecision, JobKind, JobSpec, JobState
from twinpane.core.jobs.scheduler import JobScheduler
from twinpane.services.file_ops.common import OperationContext
from twinpane.services.file_ops import transfer
from twinpane.services.file_ops.executor import FileOperationExecutor


def _make_tree(root: Path) -> Path:
    src = root / "album"
    (src / "raw").mkdir(parents=True)
    (src / "a.jpg").write_bytes(b"A" * 5000)
    (src / "b.jpg").write_bytes(b"B" * 7)
    (src / "raw" / "c.cr2").write_bytes(os.urandom(12345))
    os.utime(src / "a.jpg", (1_600_000_000, 1_600_000_000))
    return src


def _run(kind: JobKind, sources, dest: Path, **ctx_kw):
    lines: list[str] = []
    ctx = OperationContext("job", on_log_line=lines.append, **ctx_kw)
    ex = FileOperationExecutor(buffer_size=1024)
    result = ex.execute(JobSpec(kind=kind, sources=tuple(sources), destination=dest), ctx)
    return result, lines


def test_copy_preserves_bytes_and_mtime(tmp_path: Path) -> None:
    src = _make_tree(tmp_path)
    dst = tmp_path / "dst"
    dst.mkdir()

    result, lines = _run(JobKind.COPY, [src], dst)

    assert result.success
    assert result.message == "Copy completed"
    assert result.files_processed == 3
    for rel in ("a.jpg", "b.jpg", "raw/c.cr2"):
        assert (dst / "album" / rel).read_bytes() == (src / rel).read_bytes()
    assert os.stat(dst / "album" / "a.jpg").st_mtime == pytest.approx(1_600_000_000)
    # Files of a folder before its subfolders, names sorted.
    assert [ln.split(" ")[1] for ln in lines] == [
        str(src / "a.jpg"),
        str(src / "b.jpg"),
        str(src / "raw" / "c.cr2"),
    ]
    assert all(ln.startswith("Copied ") for ln in lines)


def test_copy_reports_byte_totals(tmp_path: Path) -> None:
    src = _make_tree(tmp_path)
    dst = tmp_path / "dst"
    dst.mkdir()
    snaps = []
    _run(JobKind.COPY, [src], dst, on_progress=snaps.append)
    assert snaps[0].files_total == 3
    assert snaps[0].bytes_total == 5000 + 7 + 12345
    assert snaps[-1].bytes_done == snaps[0].bytes_total


def test_move_on_same_volume_renames(tmp_path: Path) -> None:
    src = _make_tree(tmp_path)
    dst = tmp_path / "dst"
    dst.mkdir()
    inode = os.stat(src / "raw" / "c.cr2").st_ino

    result, lines = _run(JobKind.MOVE, [src], dst)

    assert result.success
    assert result.files_processed == 3
    assert not src.exists()
    assert os.stat(dst / "album" / "raw" / "c.cr2").st_ino == inode
    assert lines == [f"Moved {src} -> {dst / 'album'}"]


def test_move_across_volumes_copies_then_deletes(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr("twinpane.services.file_ops.transfer.same_volume", lambda a, b: False)
    src = _make_tree(tmp_path)
    expected = (src / "raw" / "c.cr2").read_bytes()
    dst = tmp_path / "dst"
    dst.mkdir()

    result, lines = _run(JobKind.MOVE, [src], dst)

    assert result.success
    assert result.files_processed == 3
    assert not src.exists()
    assert (dst / "album" / "raw" / "c.cr2").read_bytes() == expected
    assert len(lines) == 3 and all(ln.startswith("Moved ") for ln in lines)


def test_missing_destination_is_fatal(tmp_path: Path) -> None:
    src = _make_tree(tmp_path)
    with pytest.raises(JobFatalError):
        _run(JobKind.COPY, [src], tmp_path / "nowhere")


def test_folder_into_itself_is_refused(tmp_path: Path) -> None:
    src = _make_tree(tmp_path)
    result, _lines = _run(JobKind.COPY, [src], src / "raw")
    assert not result.success
    assert "into itself" in result.errors[0]
    assert not (src / "raw" / "album").exists()


def test_collision_without_handler_is_a_per_file_error(tmp_path: Path) -> None:
    src = tmp_path / "a.txt"
    src.write_text("new")
    dst = tmp_path / "dst"
    dst.mkdir()
    (dst / "a.txt").write_text("old")
    other = tmp_path / "b.txt"
    other.write_text("b")

    result, _lines = _run(JobKind.COPY, [src, other], dst)

    assert not result.success
    assert result.files_processed == 1
    assert "already exists" in result.errors[0]
    assert (dst / "a.txt").read_text() == "old"
    assert (dst / "b.txt").read_text() == "b"


def test_overwrite_merges_folders(tmp_path: Path) -> None:
    src = _make_tree(tmp_path)
    dst = tmp_path / "dst"
    (dst / "album").mkdir(parents=True)
    (dst / "album" / "keep.txt").write_text("keep")
    (dst / "album" / "b.jpg").write_text("old")

    result, _lines = _run(
        JobKind.COPY, [src], dst, on_collision=lambda req: CollisionDecision.overwrite()
    )

    assert result.success
    assert (dst / "album" / "keep.txt").read_text() == "keep"
    assert (dst / "album" / "b.jpg").read_bytes() == b"B" * 7
    assert (dst / "album" / "raw" / "c.cr2").exists()


def test_per_file_error_does_not_stop_the_job(tmp_path: Path, monkeypatch) -> None:
    src = _make_tree(tmp_path)
    dst = tmp_path / "dst"
    dst.mkdir()
    real_open = open

    def flaky_open(path, mode="r", *args, **kwargs):
        if str(path).endswith("a.jpg") and "r" in mode:
            raise PermissionError(errno.EACCES, "Permission denied", str(path))
        return real_open(path, mode, *args, **kwargs)

    monkeypatch.setattr("builtins.open", flaky_open)
    result, _lines = _run(JobKind.COPY, [src], dst)

    assert not result.success
    assert result.files_processed == 2
    assert result.message == "Copy completed with 1 error(s)"
    assert "Permission denied" in result.errors[0]
    assert not (dst / "album" / "a.jpg").exists()


def test_disk_full_fails_the_job(tmp_path: Path, monkeypatch) -> None:
    src = _make_tree(tmp_path)
    dst = tmp_path / "dst"
    dst.mkdir()

    def no_space(*args, **kwargs):
        raise OSError(errno.ENOSPC, "No space left on device")

    monkeypatch.setattr("twinpane.services.file_ops.transfer.copy_file_contents", no_space)
    sched = JobScheduler(JobRegistry(), FileOperationExecutor(buffer_size=1024), event_bus=EventBus())
    try:
        h = sched.submit(JobSpec(kind=JobKind.COPY, sources=(src,), destination=dst))
        result = h.wait(timeout=5.0)
        assert h.state is JobState.FAILED
        assert result is not None
        assert "No space left on device" in result.message
        assert isinstance(h.job.fatal_error, JobFatalError)
    finally:
        sched.shutdown()


def test_move_stopped_by_disk_full_leaves_unattempted_files_at_source(tmp_path: Path, monkeypatch) -> None:
    src = tmp_path / "batch"
    src.mkdir()
    for i in range(10):
        (src / f"f{i:02d}.txt").write_text(f"payload {i}")
    dst = tmp_path / "dst"
    dst.mkdir()
    real_copy = transfer.copy_file_contents
    copied: list[str] = []

    def fills_up_after_three(s, d, ctx, *, buffer_size):
        if len(copied) == 3:
            raise OSError(errno.ENOSPC, "No space left on device")
        copied.append(s.name)
        real_copy(s, d, ctx, buffer_size=buffer_size)

    monkeypatch.setattr("twinpane.services.file_ops.transfer.same_volume", lambda a, b: False)
    monkeypatch.setattr("twinpane.services.file_ops.transfer.copy_file_contents", fills_up_after_three)

    with pytest.raises(JobFatalError):
        _run(JobKind.MOVE, [src], dst)

    assert copied == ["f00.txt", "f01.txt", "f02.txt"]
    assert sorted(p.name for p in (dst / "batch").iterdir()) == copied
    for i in range(3, 10):
        assert (src / f"f{i:02d}.txt").read_text() == f"payload {i}"
    for name in copied:
        assert not (src / name).exists()


@pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="needs named pipes")
def test_named_pipe_in_source_tree_is_skipped_with_an_error(tmp_path: Path) -> None:
    src = _make_tree(tmp_path)
    os.mkfifo(src / "pipe")
    dst = tmp_path / "dst"
    dst.mkdir()

    result, _lines = _run(JobKind.COPY, [src], dst)

    assert not result.success
    assert len(result.errors) == 1
    assert "special file skipped" in result.errors[0]
    assert not os.path.lexists(dst / "album" / "pipe")
    assert (dst / "album" / "a.jpg").read_bytes() == b"A" * 5000
    assert (dst / "album" / "raw" / "c.cr2").exists()


def test_dangling_symlink_at_destination_is_a_collision(tmp_path: Path) -> None:
    src = tmp_path / "src"
    src.mkdir()
    (src / "a.txt").write_text("new")
    dst = tmp_path / "dst"
    dst.mkdir()
    os.symlink(tmp_path / "missing", dst / "a.txt")
    asked: list[Path] = []

    def overwrite(req):
        asked.append(req.destination.path)
        return CollisionDecision.overwrite()

    result, _lines = _run(JobKind.COPY, [src / "a.txt"], dst, on_collision=overwrite)

    assert result.success, result.errors
    assert asked == [dst / "a.txt"]
    assert not (dst / "a.txt").is_symlink()
    assert (dst / "a.txt").read_text() == "new"
