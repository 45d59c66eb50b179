from __future__ import annotations

from pathlib import Path

import pytest

from twinpane.core.errors import CancelledError
from twinpane.core.jobs.models import JobKind, JobSpec
from twinpane.services.file_ops.common import OperationContext
from twinpane.services.file_ops.executor import FileOperationExecutor
from twinpane.services.file_ops.scan import scan_size


def _tree(root: Path) -> Path:
    top = root / "data"
    (top / "a" / "b").mkdir(parents=True)
    (top / "c").mkdir()
    (top / "one").write_bytes(b"x" * 100)
    (top / "a" / "two").write_bytes(b"x" * 20)
    (top / "a" / "b" / "three").write_bytes(b"x" * 3)
    return top


def test_scan_counts_bytes_files_and_folders(tmp_path: Path) -> None:
    top = _tree(tmp_path)
    loose = tmp_path / "loose"
    loose.write_bytes(b"y" * 7)

    snaps = []
    ctx = OperationContext(on_progress=snaps.append)
    size, files, dirs = scan_size([top, loose], ctx, report_interval_ms=0)

    assert (size, files, dirs) == (130, 4, 3)
    assert ctx.extra == {"size": 130, "files": 4, "dirs": 3}
    # Totals are unknown up front: every report is indeterminate.
    assert snaps and all(s.indeterminate for s in snaps)


def test_scan_job_result(tmp_path: Path) -> None:
    top = _tree(tmp_path)
    result = FileOperationExecutor().execute(
        JobSpec(kind=JobKind.SIZE_SCAN, sources=(top,)), OperationContext()
    )
    assert result.success
    assert result.message == "Size calculation completed"
    assert result.extra["size"] == 123
    assert result.files_processed == 3


def test_scan_missing_root_is_recorded(tmp_path: Path) -> None:
    ctx = OperationContext()
    assert scan_size([tmp_path / "nope"], ctx) == (0, 0, 0)
    assert len(ctx.errors) == 1


def test_scan_stops_on_cancel(tmp_path: Path) -> None:
    top = _tree(tmp_path)
    ctx = OperationContext()
    ctx.cancel_token.cancel()
    with pytest.raises(CancelledError):
        scan_size([top], ctx)
