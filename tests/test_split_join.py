from __future__ import annotations

import os
from pathlib import Path

import pytest

from twinpane.core.errors import CancelledError, ValidationError
from twinpane.core.jobs.models import JobKind, JobSpec
from twinpane.services.file_ops.common import OperationContext
from twinpane.services.file_ops.executor import FileOperationExecutor
from twinpane.services.file_ops.split_join import (
    discover_parts,
    join_parts,
    order_parts,
    parse_part,
    part_name,
    split_file,
)


def _payload(tmp_path: Path, size: int, name: str = "movie.mkv") -> Path:
    src = tmp_path / name
    src.write_bytes(os.urandom(size))
    return src


def test_split_sizes_and_names_then_join(tmp_path: Path) -> None:
    src = _payload(tmp_path, 25 * 1024)
    out = tmp_path / "parts"
    out.mkdir()
    ex = FileOperationExecutor(buffer_size=4096)

    result = ex.execute(
        JobSpec(kind=JobKind.SPLIT, sources=(src,), destination=out, part_size=10 * 1024),
        OperationContext("split"),
    )
    parts = sorted(out.iterdir())
    assert result.success
    assert [p.name for p in parts] == ["movie.mkv.001", "movie.mkv.002", "movie.mkv.003"]
    assert [p.stat().st_size for p in parts] == [10240, 10240, 5120]
    assert result.extra["parts"] == [str(p) for p in parts]

    joined_dir = tmp_path / "joined"
    joined_dir.mkdir()
    result = ex.execute(
        JobSpec(kind=JobKind.JOIN, sources=tuple(parts), destination=joined_dir),
        OperationContext("join"),
    )
    assert result.success
    assert result.files_processed == 3
    assert (joined_dir / "movie.mkv").read_bytes() == src.read_bytes()


def test_split_defaults_to_source_folder(tmp_path: Path) -> None:
    src = _payload(tmp_path, 100)
    FileOperationExecutor().execute(
        JobSpec(kind=JobKind.SPLIT, sources=(src,), part_size=60), OperationContext()
    )
    assert (tmp_path / "movie.mkv.001").stat().st_size == 60
    assert (tmp_path / "movie.mkv.002").stat().st_size == 40


def test_zero_byte_file_gives_one_empty_part(tmp_path: Path) -> None:
    src = tmp_path / "empty.dat"
    src.write_bytes(b"")
    parts = split_file(src, 1024, tmp_path, OperationContext(), buffer_size=512)
    assert [p.name for p in parts] == ["empty.dat.001"]
    assert parts[0].stat().st_size == 0


def test_exact_multiple_has_no_empty_tail(tmp_path: Path) -> None:
    src = _payload(tmp_path, 2048)
    parts = split_file(src, 1024, tmp_path, OperationContext(), buffer_size=300)
    assert [p.stat().st_size for p in parts] == [1024, 1024]


def test_missing_middle_part_is_rejected(tmp_path: Path) -> None:
    for i in (1, 2, 4):
        (tmp_path / part_name("a.bin", i)).write_bytes(b"x")
    with pytest.raises(ValidationError, match="Missing part 3"):
        discover_parts(tmp_path / "a.bin.001")


def test_join_discovers_siblings_from_first_part(tmp_path: Path) -> None:
    (tmp_path / "a.bin.002").write_bytes(b"world")
    (tmp_path / "a.bin.001").write_bytes(b"hello ")
    (tmp_path / "b.bin.001").write_bytes(b"unrelated")
    ctx = OperationContext()
    target = join_parts([tmp_path / "a.bin.001"], None, ctx, buffer_size=4)
    assert target == tmp_path / "a.bin"
    assert target.read_bytes() == b"hello world"
    assert ctx.extra["output"] == str(target)


def test_part_suffix_forms() -> None:
    assert parse_part(Path("x.tar.001")) == ("x.tar", 1)
    assert parse_part(Path("x.tar.part002")) == ("x.tar", 2)
    assert parse_part(Path("x.tar.PART3")) == ("x.tar", 3)
    assert parse_part(Path("x.tar")) is None
    assert part_name("x", 7, width=4) == "x.0007"


def test_order_parts_rejects_mixed_bases_and_respects_first_index(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        order_parts([tmp_path / "a.001", tmp_path / "b.002"])
    ordered = order_parts([tmp_path / "a.1", tmp_path / "a.0"], first_index=0)
    assert [p.name for p in ordered] == ["a.0", "a.1"]


def test_cancel_mid_split_removes_the_partial_part(tmp_path: Path) -> None:
    src = _payload(tmp_path, 30 * 1024)
    out = tmp_path / "parts"
    out.mkdir()

    def on_progress(_snap) -> None:
        # Two chunks into the second part.
        if ctx.bytes_done == 12 * 1024:
            ctx.cancel_token.cancel()

    ctx = OperationContext(on_progress=on_progress)
    with pytest.raises(CancelledError):
        split_file(src, 10 * 1024, out, ctx, buffer_size=1024)

    assert [p.name for p in out.iterdir()] == ["movie.mkv.001"]
    assert (out / "movie.mkv.001").stat().st_size == 10 * 1024
