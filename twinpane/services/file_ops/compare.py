from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from twinpane.config import DEFAULT_TIMESTAMP_TOLERANCE_SEC
from twinpane.core.jobs.models import CompareCriteria, FileEntry
from twinpane.services.file_ops.common import OperationContext


def compare_entries(
    left: Iterable[FileEntry],
    right: Iterable[FileEntry],
    criteria: CompareCriteria,
    *,
    tolerance_sec: float = DEFAULT_TIMESTAMP_TOLERANCE_SEC,
) -> tuple[list[FileEntry], list[FileEntry]]:
    """Entries of each side that have a partner on the other side.

    Folders never match. Timestamps match within ``tolerance_sec`` (FAT and
    network shares round mtimes); names match case-insensitively.
    """
    lfiles = [e for e in left if not e.is_dir]
    rfiles = [e for e in right if not e.is_dir]
    criteria = CompareCriteria(criteria)

    if criteria is CompareCriteria.NAME:
        rnames = {e.name.lower() for e in rfiles}
        lnames = {e.name.lower() for e in lfiles}
        return (
            [e for e in lfiles if e.name.lower() in rnames],
            [e for e in rfiles if e.name.lower() in lnames],
        )
    if criteria is CompareCriteria.SIZE:
        rsizes = {e.size for e in rfiles}
        lsizes = {e.size for e in lfiles}
        return (
            [e for e in lfiles if e.size in rsizes],
            [e for e in rfiles if e.size in lsizes],
        )

    lmatch: list[FileEntry] = []
    rmatched: set[int] = set()
    for le in lfiles:
        hit = False
        for i, re_ in enumerate(rfiles):
            if abs(le.mtime - re_.mtime) <= tolerance_sec:
                hit = True
                rmatched.add(i)
        if hit:
            lmatch.append(le)
    return lmatch, [e for i, e in enumerate(rfiles) if i in rmatched]


def _entries(paths: Iterable[Path], ctx: OperationContext) -> list[FileEntry]:
    out: list[FileEntry] = []
    for p in paths:
        try:
            out.append(FileEntry.from_path(p))
        except OSError as exc:
            ctx.fail_os(exc, p)
    return out


def compare_paths(
    left: Iterable[Path],
    right: Iterable[Path],
    criteria: CompareCriteria,
    ctx: OperationContext,
    *,
    tolerance_sec: float = DEFAULT_TIMESTAMP_TOLERANCE_SEC,
) -> tuple[list[FileEntry], list[FileEntry]]:
    lentries = _entries(left, ctx)
    rentries = _entries(right, ctx)
    ctx.set_totals(len(lentries) + len(rentries), None)
    lmatch, rmatch = compare_entries(lentries, rentries, criteria, tolerance_sec=tolerance_sec)
    ctx.files_done = len(lentries) + len(rentries)
    ctx.extra["left_matches"] = [str(e.path) for e in lmatch]
    ctx.extra["right_matches"] = [str(e.path) for e in rmatch]
    return lmatch, rmatch
