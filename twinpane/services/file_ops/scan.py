from __future__ import annotations

import os
import stat
import time
from pathlib import Path

from twinpane.config import DEFAULT_SIZE_SCAN_REPORT_INTERVAL_MS
from twinpane.services.file_ops.common import OperationContext


def scan_size(
    roots: list[Path],
    ctx: OperationContext,
    *,
    report_interval_ms: int = DEFAULT_SIZE_SCAN_REPORT_INTERVAL_MS,
) -> tuple[int, int, int]:
    """Total (bytes, files, folders) under ``roots``; roots themselves are not counted as folders.

    Totals are unknowable up front, so progress stays indeterminate and
    carries absolute counts. Unreadable folders are recorded and skipped.
    """
    ctx.set_totals(None, None)
    interval = report_interval_ms / 1000.0
    last = time.monotonic()
    size = files = dirs = 0
    stack: list[Path] = []
    for root in roots:
        try:
            st = os.lstat(root)
        except OSError as exc:
            ctx.fail_os(exc, root)
            continue
        if stat.S_ISDIR(st.st_mode):
            stack.append(root)
        else:
            size += st.st_size
            files += 1

    while stack:
        ctx.checkpoint()
        folder = stack.pop()
        ctx.current_file = str(folder)
        try:
            with os.scandir(folder) as it:
                entries = list(it)
        except OSError as exc:
            ctx.fail_os(exc, folder)
            continue
        for entry in entries:
            try:
                est = entry.stat(follow_symlinks=False)
            except OSError as exc:
                ctx.fail_os(exc, Path(entry.path))
                continue
            if stat.S_ISDIR(est.st_mode):
                dirs += 1
                stack.append(Path(entry.path))
            else:
                size += est.st_size
                files += 1
        now = time.monotonic()
        if now - last >= interval:
            last = now
            ctx.files_done = files
            ctx.bytes_done = size
            ctx.report()

    ctx.files_done = files
    ctx.bytes_done = size
    ctx.extra.update({"size": size, "files": files, "dirs": dirs})
    return size, files, dirs
