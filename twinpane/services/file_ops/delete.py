from __future__ import annotations

import errno
import os
from pathlib import Path

from twinpane.services.file_ops.common import OperationContext, is_real_dir, list_dir, measure


def delete_items(sources: list[Path], ctx: OperationContext) -> None:
    """Remove files and folders recursively; one failure never stops the rest."""
    files, _total = measure(sources)
    ctx.set_totals(files, None)
    for src in sources:
        _delete(src, ctx)


def _delete(path: Path, ctx: OperationContext) -> None:
    ctx.checkpoint()
    if not is_real_dir(path):
        ctx.begin_file(path)
        try:
            os.unlink(path)
        except OSError as exc:
            ctx.fail_os(exc, path)
            return
        ctx.file_done("Deleted", path)
        return

    try:
        files, dirs = list_dir(path)
    except OSError as exc:
        ctx.fail_os(exc, path)
        return
    for child, _st in files:
        _delete(child, ctx)
    for sub in dirs:
        _delete(sub, ctx)
    try:
        os.rmdir(path)
    except OSError as exc:
        # A child already failed and was recorded; the folder is left behind.
        if exc.errno in (errno.ENOTEMPTY, errno.EEXIST) and ctx.errors:
            return
        ctx.fail_os(exc, path)
        return
    ctx.audit("Deleted", path)
