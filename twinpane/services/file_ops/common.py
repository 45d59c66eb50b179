"""Shared plumbing for file operations: context, streaming, tree walking."""

from __future__ import annotations

import logging
import os
import shutil
import stat
import time
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any, BinaryIO

from twinpane.config import DEFAULT_BUFFER_SIZE
from twinpane.core.errors import CancelledError, JobFatalError, PerFileError, classify_os_error
from twinpane.core.jobs.job import CancelToken
from twinpane.core.jobs.models import (
    CollisionDecision,
    CollisionRequest,
    FileEntry,
    OperationResult,
    ProgressSnapshot,
)

log = logging.getLogger(__name__)

ProgressFn = Callable[[ProgressSnapshot], None]
CollisionFn = Callable[[CollisionRequest], CollisionDecision]
LogLineFn = Callable[[str], None]


class OperationContext:
    """Per-run state of one operation: counters, errors, checkpoints, callbacks.

    The executor owns the bookkeeping; the scheduler plugs in the callbacks
    (progress throttle, collision resolver, audit trail).
    """

    def __init__(
        self,
        job_id: str = "",
        cancel_token: CancelToken | None = None,
        *,
        on_progress: ProgressFn | None = None,
        on_collision: CollisionFn | None = None,
        on_log_line: LogLineFn | None = None,
        on_error: Callable[[str], None] | None = None,
    ) -> None:
        self.job_id = job_id
        self.cancel_token = cancel_token or CancelToken()
        self._on_progress = on_progress
        self._on_collision = on_collision
        self._on_log_line = on_log_line
        self._on_error = on_error
        self.files_done = 0
        self.files_total: int | None = None
        self.bytes_done = 0
        self.bytes_total: int | None = None
        self.files_skipped = 0
        self.file_index = 0
        self.current_file = ""
        self.errors: list[str] = []
        self.extra: dict[str, Any] = {}
        self._started = time.monotonic()

    @property
    def elapsed_sec(self) -> float:
        return time.monotonic() - self._started

    def checkpoint(self) -> None:
        if self.cancel_token.is_cancelled():
            raise CancelledError("Operation cancelled by user")

    def set_totals(self, files: int | None, bytes_: int | None) -> None:
        self.files_total = files
        self.bytes_total = bytes_
        self.report()

    def begin_file(self, path: Path) -> None:
        self.file_index += 1
        self.current_file = str(path)
        self.report()

    def advance(self, nbytes: int) -> None:
        self.bytes_done += nbytes
        self.report()

    def file_done(self, verb: str, path: Path, dest: Path | None = None, *, count: int = 1) -> None:
        self.files_done += count
        self.audit(verb, path, dest)
        self.report()

    def skip(self, path: Path, *, count: int = 1, nbytes: int = 0) -> None:
        self.files_skipped += count
        # Skipped bytes still count as handled so the bar reaches 100%.
        self.bytes_done += nbytes
        self.audit("Skipped", path)
        self.report()

    def record_error(self, err: PerFileError) -> None:
        self.errors.append(err.message)
        if self._on_error is not None:
            self._on_error(err.message)
        self.audit("Failed", Path(err.path) if err.path else Path(self.current_file))
        log.warning("%s", err.message, extra={"job_id": self.job_id, "path": err.path})

    def fail_os(self, exc: OSError, path: Path) -> None:
        """Record a per-file OSError, or raise it if it is job-fatal."""
        err = classify_os_error(exc, str(path))
        if isinstance(err, JobFatalError):
            raise err
        self.record_error(err)

    def audit(self, verb: str, path: Path, dest: Path | None = None) -> None:
        line = f"{verb} {path}" if dest is None else f"{verb} {path} -> {dest}"
        log.info("Executing: %s", line, extra={"job_id": self.job_id, "path": str(path)})
        if self._on_log_line is not None:
            self._on_log_line(line)

    def resolve_collision(self, source: Path, target: Path) -> CollisionDecision:
        request = CollisionRequest(
            job_id=self.job_id,
            source=FileEntry.from_path(source),
            destination=FileEntry.from_path(target),
        )
        if self._on_collision is None:
            # No one to ask: treat as a per-file failure.
            raise PerFileError(f"Destination already exists: {target}", path=str(target))
        return self._on_collision(request)

    def report(self, *, final: bool = False) -> None:
        if self._on_progress is None:
            return
        self._on_progress(self.snapshot(final=final))

    def snapshot(self, *, final: bool = False) -> ProgressSnapshot:
        return ProgressSnapshot(
            job_id=self.job_id,
            current_file=self.current_file,
            file_index=self.file_index,
            files_total=self.files_total,
            files_done=self.files_done,
            bytes_done=self.bytes_done,
            bytes_total=self.bytes_total,
            final=final,
        )

    def build_result(self, *, success: bool | None = None, message: str = "") -> OperationResult:
        if success is None:
            success = not self.errors
        return OperationResult(
            success=success,
            message=message,
            files_processed=self.files_done,
            files_skipped=self.files_skipped,
            errors=list(self.errors),
            duration_sec=self.elapsed_sec,
            extra=dict(self.extra),
        )


def is_real_dir(path: Path) -> bool:
    """Directory that is not a symlink (symlinks are copied/deleted as links)."""
    try:
        return stat.S_ISDIR(os.lstat(path).st_mode)
    except OSError:
        return False


def iter_tree(root: Path) -> Iterator[tuple[Path, os.stat_result]]:
    """Yield (path, lstat) of every non-directory under ``root``, stable order.

    Files of a directory come before its subdirectories; names are sorted.
    """
    st = os.lstat(root)
    if not stat.S_ISDIR(st.st_mode):
        yield root, st
        return
    files, dirs = list_dir(root)
    for p, fst in files:
        yield p, fst
    for d in dirs:
        yield from iter_tree(d)


def list_dir(path: Path) -> tuple[list[tuple[Path, os.stat_result]], list[Path]]:
    """Split a directory into sorted (files, subdirectories)."""
    files: list[tuple[Path, os.stat_result]] = []
    dirs: list[Path] = []
    with os.scandir(path) as it:
        entries = sorted(it, key=lambda e: e.name)
    for entry in entries:
        p = Path(entry.path)
        est = entry.stat(follow_symlinks=False)
        if stat.S_ISDIR(est.st_mode):
            dirs.append(p)
        else:
            files.append((p, est))
    return files, dirs


def measure(sources: list[Path]) -> tuple[int, int]:
    """Total (files, bytes) under the sources; unreadable parts count as zero."""
    files = 0
    total = 0
    for src in sources:
        try:
            for _p, st in iter_tree(src):
                files += 1
                total += st.st_size if stat.S_ISREG(st.st_mode) else 0
        except OSError:
            log.debug("Could not measure %s", src, exc_info=True)
    return files, total


def same_volume(a: Path, b: Path) -> bool:
    """True if ``a`` and the directory ``b`` live on the same device."""
    try:
        return os.lstat(a).st_dev == os.stat(b).st_dev
    except OSError:
        return False


def copy_stream(
    src: BinaryIO,
    dst: BinaryIO,
    ctx: OperationContext,
    *,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
    limit: int | None = None,
    check_cancel: bool = False,
) -> int:
    """Copy up to ``limit`` bytes through one reusable buffer; returns bytes copied."""
    buf = bytearray(buffer_size)
    view = memoryview(buf)
    copied = 0
    while limit is None or copied < limit:
        if check_cancel:
            ctx.checkpoint()
        want = buffer_size if limit is None else min(buffer_size, limit - copied)
        n = src.readinto(view[:want])  # type: ignore[attr-defined]
        if not n:
            break
        dst.write(view[:n])
        copied += n
        ctx.advance(n)
    return copied


def copy_file_contents(src: Path, dst: Path, ctx: OperationContext, *, buffer_size: int) -> None:
    """Stream ``src`` into ``dst`` and carry over timestamps and mode bits."""
    st = os.lstat(src)
    if stat.S_ISLNK(st.st_mode):
        os.symlink(os.readlink(src), dst)
        return
    if not stat.S_ISREG(st.st_mode):
        # FIFOs and device nodes would block open() or stream forever.
        raise PerFileError(f"{src}: special file skipped", path=str(src))
    try:
        with open(src, "rb") as fin, open(dst, "wb") as fout:
            copy_stream(fin, fout, ctx, buffer_size=buffer_size)
    except BaseException:
        # Leave no half-written file behind.
        remove_quietly(dst)
        raise
    copy_metadata(src, dst, st)


def copy_metadata(src: Path, dst: Path, st: os.stat_result | None = None) -> None:
    st = st or os.stat(src)
    try:
        shutil.copymode(src, dst)
    except OSError:
        # Some mounts (FAT, FUSE) reject chmod; bytes and times are what matter.
        log.debug("copymode failed for %s", dst, exc_info=True)
    os.utime(dst, ns=(st.st_atime_ns, st.st_mtime_ns))


def remove_quietly(path: Path) -> None:
    try:
        if is_real_dir(path):
            shutil.rmtree(path)
        else:
            os.unlink(path)
    except FileNotFoundError:
        return
    except OSError:
        log.debug("Cleanup of %s failed", path, exc_info=True)


def remove_path(path: Path) -> None:
    if is_real_dir(path):
        shutil.rmtree(path)
    else:
        os.unlink(path)
