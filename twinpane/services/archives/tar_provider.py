from __future__ import annotations

import os
import tarfile
from pathlib import Path
from typing import TYPE_CHECKING

from twinpane.core.errors import JobFatalError, PerFileError
from twinpane.services.archives.base import (
    ArchiveEntry,
    ArchiveProvider,
    ProgressReader,
    iter_sources,
    safe_member_path,
)
from twinpane.services.file_ops.common import copy_stream, remove_quietly

if TYPE_CHECKING:
    from twinpane.services.file_ops.common import OperationContext

# Longest suffix first so ".tar.gz" wins over ".gz".
_WRITE_MODES = (
    (".tar.gz", "w:gz"),
    (".tgz", "w:gz"),
    (".tar.bz2", "w:bz2"),
    (".tbz2", "w:bz2"),
    (".tar.xz", "w:xz"),
    (".txz", "w:xz"),
    (".tar", "w"),
)


def write_mode_for(archive: Path) -> str:
    name = archive.name.lower()
    for suffix, mode in _WRITE_MODES:
        if name.endswith(suffix):
            return mode
    return "w"


class TarProvider(ArchiveProvider):
    def __init__(self, buffer_size: int = 1024 * 1024) -> None:
        self.buffer_size = buffer_size

    def get_id(self) -> str:
        return "tar"

    def supported_extensions(self) -> tuple[str, ...]:
        return tuple(suffix for suffix, _mode in _WRITE_MODES)

    def _open(self, archive: Path) -> tarfile.TarFile:
        try:
            return tarfile.open(archive, "r:*")
        except tarfile.TarError as exc:
            raise JobFatalError(f"{archive}: not a valid tar archive", cause=exc, path=str(archive)) from exc

    def list(self, archive: Path) -> list[ArchiveEntry]:
        with self._open(archive) as tf:
            return [ArchiveEntry(m.name, m.size, float(m.mtime), m.isdir()) for m in tf.getmembers()]

    def extract(self, archive: Path, dest_dir: Path, ctx: OperationContext) -> None:
        with self._open(archive) as tf:
            members = tf.getmembers()
            files = [m for m in members if m.isfile()]
            ctx.set_totals(len(files), sum(m.size for m in files))
            for member in members:
                ctx.checkpoint()
                try:
                    target = safe_member_path(dest_dir, member.name)
                except PerFileError as err:
                    ctx.record_error(err)
                    continue
                if member.isdir():
                    try:
                        target.mkdir(parents=True, exist_ok=True)
                    except OSError as exc:
                        ctx.fail_os(exc, target)
                    continue
                if not member.isfile():
                    # Links and devices are not unpacked.
                    ctx.skip(Path(member.name))
                    continue
                ctx.begin_file(target)
                try:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    fin = tf.extractfile(member)
                    if fin is None:
                        raise PerFileError(f"{member.name}: cannot read entry", path=member.name)
                    with fin, open(target, "wb") as fout:
                        copy_stream(fin, fout, ctx, buffer_size=self.buffer_size, check_cancel=True)
                    os.utime(target, (member.mtime, member.mtime))
                except PerFileError as err:
                    remove_quietly(target)
                    ctx.record_error(err)
                    continue
                except OSError as exc:
                    remove_quietly(target)
                    ctx.fail_os(exc, target)
                    continue
                except BaseException:
                    remove_quietly(target)
                    raise
                ctx.file_done("Extracted", Path(member.name), target)

    def compress(self, sources: list[Path], archive: Path, ctx: OperationContext) -> None:
        entries = list(iter_sources(sources))
        files = [p for p, _a, is_dir in entries if not is_dir]
        ctx.set_totals(len(files), sum(p.stat().st_size for p in files if p.exists()))
        with tarfile.open(archive, write_mode_for(archive)) as tf:
            for path, arcname, is_dir in entries:
                ctx.checkpoint()
                if is_dir:
                    tf.add(path, arcname=arcname, recursive=False)
                    continue
                ctx.begin_file(path)
                try:
                    info = tf.gettarinfo(str(path), arcname=arcname)
                    if info.isfile():
                        with open(path, "rb") as fin:
                            tf.addfile(info, ProgressReader(fin, ctx))  # type: ignore[arg-type]
                    else:
                        tf.addfile(info)
                except OSError as exc:
                    ctx.fail_os(exc, path)
                    continue
                ctx.file_done("Compressed", path, archive)
