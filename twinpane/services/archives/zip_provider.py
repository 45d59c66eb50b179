from __future__ import annotations

import os
import time
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING

from twinpane.core.errors import JobFatalError, PerFileError
from twinpane.services.archives.base import ArchiveEntry, ArchiveProvider, iter_sources, safe_member_path
from twinpane.services.file_ops.common import copy_stream, remove_quietly

if TYPE_CHECKING:
    from twinpane.services.file_ops.common import OperationContext


def _zip_mtime(info: zipfile.ZipInfo) -> float:
    return time.mktime(info.date_time + (0, 0, -1))


class ZipProvider(ArchiveProvider):
    def __init__(self, buffer_size: int = 1024 * 1024) -> None:
        self.buffer_size = buffer_size

    def get_id(self) -> str:
        return "zip"

    def supported_extensions(self) -> tuple[str, ...]:
        return (".zip",)

    def _open(self, archive: Path) -> zipfile.ZipFile:
        try:
            return zipfile.ZipFile(archive)
        except zipfile.BadZipFile as exc:
            raise JobFatalError(f"{archive}: not a valid zip archive", cause=exc, path=str(archive)) from exc

    def list(self, archive: Path) -> list[ArchiveEntry]:
        with self._open(archive) as zf:
            return [
                ArchiveEntry(i.filename.rstrip("/"), i.file_size, _zip_mtime(i), i.is_dir())
                for i in zf.infolist()
            ]

    def extract(self, archive: Path, dest_dir: Path, ctx: OperationContext) -> None:
        with self._open(archive) as zf:
            infos = zf.infolist()
            files = [i for i in infos if not i.is_dir()]
            ctx.set_totals(len(files), sum(i.file_size for i in files))
            for info in infos:
                ctx.checkpoint()
                try:
                    target = safe_member_path(dest_dir, info.filename)
                except PerFileError as err:
                    ctx.record_error(err)
                    continue
                if info.is_dir():
                    try:
                        target.mkdir(parents=True, exist_ok=True)
                    except OSError as exc:
                        ctx.fail_os(exc, target)
                    continue
                ctx.begin_file(target)
                try:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with zf.open(info) as fin, open(target, "wb") as fout:
                        copy_stream(fin, fout, ctx, buffer_size=self.buffer_size, check_cancel=True)
                    mtime = _zip_mtime(info)
                    os.utime(target, (mtime, mtime))
                except OSError as exc:
                    remove_quietly(target)
                    ctx.fail_os(exc, target)
                    continue
                except BaseException:
                    remove_quietly(target)
                    raise
                ctx.file_done("Extracted", Path(info.filename), target)

    def compress(self, sources: list[Path], archive: Path, ctx: OperationContext) -> None:
        entries = list(iter_sources(sources))
        files = [p for p, _a, is_dir in entries if not is_dir]
        ctx.set_totals(len(files), sum(p.stat().st_size for p in files if p.exists()))
        with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for path, arcname, is_dir in entries:
                ctx.checkpoint()
                if is_dir:
                    zf.write(path, arcname=arcname + "/")
                    continue
                ctx.begin_file(path)
                if path.exists() and not path.is_file():
                    ctx.record_error(PerFileError(f"{path}: special file skipped", path=str(path)))
                    continue
                try:
                    info = zipfile.ZipInfo.from_file(path, arcname=arcname)
                    info.compress_type = zipfile.ZIP_DEFLATED
                    zip64 = info.file_size >= zipfile.ZIP64_LIMIT
                    with open(path, "rb") as fin, zf.open(info, "w", force_zip64=zip64) as fout:
                        copy_stream(fin, fout, ctx, buffer_size=self.buffer_size, check_cancel=True)
                except OSError as exc:
                    ctx.fail_os(exc, path)
                    continue
                ctx.file_done("Compressed", path, archive)
