"""Copy and move of file trees."""

from __future__ import annotations

import logging
import os
import shutil
import stat
from pathlib import Path

from twinpane.core.errors import CancelledError, JobFatalError, PerFileError
from twinpane.core.jobs.models import CollisionAction
from twinpane.services.file_ops.common import (
    OperationContext,
    copy_file_contents,
    is_real_dir,
    list_dir,
    measure,
    remove_path,
    same_volume,
)

log = logging.getLogger(__name__)


def _is_inside(child: Path, parent: Path) -> bool:
    try:
        child.resolve().relative_to(parent.resolve())
    except ValueError:
        return False
    return True


class TreeTransfer:
    """One copy or move run over a list of top-level sources."""

    def __init__(self, ctx: OperationContext, *, buffer_size: int, move: bool = False) -> None:
        self.ctx = ctx
        self.buffer_size = buffer_size
        self.move = move
        self.verb = "Moved" if move else "Copied"
        self.action = "move" if move else "copy"

    def run(self, sources: list[Path], dest_dir: Path) -> None:
        if not dest_dir.is_dir():
            raise JobFatalError(f"Destination folder does not exist: {dest_dir}", path=str(dest_dir))
        files, total = measure(sources)
        self.ctx.set_totals(files, total)
        for src in sources:
            target = dest_dir / src.name
            if is_real_dir(src) and _is_inside(target, src):
                self.ctx.record_error(
                    PerFileError(f"{src}: cannot {self.action} a folder into itself", path=str(src))
                )
                continue
            if self.move and self._try_rename(src, target):
                continue
            self._transfer(src, target)

    def _try_rename(self, src: Path, target: Path) -> bool:
        """Same-volume move without a collision: one rename, no byte copying."""
        if os.path.lexists(target) or not same_volume(src, target.parent):
            return False
        self.ctx.checkpoint()
        files, total = measure([src])
        try:
            os.rename(src, target)
        except OSError:
            log.debug("Rename %s -> %s failed, copying instead", src, target, exc_info=True)
            return False
        self.ctx.current_file = str(src)
        self.ctx.bytes_done += total
        self.ctx.file_done(self.verb, src, target, count=files)
        return True

    def _transfer(self, src: Path, target: Path) -> None:
        self.ctx.checkpoint()
        try:
            st = os.lstat(src)
        except OSError as exc:
            self.ctx.fail_os(exc, src)
            return
        is_dir = stat.S_ISDIR(st.st_mode)
        try:
            claimed = self._claim(src, target, is_dir)
        except PerFileError as err:
            self.ctx.record_error(err)
            return
        except OSError as exc:
            self.ctx.fail_os(exc, target)
            return
        if claimed is None:
            files, total = measure([src])
            self.ctx.skip(src, count=files, nbytes=total)
            return
        if is_dir:
            self._transfer_dir(src, claimed)
        else:
            self._transfer_file(src, claimed)

    def _claim(self, src: Path, target: Path, is_dir: bool) -> Path | None:
        """Settle collisions for ``target``; None means skip this entry."""
        while os.path.lexists(target):
            if os.path.exists(src) and os.path.exists(target) and os.path.samefile(src, target):
                raise PerFileError(f"{src}: source and destination are the same", path=str(src))
            decision = self.ctx.resolve_collision(src, target)
            action = decision.action
            if action is CollisionAction.SKIP:
                return None
            if action is CollisionAction.CANCEL_ALL:
                self.ctx.cancel_token.cancel()
                raise CancelledError("Operation cancelled by user")
            if action is CollisionAction.RENAME:
                target = target.with_name(decision.new_name or target.name)
                continue
            # Overwrite: directories merge, anything else is replaced.
            if is_dir and is_real_dir(target):
                return target
            remove_path(target)
        return target

    def _transfer_dir(self, src: Path, target: Path) -> None:
        try:
            os.makedirs(target, exist_ok=True)
            files, dirs = list_dir(src)
        except OSError as exc:
            self.ctx.fail_os(exc, src)
            return
        for path, _st in files:
            self._transfer(path, target / path.name)
        for sub in dirs:
            self._transfer(sub, target / sub.name)
        try:
            shutil.copystat(src, target)
        except OSError:
            log.debug("copystat failed for %s", target, exc_info=True)
        if self.move:
            try:
                os.rmdir(src)
            except OSError:
                # Something inside was skipped or failed; the source stays.
                log.debug("Keeping non-empty source folder %s", src)

    def _transfer_file(self, src: Path, target: Path) -> None:
        self.ctx.begin_file(src)
        try:
            copy_file_contents(src, target, self.ctx, buffer_size=self.buffer_size)
        except PerFileError as err:
            self.ctx.record_error(err)
            return
        except OSError as exc:
            self.ctx.fail_os(exc, src)
            return
        if self.move:
            try:
                os.unlink(src)
            except OSError as exc:
                self.ctx.fail_os(exc, src)
                return
        self.ctx.file_done(self.verb, src, target)


def copy_items(sources: list[Path], dest_dir: Path, ctx: OperationContext, *, buffer_size: int) -> None:
    TreeTransfer(ctx, buffer_size=buffer_size).run(sources, dest_dir)


def move_items(sources: list[Path], dest_dir: Path, ctx: OperationContext, *, buffer_size: int) -> None:
    TreeTransfer(ctx, buffer_size=buffer_size, move=True).run(sources, dest_dir)
