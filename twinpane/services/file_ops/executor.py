"""FileOperationExecutor: runs one JobSpec on the calling (worker) thread."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from twinpane.config import (
    DEFAULT_BUFFER_SIZE,
    DEFAULT_SIZE_SCAN_REPORT_INTERVAL_MS,
    DEFAULT_SPLIT_FIRST_INDEX,
    DEFAULT_SPLIT_INDEX_WIDTH,
    DEFAULT_TIMESTAMP_TOLERANCE_SEC,
)
from twinpane.core.engine_config import EngineConfig
from twinpane.core.errors import CancelledError, JobFatalError, ValidationError
from twinpane.core.jobs.models import CollisionAction, CompareCriteria, JobKind, JobSpec, OperationResult
from twinpane.services.archives.manager import ArchiveManager
from twinpane.services.file_ops.common import OperationContext, remove_path, remove_quietly
from twinpane.services.file_ops.compare import compare_paths
from twinpane.services.file_ops.delete import delete_items
from twinpane.services.file_ops.scan import scan_size
from twinpane.services.file_ops.split_join import join_parts, split_file
from twinpane.services.file_ops.transfer import copy_items, move_items

log = logging.getLogger(__name__)

_DONE_MESSAGES = {
    JobKind.COPY: "Copy completed",
    JobKind.MOVE: "Move completed",
    JobKind.DELETE: "Delete completed",
    JobKind.SPLIT: "Split completed",
    JobKind.JOIN: "Join completed",
    JobKind.COMPARE: "Compare completed",
    JobKind.SIZE_SCAN: "Size calculation completed",
    JobKind.EXTRACT: "Extraction completed",
    JobKind.COMPRESS: "Compression completed",
}


class FileOperationExecutor:
    """Stateless between runs: everything per-run lives in the ``OperationContext``.

    Per-file problems are recorded on the context and the run goes on;
    ``JobFatalError``, ``ValidationError`` and ``CancelledError`` propagate to
    the scheduler.
    """

    def __init__(
        self,
        archives: ArchiveManager | None = None,
        *,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        split_index_width: int = DEFAULT_SPLIT_INDEX_WIDTH,
        split_first_index: int = DEFAULT_SPLIT_FIRST_INDEX,
        timestamp_tolerance_sec: float = DEFAULT_TIMESTAMP_TOLERANCE_SEC,
        size_scan_report_interval_ms: int = DEFAULT_SIZE_SCAN_REPORT_INTERVAL_MS,
    ) -> None:
        self.archives = archives or ArchiveManager.with_defaults(buffer_size)
        self.buffer_size = buffer_size
        self.split_index_width = split_index_width
        self.split_first_index = split_first_index
        self.timestamp_tolerance_sec = timestamp_tolerance_sec
        self.size_scan_report_interval_ms = size_scan_report_interval_ms

    @classmethod
    def from_config(cls, cfg: EngineConfig, archives: ArchiveManager | None = None) -> FileOperationExecutor:
        return cls(
            archives,
            buffer_size=cfg.buffer_size,
            split_index_width=cfg.split_index_width,
            split_first_index=cfg.split_first_index,
            timestamp_tolerance_sec=cfg.timestamp_tolerance_sec,
            size_scan_report_interval_ms=cfg.size_scan_report_interval_ms,
        )

    def execute(self, spec: JobSpec, ctx: OperationContext) -> OperationResult:
        handlers = {
            JobKind.COPY: self.copy,
            JobKind.MOVE: self.move,
            JobKind.DELETE: self.delete,
            JobKind.SPLIT: self.split,
            JobKind.JOIN: self.join,
            JobKind.COMPARE: self.compare,
            JobKind.SIZE_SCAN: self.scan_size,
            JobKind.EXTRACT: self.extract,
            JobKind.COMPRESS: self.compress,
        }
        handlers[spec.kind](spec, ctx)
        ctx.checkpoint()
        message = _DONE_MESSAGES[spec.kind]
        if ctx.errors:
            message += f" with {len(ctx.errors)} error(s)"
        return ctx.build_result(message=message)

    def copy(self, spec: JobSpec, ctx: OperationContext) -> None:
        copy_items(list(spec.sources), _need_dest(spec), ctx, buffer_size=self.buffer_size)

    def move(self, spec: JobSpec, ctx: OperationContext) -> None:
        move_items(list(spec.sources), _need_dest(spec), ctx, buffer_size=self.buffer_size)

    def delete(self, spec: JobSpec, ctx: OperationContext) -> None:
        delete_items(list(spec.sources), ctx)

    def split(self, spec: JobSpec, ctx: OperationContext) -> None:
        source = spec.sources[0]
        split_file(
            source,
            spec.part_size or 0,
            spec.destination or source.parent,
            ctx,
            buffer_size=self.buffer_size,
            index_width=self.split_index_width,
            first_index=self.split_first_index,
        )

    def join(self, spec: JobSpec, ctx: OperationContext) -> None:
        join_parts(
            list(spec.sources),
            spec.destination,
            ctx,
            buffer_size=self.buffer_size,
            first_index=self.split_first_index,
        )

    def compare(self, spec: JobSpec, ctx: OperationContext) -> None:
        tolerance = self.timestamp_tolerance_sec if spec.tolerance_sec is None else spec.tolerance_sec
        compare_paths(
            list(spec.sources),
            list(spec.targets),
            spec.criteria or CompareCriteria.NAME,
            ctx,
            tolerance_sec=tolerance,
        )

    def scan_size(self, spec: JobSpec, ctx: OperationContext) -> None:
        scan_size(list(spec.sources), ctx, report_interval_ms=self.size_scan_report_interval_ms)

    def extract(self, spec: JobSpec, ctx: OperationContext) -> None:
        archive = spec.sources[0]
        provider = self.archives.provider_for(archive)
        dest = _need_dest(spec)
        if not dest.is_dir():
            raise JobFatalError(f"Destination folder does not exist: {dest}", path=str(dest))
        log.info("Extracting %s with %s provider", archive, provider.get_id(), extra={"job_id": ctx.job_id})
        provider.extract(archive, dest, ctx)

    def compress(self, spec: JobSpec, ctx: OperationContext) -> None:
        archive = _need_dest(spec)
        provider = self.archives.provider_for(archive)
        if not archive.parent.is_dir():
            raise JobFatalError(f"Destination folder does not exist: {archive.parent}", path=str(archive.parent))
        while os.path.lexists(archive):
            decision = ctx.resolve_collision(spec.sources[0], archive)
            if decision.action is CollisionAction.SKIP:
                ctx.skip(archive)
                return
            if decision.action is CollisionAction.CANCEL_ALL:
                ctx.cancel_token.cancel()
                raise CancelledError("Operation cancelled by user")
            if decision.action is CollisionAction.RENAME:
                archive = archive.with_name(decision.new_name or archive.name)
                continue
            remove_path(archive)
            break
        try:
            provider.compress(list(spec.sources), archive, ctx)
        except (CancelledError, JobFatalError):
            remove_quietly(archive)
            raise
        except OSError as exc:
            remove_quietly(archive)
            ctx.fail_os(exc, archive)
            return
        ctx.audit("Created", archive)
        ctx.extra["archive"] = str(archive)


def _need_dest(spec: JobSpec) -> Path:
    if spec.destination is None:
        raise ValidationError(f"{spec.kind.label} job needs a destination")
    return spec.destination
