from __future__ import annotations

import os
import stat
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from twinpane.config import MAX_ERRORS_IN_MESSAGE
from twinpane.core.errors import ValidationError


class JobKind(str, Enum):
    COPY = "copy"
    MOVE = "move"
    DELETE = "delete"
    SPLIT = "split"
    JOIN = "join"
    COMPARE = "compare"
    SIZE_SCAN = "size_scan"
    EXTRACT = "extract"
    COMPRESS = "compress"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title().replace(" ", "")


class JobState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED})

ALLOWED_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.QUEUED: frozenset({JobState.RUNNING, JobState.CANCELLED}),
    JobState.RUNNING: frozenset(
        {JobState.PAUSED, JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED}
    ),
    JobState.PAUSED: frozenset({JobState.RUNNING, JobState.CANCELLED}),
    JobState.COMPLETED: frozenset(),
    JobState.FAILED: frozenset(),
    JobState.CANCELLED: frozenset(),
}


class CompareCriteria(str, Enum):
    SIZE = "size"
    TIMESTAMP = "timestamp"
    NAME = "name"


class CollisionAction(str, Enum):
    SKIP = "skip"
    OVERWRITE = "overwrite"
    RENAME = "rename"
    CANCEL_ALL = "cancel_all"


@dataclass(frozen=True, slots=True)
class FileEntry:
    """Metadata of one file-system entry as seen by a pane."""

    path: Path
    size: int = 0
    mtime: float = 0.0
    is_dir: bool = False

    @property
    def name(self) -> str:
        return self.path.name

    @classmethod
    def from_path(cls, path: Path | str) -> FileEntry:
        p = Path(path)
        st = os.lstat(p)
        is_dir = stat.S_ISDIR(st.st_mode)
        return cls(path=p, size=0 if is_dir else st.st_size, mtime=st.st_mtime, is_dir=is_dir)


@dataclass(frozen=True, slots=True)
class CollisionRequest:
    job_id: str
    source: FileEntry
    destination: FileEntry

    def describe(self) -> str:
        return f"{self.destination.path} already exists"


@dataclass(frozen=True, slots=True)
class CollisionDecision:
    action: CollisionAction
    new_name: str | None = None
    apply_to_all: bool = False

    def __post_init__(self) -> None:
        if self.action is CollisionAction.RENAME:
            name = (self.new_name or "").strip()
            if not name or name in {".", ".."} or "/" in name or os.sep in name:
                raise ValidationError(f"Invalid rename target: {self.new_name!r}")

    @property
    def is_sticky(self) -> bool:
        # Renaming every remaining item to one name makes no sense.
        return self.apply_to_all and self.action in (CollisionAction.SKIP, CollisionAction.OVERWRITE)

    @classmethod
    def skip(cls, *, apply_to_all: bool = False) -> CollisionDecision:
        return cls(CollisionAction.SKIP, apply_to_all=apply_to_all)

    @classmethod
    def overwrite(cls, *, apply_to_all: bool = False) -> CollisionDecision:
        return cls(CollisionAction.OVERWRITE, apply_to_all=apply_to_all)

    @classmethod
    def rename(cls, new_name: str) -> CollisionDecision:
        return cls(CollisionAction.RENAME, new_name=new_name)

    @classmethod
    def cancel_all(cls) -> CollisionDecision:
        return cls(CollisionAction.CANCEL_ALL)


@dataclass(frozen=True, slots=True)
class ProgressSnapshot:
    job_id: str
    current_file: str = ""
    file_index: int = 0
    files_total: int | None = None  # None -> indeterminate
    files_done: int = 0
    bytes_done: int = 0
    bytes_total: int | None = None
    timestamp: float = field(default_factory=time.monotonic)
    final: bool = False

    @property
    def indeterminate(self) -> bool:
        return self.files_total is None and self.bytes_total is None

    @property
    def percent(self) -> float | None:
        if self.bytes_total:
            return min(100.0, self.bytes_done * 100.0 / self.bytes_total)
        if self.files_total:
            return min(100.0, self.files_done * 100.0 / self.files_total)
        if self.final and not self.indeterminate:
            return 100.0
        return None


@dataclass(slots=True)
class OperationResult:
    success: bool
    message: str = ""
    files_processed: int = 0
    files_skipped: int = 0
    errors: list[str] = field(default_factory=list)
    duration_sec: float = 0.0
    extra: dict[str, Any] = field(default_factory=dict)

    def completion_message(self, max_errors: int = MAX_ERRORS_IN_MESSAGE) -> str:
        """User-facing line: counts plus the first few error descriptions."""
        text = f"{self.message} (processed {self.files_processed}, skipped {self.files_skipped})"
        if self.errors:
            shown = "; ".join(self.errors[:max_errors])
            more = len(self.errors) - max_errors
            text += f". Errors: {shown}"
            if more > 0:
                text += f" (+{more} more)"
        return text


def _paths(values: Iterable[Path | str]) -> tuple[Path, ...]:
    return tuple(Path(v) for v in values)


@dataclass(frozen=True, slots=True)
class JobSpec:
    """What a command asks the engine to do. Selection is the caller's job."""

    kind: JobKind
    sources: tuple[Path, ...]
    destination: Path | None = None
    name: str = ""
    description: str = ""
    tab_id: int = -1
    tab_name: str = ""
    part_size: int | None = None
    targets: tuple[Path, ...] = ()
    criteria: CompareCriteria | None = None
    tolerance_sec: float | None = None
    on_collision: CollisionDecision | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", JobKind(self.kind))
        object.__setattr__(self, "sources", _paths(self.sources))
        object.__setattr__(self, "targets", _paths(self.targets))
        if self.destination is not None:
            object.__setattr__(self, "destination", Path(self.destination))

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        if len(self.sources) == 1:
            return f"{self.kind.label} {self.sources[0].name}"
        return f"{self.kind.label} {len(self.sources)} items"

    def validate(self) -> None:
        """Reject specs that are caller bugs rather than runtime failures."""
        if not self.sources:
            raise ValidationError(f"{self.kind.label} job needs at least one source")
        if self.kind in (JobKind.COPY, JobKind.MOVE, JobKind.EXTRACT, JobKind.COMPRESS):
            if self.destination is None:
                raise ValidationError(f"{self.kind.label} job needs a destination")
        if self.kind is JobKind.SPLIT:
            if len(self.sources) != 1:
                raise ValidationError("Split works on exactly one file")
            if self.part_size is None or self.part_size <= 0:
                raise ValidationError("Part size must be greater than zero")
        if self.on_collision is not None and self.on_collision.action is CollisionAction.RENAME:
            raise ValidationError("Rename cannot be chosen ahead of time for a whole job")
        if self.kind is JobKind.EXTRACT and len(self.sources) != 1:
            raise ValidationError("Extract works on exactly one archive")
        if self.kind is JobKind.COMPARE:
            if self.criteria is None:
                raise ValidationError("Compare job needs criteria")
            if self.tolerance_sec is not None and self.tolerance_sec < 0:
                raise ValidationError("Timestamp tolerance must not be negative")
