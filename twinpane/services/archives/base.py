"""
Archive provider contract: list, extract and compress one archive format.
The manager picks a provider by file extension.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, BinaryIO

from twinpane.core.errors import PerFileError

if TYPE_CHECKING:
    from twinpane.services.file_ops.common import OperationContext


@dataclass(frozen=True, slots=True)
class ArchiveEntry:
    name: str
    size: int = 0
    mtime: float = 0.0
    is_dir: bool = False


class ArchiveProvider(ABC):
    """One archive format. Providers report through the operation context."""

    @abstractmethod
    def get_id(self) -> str:
        """Short format id (zip, tar)."""
        ...

    @abstractmethod
    def supported_extensions(self) -> tuple[str, ...]:
        """Lower-case suffixes with the leading dot, e.g. ``(".zip",)``."""
        ...

    @abstractmethod
    def list(self, archive: Path) -> list[ArchiveEntry]:
        ...

    @abstractmethod
    def extract(self, archive: Path, dest_dir: Path, ctx: OperationContext) -> None:
        """Unpack every entry under ``dest_dir``; existing files are replaced."""
        ...

    @abstractmethod
    def compress(self, sources: list[Path], archive: Path, ctx: OperationContext) -> None:
        """Write ``sources`` (recursively) into a new ``archive``."""
        ...


class ProgressReader:
    """File wrapper that reports bytes read and honours cancellation."""

    def __init__(self, raw: BinaryIO, ctx: OperationContext) -> None:
        self._raw = raw
        self._ctx = ctx

    def read(self, size: int = -1) -> bytes:
        self._ctx.checkpoint()
        data = self._raw.read(size)
        if data:
            self._ctx.advance(len(data))
        return data


def safe_member_path(dest_dir: Path, member_name: str) -> Path:
    """Resolve an archive member under ``dest_dir``; refuse names that escape it."""
    rel = PurePosixPath(member_name.replace("\\", "/"))
    if rel.is_absolute() or ".." in rel.parts:
        raise PerFileError(f"{member_name}: unsafe path in archive", path=member_name)
    target = dest_dir.joinpath(*rel.parts)
    root = os.path.realpath(dest_dir)
    if os.path.commonpath([root, os.path.realpath(target)]) != root:
        raise PerFileError(f"{member_name}: unsafe path in archive", path=member_name)
    return target


def iter_sources(sources: list[Path]):
    """Yield ``(path, arcname, is_dir)`` for everything under ``sources``, sorted."""
    for src in sources:
        base = src.parent
        if not src.is_dir() or src.is_symlink():
            yield src, src.name, False
            continue
        for root, dirnames, filenames in os.walk(src):
            dirnames.sort()
            root_path = Path(root)
            yield root_path, root_path.relative_to(base).as_posix(), True
            for fname in sorted(filenames):
                p = root_path / fname
                yield p, p.relative_to(base).as_posix(), False
