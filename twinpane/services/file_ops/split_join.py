"""Split a file into numbered parts and join them back.

Part names are ``<name><ext>.NNN`` (zero padded, first index configurable).
Join also accepts ``<name><ext>.partNNN``. Both directions stream in chunks
and check for cancellation between chunks, so one huge file stays cancellable.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from twinpane.config import DEFAULT_SPLIT_FIRST_INDEX, DEFAULT_SPLIT_INDEX_WIDTH
from twinpane.core.errors import CancelledError, JobFatalError, ValidationError
from twinpane.core.jobs.models import CollisionAction
from twinpane.services.file_ops.common import OperationContext, copy_stream, remove_path, remove_quietly

log = logging.getLogger(__name__)

PART_RE = re.compile(r"^(?P<base>.+)\.(?:part)?(?P<num>\d+)$", re.IGNORECASE)


def part_name(base: str, index: int, width: int = DEFAULT_SPLIT_INDEX_WIDTH) -> str:
    return f"{base}.{index:0{width}d}"


def parse_part(path: Path) -> tuple[str, int] | None:
    m = PART_RE.match(path.name)
    if not m:
        return None
    return m.group("base"), int(m.group("num"))


def split_file(
    source: Path,
    part_size: int,
    dest_dir: Path,
    ctx: OperationContext,
    *,
    buffer_size: int,
    index_width: int = DEFAULT_SPLIT_INDEX_WIDTH,
    first_index: int = DEFAULT_SPLIT_FIRST_INDEX,
) -> list[Path]:
    if part_size <= 0:
        raise ValidationError("Part size must be greater than zero")
    if not dest_dir.is_dir():
        raise JobFatalError(f"Destination folder does not exist: {dest_dir}", path=str(dest_dir))

    try:
        total = os.stat(source).st_size
    except OSError as exc:
        ctx.fail_os(exc, source)
        return []
    # A zero-byte file still produces one (empty) part.
    count = max(1, -(-total // part_size))
    ctx.set_totals(count, total)

    parts: list[Path] = []
    current: Path | None = None
    try:
        with open(source, "rb") as fin:
            for i in range(count):
                ctx.checkpoint()
                current = dest_dir / part_name(source.name, first_index + i, index_width)
                ctx.begin_file(current)
                with open(current, "wb") as fout:
                    copy_stream(
                        fin, fout, ctx, buffer_size=buffer_size, limit=part_size, check_cancel=True
                    )
                parts.append(current)
                current = None
                ctx.file_done("Created", parts[-1])
    except CancelledError:
        # A truncated part would join into a corrupt file.
        if current is not None:
            remove_quietly(current)
        raise
    except OSError as exc:
        if current is not None:
            remove_quietly(current)
        ctx.fail_os(exc, current or source)
        return parts
    ctx.extra["parts"] = [str(p) for p in parts]
    return parts


def discover_parts(first: Path, first_index: int = DEFAULT_SPLIT_FIRST_INDEX) -> list[Path]:
    """All parts that share ``first``'s base name, ordered by number."""
    parsed = parse_part(first)
    if parsed is None:
        raise ValidationError(f"{first.name} is not a part file (expected <name>.NNN)")
    base, _num = parsed
    found: list[Path] = []
    try:
        siblings = list(first.parent.iterdir())
    except OSError as exc:
        raise ValidationError(f"Cannot list {first.parent}", cause=exc) from exc
    for p in siblings:
        info = parse_part(p)
        if info is not None and info[0] == base and p.is_file():
            found.append(p)
    return order_parts(found, first_index)


def order_parts(parts: list[Path], first_index: int = DEFAULT_SPLIT_FIRST_INDEX) -> list[Path]:
    """Sort by numeric suffix and insist on a gap-free run from ``first_index``."""
    numbered: list[tuple[int, Path]] = []
    bases: set[str] = set()
    for p in parts:
        info = parse_part(p)
        if info is None:
            raise ValidationError(f"{p.name} is not a part file (expected <name>.NNN)")
        bases.add(info[0])
        numbered.append((info[1], p))
    if not numbered:
        raise ValidationError("No parts to join")
    if len(bases) > 1:
        raise ValidationError(f"Parts belong to different files: {', '.join(sorted(bases))}")
    numbered.sort(key=lambda t: t[0])
    expected = first_index
    for num, p in numbered:
        if num != expected:
            raise ValidationError(f"Missing part {expected} (found {p.name})")
        expected += 1
    return [p for _num, p in numbered]


def join_target(parts: list[Path], destination: Path | None) -> Path:
    base = parse_part(parts[0])[0]  # type: ignore[index]
    if destination is None:
        return parts[0].parent / base
    if destination.is_dir():
        return destination / base
    return destination


def join_parts(
    parts: list[Path],
    destination: Path | None,
    ctx: OperationContext,
    *,
    buffer_size: int,
    first_index: int = DEFAULT_SPLIT_FIRST_INDEX,
) -> Path | None:
    """Concatenate parts into one file; returns it, or None if skipped."""
    if len(parts) == 1:
        parts = discover_parts(parts[0], first_index)
    else:
        parts = order_parts(parts, first_index)

    target = join_target(parts, destination)
    if not target.parent.is_dir():
        raise JobFatalError(f"Destination folder does not exist: {target.parent}", path=str(target.parent))

    sizes = []
    for p in parts:
        try:
            sizes.append(os.stat(p).st_size)
        except OSError as exc:
            raise ValidationError(f"Cannot read part {p.name}", cause=exc) from exc
    ctx.set_totals(len(parts), sum(sizes))

    while os.path.lexists(target):
        decision = ctx.resolve_collision(parts[0], target)
        if decision.action is CollisionAction.SKIP:
            ctx.skip(target, count=len(parts), nbytes=sum(sizes))
            return None
        if decision.action is CollisionAction.CANCEL_ALL:
            ctx.cancel_token.cancel()
            raise CancelledError("Operation cancelled by user")
        if decision.action is CollisionAction.RENAME:
            target = target.with_name(decision.new_name or target.name)
            continue
        remove_path(target)
        break

    try:
        with open(target, "wb") as fout:
            for part in parts:
                ctx.checkpoint()
                ctx.begin_file(part)
                with open(part, "rb") as fin:
                    copy_stream(fin, fout, ctx, buffer_size=buffer_size, check_cancel=True)
                ctx.file_done("Joined", part, target)
    except CancelledError:
        remove_quietly(target)
        raise
    except OSError as exc:
        remove_quietly(target)
        ctx.fail_os(exc, target)
        return None
    ctx.audit("Created", target)
    ctx.extra["output"] = str(target)
    return target
