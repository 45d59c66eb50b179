"""
Headless entry point: run one background file job on a Qt event loop.

Run: python main.py copy SRC... --to DEST
     python main.py split FILE --part-size 10M
     python main.py join FILE.001 --to OUT
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from twinpane.application.container import Container
from twinpane.core.errors import ValidationError
from twinpane.core.events import JobFinalized
from twinpane.core.jobs.models import (
    CollisionDecision,
    CollisionRequest,
    CompareCriteria,
    JobKind,
    JobSpec,
    ProgressSnapshot,
)
from twinpane.core.observability.logging_config import setup_logging
from twinpane.ui.infrastructure import JobSignals, QtDispatcher, create_core_application

_SIZE_SUFFIXES = {"k": 1024, "m": 1024**2, "g": 1024**3}


def parse_size(text: str) -> int:
    """``10M`` -> 10485760. Plain numbers are bytes."""
    t = text.strip().lower().rstrip("b")
    mult = _SIZE_SUFFIXES.get(t[-1:], 1)
    if mult != 1:
        t = t[:-1]
    try:
        return int(float(t) * mult)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid size: {text}") from None


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="twinpane", description="Run a background file job.")
    p.add_argument("--log-level", default=None)
    p.add_argument("--config", type=Path, default=None, help="engine YAML config")
    p.add_argument(
        "--on-collision",
        choices=("skip", "overwrite"),
        default=None,
        help="answer for every existing destination (default: skip each one, report it, exit 1)",
    )
    sub = p.add_subparsers(dest="command", required=True)

    for name in ("copy", "move", "compress"):
        sp = sub.add_parser(name)
        sp.add_argument("sources", nargs="+", type=Path)
        sp.add_argument("--to", dest="destination", type=Path, required=True)

    sp = sub.add_parser("delete")
    sp.add_argument("sources", nargs="+", type=Path)

    sp = sub.add_parser("split")
    sp.add_argument("sources", nargs=1, type=Path)
    sp.add_argument("--part-size", type=parse_size, required=True)
    sp.add_argument("--to", dest="destination", type=Path, default=None)

    sp = sub.add_parser("join")
    sp.add_argument("sources", nargs="+", type=Path)
    sp.add_argument("--to", dest="destination", type=Path, default=None)

    sp = sub.add_parser("extract")
    sp.add_argument("sources", nargs=1, type=Path)
    sp.add_argument("--to", dest="destination", type=Path, required=True)

    sp = sub.add_parser("size")
    sp.add_argument("sources", nargs="+", type=Path)

    sp = sub.add_parser("compare")
    sp.add_argument("sources", nargs="+", type=Path)
    sp.add_argument("--with", dest="targets", nargs="+", type=Path, required=True)
    sp.add_argument("--by", choices=[c.value for c in CompareCriteria], default="name")
    sp.add_argument("--tolerance", type=float, default=None)
    return p


_KINDS = {
    "copy": JobKind.COPY,
    "move": JobKind.MOVE,
    "delete": JobKind.DELETE,
    "split": JobKind.SPLIT,
    "join": JobKind.JOIN,
    "compare": JobKind.COMPARE,
    "size": JobKind.SIZE_SCAN,
    "extract": JobKind.EXTRACT,
    "compress": JobKind.COMPRESS,
}


def spec_from_args(args: argparse.Namespace) -> JobSpec:
    on_collision = None
    if args.on_collision == "skip":
        on_collision = CollisionDecision.skip(apply_to_all=True)
    elif args.on_collision == "overwrite":
        on_collision = CollisionDecision.overwrite(apply_to_all=True)
    return JobSpec(
        kind=_KINDS[args.command],
        sources=tuple(args.sources),
        destination=getattr(args, "destination", None),
        part_size=getattr(args, "part_size", None),
        targets=tuple(getattr(args, "targets", ()) or ()),
        criteria=CompareCriteria(args.by) if args.command == "compare" else None,
        tolerance_sec=getattr(args, "tolerance", None),
        on_collision=on_collision,
    )


def _print_progress(_job_id: str, snap: ProgressSnapshot) -> None:
    pct = snap.percent
    if pct is None:
        line = f"{snap.files_done} files, {snap.bytes_done} bytes"
    else:
        line = f"{pct:5.1f}%  {snap.current_file}"
    print(f"\r{line[:100]:<100}", end="", file=sys.stderr, flush=True)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level)
    app = create_core_application()

    container = Container(config_path=args.config, dispatcher=QtDispatcher())
    container.attach_message_log()
    signals = JobSignals()
    signals.bind(container.event_bus)
    signals.progress.connect(_print_progress)

    # Slots run on this thread once exec() starts, after submit() has returned.
    outcome: dict[str, object] = {"job_id": None, "code": 1, "collisions": 0}

    def on_collision(job_id: str, request: CollisionRequest) -> None:
        if job_id != outcome["job_id"]:
            return
        print(f"\nerror: {request.describe()}, skipped", file=sys.stderr)
        outcome["collisions"] = int(outcome["collisions"]) + 1  # type: ignore[call-overload]
        container.scheduler.resolve_collision(job_id, CollisionDecision.skip())

    def on_finished(job_id: str, event: JobFinalized) -> None:
        if job_id != outcome["job_id"]:
            return
        print(file=sys.stderr)
        print(event.summary)
        print(event.result.completion_message())
        for key in ("left_matches", "right_matches", "parts", "output", "archive"):
            if key in event.result.extra:
                print(f"{key}: {event.result.extra[key]}")
        if "size" in event.result.extra:
            extra = event.result.extra
            print(f"size: {extra['size']} bytes, files: {extra['files']}, folders: {extra['dirs']}")
        outcome["code"] = 0 if event.result.success and not outcome["collisions"] else 1
        app.quit()

    signals.finished.connect(on_finished)
    if args.on_collision is None:
        # A collision parks the worker until someone answers it.
        signals.collision.connect(on_collision)
    try:
        handle = container.scheduler.submit(spec_from_args(args))
    except ValidationError as e:
        print(f"error: {e.message}", file=sys.stderr)
        container.shutdown(wait=False)
        return 2
    outcome["job_id"] = handle.job_id

    try:
        app.exec()
    finally:
        signals.unbind()
        container.shutdown(wait=True)
    return int(outcome["code"])  # type: ignore[call-overload]


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit(130)
