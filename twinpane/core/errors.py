"""Shared error types.

Per-file errors are recorded and the job goes on; job-fatal errors abort the
rest of one job. None of these cross the engine boundary: the scheduler turns
them into state transitions and an ``OperationResult``.
"""

from __future__ import annotations

import errno
from dataclasses import dataclass


@dataclass(eq=False)
class AppError(Exception):
    """Base error for engine-level failures."""

    message: str
    cause: Exception | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.cause is None:
            return self.message
        return f"{self.message} (cause: {self.cause})"


class ValidationError(AppError):
    """Invalid job spec or configuration."""


class InvalidTransitionError(AppError):
    """Job state machine rule violation."""


class UnknownJobError(AppError):
    """No job with the given id is registered."""


class UnsupportedArchiveError(AppError):
    """No archive provider handles the file extension."""


@dataclass(eq=False)
class PerFileError(AppError):
    """Skippable failure on one entry (access denied, in use, bad name)."""

    path: str = ""


@dataclass(eq=False)
class JobFatalError(AppError):
    """Failure that makes the rest of the job pointless (disk full, volume gone)."""

    path: str = ""


class CancelledError(AppError):
    """User-initiated cancellation observed at a checkpoint."""


# errno values that mean "stop the whole job", not "skip this file".
FATAL_ERRNOS = frozenset(
    code
    for code in (
        getattr(errno, "ENOSPC", None),
        getattr(errno, "EDQUOT", None),
        getattr(errno, "EROFS", None),
        getattr(errno, "ENODEV", None),
        getattr(errno, "ENXIO", None),
        getattr(errno, "EIO", None),
    )
    if code is not None
)


def classify_os_error(exc: OSError, path: str) -> PerFileError | JobFatalError:
    """Map an ``OSError`` raised on ``path`` to the engine taxonomy."""
    reason = exc.strerror or str(exc)
    if exc.errno in FATAL_ERRNOS:
        return JobFatalError(f"{path}: {reason}", cause=exc, path=path)
    return PerFileError(f"{path}: {reason}", cause=exc, path=path)
