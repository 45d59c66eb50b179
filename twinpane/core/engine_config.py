"""Engine configuration (YAML).

The file manager's configuration layer owns the user-facing settings; the
engine reads its own section once at startup. Raw data is normalized through
a typed dataclass:

- missing keys are filled with defaults
- basic type coercion is applied (e.g. "4" -> 4)
- out-of-range values are clamped
- unknown keys are ignored
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import yaml

from twinpane.config import (
    DEFAULT_BUFFER_SIZE,
    DEFAULT_MAX_HISTORY,
    DEFAULT_MAX_SIMULTANEOUS_JOBS,
    DEFAULT_PROGRESS_INTERVAL_MS,
    DEFAULT_SIZE_SCAN_REPORT_INTERVAL_MS,
    DEFAULT_SPLIT_FIRST_INDEX,
    DEFAULT_SPLIT_INDEX_WIDTH,
    DEFAULT_TIMESTAMP_TOLERANCE_SEC,
    ENGINE_CONFIG_PATH,
    MIN_BUFFER_SIZE,
)

log = logging.getLogger(__name__)


def _as_int(value: Any, default: int) -> int:
    try:
        if isinstance(value, bool):
            return default
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float) -> float:
    try:
        if isinstance(value, bool):
            return default
        return float(value)
    except (TypeError, ValueError):
        return default


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


@dataclass(frozen=True, slots=True)
class EngineConfig:
    max_simultaneous_jobs: int = DEFAULT_MAX_SIMULTANEOUS_JOBS
    progress_interval_ms: int = DEFAULT_PROGRESS_INTERVAL_MS
    buffer_size: int = DEFAULT_BUFFER_SIZE
    split_index_width: int = DEFAULT_SPLIT_INDEX_WIDTH
    split_first_index: int = DEFAULT_SPLIT_FIRST_INDEX
    timestamp_tolerance_sec: float = DEFAULT_TIMESTAMP_TOLERANCE_SEC
    size_scan_report_interval_ms: int = DEFAULT_SIZE_SCAN_REPORT_INTERVAL_MS
    max_history: int = DEFAULT_MAX_HISTORY

    @property
    def progress_interval_sec(self) -> float:
        return self.progress_interval_ms / 1000.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> EngineConfig:
        m = _mapping(data)
        # Accept both a bare section and the full file with a "jobs" section.
        if "jobs" in m and isinstance(m["jobs"], Mapping):
            m = m["jobs"]
        return cls(
            max_simultaneous_jobs=int(
                _clamp(_as_int(m.get("max_simultaneous_jobs"), DEFAULT_MAX_SIMULTANEOUS_JOBS), 1, 64)
            ),
            progress_interval_ms=int(
                _clamp(_as_int(m.get("progress_interval_ms"), DEFAULT_PROGRESS_INTERVAL_MS), 0, 10_000)
            ),
            buffer_size=max(MIN_BUFFER_SIZE, _as_int(m.get("buffer_size"), DEFAULT_BUFFER_SIZE)),
            split_index_width=int(
                _clamp(_as_int(m.get("split_index_width"), DEFAULT_SPLIT_INDEX_WIDTH), 1, 9)
            ),
            split_first_index=max(0, _as_int(m.get("split_first_index"), DEFAULT_SPLIT_FIRST_INDEX)),
            timestamp_tolerance_sec=max(
                0.0,
                _as_float(m.get("timestamp_tolerance_sec"), DEFAULT_TIMESTAMP_TOLERANCE_SEC),
            ),
            size_scan_report_interval_ms=max(
                0,
                _as_int(
                    m.get("size_scan_report_interval_ms"), DEFAULT_SIZE_SCAN_REPORT_INTERVAL_MS
                ),
            ),
            max_history=max(0, _as_int(m.get("max_history"), DEFAULT_MAX_HISTORY)),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def load_engine_config(path: Path | None = None) -> EngineConfig:
    """Load engine config from YAML; defaults if the file is missing or invalid."""
    p = path or ENGINE_CONFIG_PATH
    if not p.exists():
        return EngineConfig()
    try:
        with open(p, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, OSError):
        log.warning("Engine config %s is unreadable; using defaults", p, exc_info=True)
        return EngineConfig()
    return EngineConfig.from_dict(data)


def save_engine_config(config: EngineConfig, path: Path | None = None) -> None:
    p = path or ENGINE_CONFIG_PATH
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        yaml.safe_dump({"jobs": config.to_dict()}, f, sort_keys=False, allow_unicode=True)
