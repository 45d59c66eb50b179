from __future__ import annotations

from pathlib import Path

import yaml

from twinpane.core.engine_config import EngineConfig, load_engine_config, save_engine_config
from twinpane.services.file_ops.executor import FileOperationExecutor


def test_defaults_when_file_missing(tmp_path: Path) -> None:
    cfg = load_engine_config(tmp_path / "missing.yaml")
    assert cfg == EngineConfig()
    assert cfg.max_simultaneous_jobs == 4
    assert cfg.progress_interval_sec == 0.3


def test_coercion_clamping_and_unknown_keys() -> None:
    cfg = EngineConfig.from_dict(
        {
            "jobs": {
                "max_simultaneous_jobs": "2",
                "progress_interval_ms": -50,
                "buffer_size": 10,
                "split_index_width": 99,
                "timestamp_tolerance_sec": "oops",
                "max_history": True,
                "theme": "dark",
            }
        }
    )
    assert cfg.max_simultaneous_jobs == 2
    assert cfg.progress_interval_ms == 0
    assert cfg.buffer_size == 4 * 1024
    assert cfg.split_index_width == 9
    assert cfg.timestamp_tolerance_sec == 2.0
    assert cfg.max_history == 200


def test_save_then_load(tmp_path: Path) -> None:
    path = tmp_path / "conf" / "twinpane.yaml"
    save_engine_config(EngineConfig(max_simultaneous_jobs=8, split_first_index=0), path)
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert raw["jobs"]["max_simultaneous_jobs"] == 8

    cfg = load_engine_config(path)
    assert cfg.max_simultaneous_jobs == 8
    assert cfg.split_first_index == 0


def test_broken_yaml_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("jobs: [unclosed", encoding="utf-8")
    assert load_engine_config(path) == EngineConfig()


def test_executor_picks_up_config() -> None:
    cfg = EngineConfig(buffer_size=64 * 1024, split_index_width=4, timestamp_tolerance_sec=0.0)
    ex = FileOperationExecutor.from_config(cfg)
    assert ex.buffer_size == 64 * 1024
    assert ex.split_index_width == 4
    assert ex.timestamp_tolerance_sec == 0.0
