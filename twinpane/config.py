"""Engine defaults and constants.

Values here are the built-in defaults; ``twinpane.core.engine_config`` lets a
YAML file override them at startup.
"""

from pathlib import Path

# Base paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent
ENGINE_CONFIG_PATH = PROJECT_ROOT / "twinpane.yaml"

# Scheduling
DEFAULT_MAX_SIMULTANEOUS_JOBS = 4
DEFAULT_PROGRESS_INTERVAL_MS = 300  # task panel refresh rate
DEFAULT_MAX_HISTORY = 200  # finalized jobs kept in the registry

# Streaming I/O
DEFAULT_BUFFER_SIZE = 1024 * 1024  # 1 MiB, good enough for HDD/SSD/USB media
MIN_BUFFER_SIZE = 4 * 1024

# Split/Join naming: <name>.001, <name>.002, ...
DEFAULT_SPLIT_INDEX_WIDTH = 3
DEFAULT_SPLIT_FIRST_INDEX = 1

# Compare / size scan
DEFAULT_TIMESTAMP_TOLERANCE_SEC = 2.0  # FAT stores mtime with 2 s resolution
DEFAULT_SIZE_SCAN_REPORT_INTERVAL_MS = 500

# Completion message shows only the first few errors; the rest stay on the job.
MAX_ERRORS_IN_MESSAGE = 3
