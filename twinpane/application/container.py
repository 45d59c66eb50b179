"""Composition root / DI container.

The UI never builds engine services itself. This container owns the single
EventBus, JobRegistry and JobScheduler of the process and wires them lazily.
"""

from __future__ import annotations

import logging
from pathlib import Path

from twinpane.config import ENGINE_CONFIG_PATH
from twinpane.core.engine_config import EngineConfig, load_engine_config
from twinpane.core.events import EventBus, JobLogLine
from twinpane.core.jobs.dispatch import Dispatcher, QueueDispatcher
from twinpane.core.jobs.job_registry import JobRegistry
from twinpane.core.jobs.scheduler import JobScheduler
from twinpane.services.archives import ArchiveManager
from twinpane.services.file_ops.executor import FileOperationExecutor

log = logging.getLogger(__name__)


class Container:
    """Resolves engine services. Single place to swap implementations if needed."""

    def __init__(
        self,
        *,
        config: EngineConfig | None = None,
        config_path: Path | None = None,
        dispatcher: Dispatcher | None = None,
    ) -> None:
        self._config = config
        self._config_path = config_path or ENGINE_CONFIG_PATH
        self._dispatcher = dispatcher
        self._event_bus: EventBus | None = None
        self._job_registry: JobRegistry | None = None
        self._archives: ArchiveManager | None = None
        self._executor: FileOperationExecutor | None = None
        self._scheduler: JobScheduler | None = None
        self._message_log: list[str] = []

    @property
    def config(self) -> EngineConfig:
        if self._config is None:
            self._config = load_engine_config(self._config_path)
        return self._config

    @property
    def dispatcher(self) -> Dispatcher:
        """Defaults to a queue the interactive loop drains with ``run_pending()``."""
        if self._dispatcher is None:
            self._dispatcher = QueueDispatcher()
        return self._dispatcher

    @property
    def event_bus(self) -> EventBus:
        if self._event_bus is None:
            self._event_bus = EventBus()
        return self._event_bus

    @property
    def job_registry(self) -> JobRegistry:
        if self._job_registry is None:
            self._job_registry = JobRegistry(max_history=self.config.max_history)
        return self._job_registry

    @property
    def archives(self) -> ArchiveManager:
        if self._archives is None:
            self._archives = ArchiveManager.with_defaults(self.config.buffer_size)
        return self._archives

    @property
    def executor(self) -> FileOperationExecutor:
        if self._executor is None:
            self._executor = FileOperationExecutor.from_config(self.config, self.archives)
        return self._executor

    @property
    def scheduler(self) -> JobScheduler:
        """Shared job scheduler (bounded thread pool) for background file jobs."""
        if self._scheduler is None:
            self._scheduler = JobScheduler.from_config(
                self.config,
                self.job_registry,
                self.executor,
                event_bus=self.event_bus,
                dispatcher=self.dispatcher,
            )
        return self._scheduler

    @property
    def message_log(self) -> list[str]:
        """Audit lines of all jobs, appended on the interactive thread."""
        return self._message_log

    def attach_message_log(self) -> None:
        self.event_bus.subscribe(
            JobLogLine, lambda e: self._message_log.append(e.line), dispatcher=self.dispatcher
        )

    def shutdown(self, *, wait: bool = True) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=wait)
        self.event_bus.clear()
        log.debug("Container shut down")
