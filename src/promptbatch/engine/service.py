# src/promptbatch/engine/service.py
"""Task service: the control surface used by UIs and transports.

One active job per process. start_task() validates and resolves the
task synchronously, then runs the batch loop on a background thread;
the other operations are safe to call from any thread.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import httpx
import structlog

from promptbatch.contracts.errors import TaskAlreadyRunningError, TaskNotFoundError
from promptbatch.contracts.events import ProgressObserver
from promptbatch.contracts.results import RunSummary
from promptbatch.core.checkpoint import progress_payload
from promptbatch.core.config import (
    AgentApiConfig,
    BatchSettings,
    LLMApiConfig,
    ProcessingSettings,
    PromptConfig,
    parse_api_config,
    parse_prompt_config,
)
from promptbatch.core.retention import PurgeResult
from promptbatch.core.tasks import TaskRegistry
from promptbatch.engine.orchestrator import BatchOrchestrator, ProviderFactory, RunRequest
from promptbatch.plugins.llm import create_provider

logger = structlog.get_logger(__name__)


class TaskService:
    """Start, observe and control batch tasks.

    Example:
        service = TaskService(ProcessingSettings(batch_size=10), observer=push_to_ui)
        task_id = service.start_task(path, [0, 2], api_config, prompt_config)
        service.pause_task(task_id)
        service.resume_task(task_id)
        service.wait()
    """

    def __init__(
        self,
        processing: ProcessingSettings | None = None,
        *,
        observer: ProgressObserver | None = None,
        provider_factory: ProviderFactory = create_provider,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._processing = processing or ProcessingSettings()
        self._observer = observer
        self._provider_factory = provider_factory
        self._http_client = http_client
        self._sleep = sleep
        self._registry = TaskRegistry(
            self._processing.output_dir,
            identity=self._processing.task_identity,
        )
        self._lock = threading.Lock()
        self._active: BatchOrchestrator | None = None
        self._thread: threading.Thread | None = None
        self._last_summary: RunSummary | None = None
        self._last_error: BaseException | None = None

    @property
    def registry(self) -> TaskRegistry:
        return self._registry

    @property
    def last_summary(self) -> RunSummary | None:
        return self._last_summary

    @property
    def last_error(self) -> BaseException | None:
        return self._last_error

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def active_task_id(self) -> str | None:
        if self._active is None or not self.is_running():
            return None
        return self._active.task_id

    def start_task(
        self,
        data_file: Path | str,
        selected_fields: Sequence[int],
        api_config: LLMApiConfig | AgentApiConfig | dict[str, Any],
        prompt_config: PromptConfig | dict[str, Any],
        *,
        start_pos: int = 0,
        end_pos: int | None = None,
    ) -> str:
        """Resolve (resume or create) a task and start it in the background.

        Returns:
            The task id.

        Raises:
            TaskAlreadyRunningError: Another task is running.
            ConfigurationError, InputValidationError, DataSourceError:
                Raised before any task is created or resumed.
        """
        if isinstance(api_config, dict):
            api_config = parse_api_config(api_config)
        if isinstance(prompt_config, dict):
            prompt_config = parse_prompt_config(prompt_config)
        settings = BatchSettings(
            api_config=api_config,
            prompt_config=prompt_config,
            processing=self._processing,
        )

        with self._lock:
            if self.is_running():
                raise TaskAlreadyRunningError(
                    f"Task {self.active_task_id()} is still running; stop it first"
                )
            orchestrator = BatchOrchestrator(
                settings,
                observer=self._observer,
                registry=self._registry,
                provider_factory=self._provider_factory,
                http_client=self._http_client,
                sleep=self._sleep,
            )
            task = orchestrator.prepare(
                RunRequest(
                    data_file=Path(data_file),
                    selected_fields=list(selected_fields),
                    start_pos=start_pos,
                    end_pos=end_pos,
                )
            )
            self._active = orchestrator
            self._last_summary = None
            self._last_error = None
            self._thread = threading.Thread(
                target=self._run_active,
                args=(orchestrator,),
                name=f"promptbatch-{task.id}",
                daemon=True,
            )
            self._thread.start()
        logger.info("task_started", task_id=task.id)
        return task.id

    def _run_active(self, orchestrator: BatchOrchestrator) -> None:
        try:
            self._last_summary = orchestrator.execute()
        except Exception as e:
            # Already marked error and reported as a failed event
            self._last_error = e

    def wait(self, timeout: float | None = None) -> RunSummary | None:
        """Block until the active run ends; returns its summary if it finished."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        return self._last_summary

    def _active_for(self, task_id: str) -> BatchOrchestrator | None:
        orchestrator = self._active
        if orchestrator is not None and orchestrator.task_id == task_id and self.is_running():
            return orchestrator
        return None

    def get_task_status(self, task_id: str) -> dict[str, Any] | None:
        """Progress snapshot, live for the running task, from disk otherwise.

        Returns None when the task is unknown or has no progress yet.
        """
        orchestrator = self._active
        if orchestrator is not None and orchestrator.task_id == task_id:
            tracker = orchestrator.tracker
            if tracker is not None:
                return tracker.get_progress()
        try:
            progress = self._registry.get_task_progress(task_id)
        except TaskNotFoundError:
            return None
        if progress is None:
            return None
        return progress_payload(progress, progress.last_update_time)

    def pause_task(self, task_id: str) -> bool:
        """Request a pause. False if the task is not running."""
        orchestrator = self._active_for(task_id)
        if orchestrator is None:
            return False
        orchestrator.pause()
        logger.info("pause_requested", task_id=task_id)
        return True

    def resume_task(self, task_id: str) -> bool:
        """Lift a pause. False if the task is not running."""
        orchestrator = self._active_for(task_id)
        if orchestrator is None:
            return False
        orchestrator.resume()
        logger.info("resume_requested", task_id=task_id)
        return True

    def stop_task(self, task_id: str) -> bool:
        """Request a stop. False if the task is not running."""
        orchestrator = self._active_for(task_id)
        if orchestrator is None:
            return False
        orchestrator.stop()
        logger.info("stop_requested", task_id=task_id)
        return True

    def list_tasks(self) -> list[dict[str, Any]]:
        return self._registry.list_tasks()

    def cleanup_tasks(self, max_age_days: float | None = None) -> PurgeResult:
        """Delete tasks older than max_age_days (default: retention_days).

        The running task is never deleted.
        """
        days = self._processing.retention_days if max_age_days is None else max_age_days
        active = self.active_task_id()
        return self._registry.cleanup_old_tasks(days, exclude=[active] if active else [])
