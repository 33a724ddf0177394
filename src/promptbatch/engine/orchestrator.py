# src/promptbatch/engine/orchestrator.py
"""Orchestrator: batch run lifecycle management.

Coordinates:
- Input validation and task resolution (resume-or-create)
- Progress initialization or reload
- Batch loop: read, fan out to the provider, commit, report
- Pause / stop signals at batch boundaries
- Run completion and failure reporting

Run state machine:
    idle -> running -> {paused, completed, error, stopped}
    paused -> running
stopped and error are terminal for a run; a new run resumes the task.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
import structlog

from promptbatch.contracts.enums import EventType, RunState, TaskStatus
from promptbatch.contracts.errors import (
    InputValidationError,
    RetriesExhaustedError,
    TaskStateError,
)
from promptbatch.contracts.events import ProgressEvent, ProgressObserver
from promptbatch.contracts.results import RowOutcome, RowRecord, RunSummary
from promptbatch.core.checkpoint import ProgressTracker
from promptbatch.core.config import BatchSettings
from promptbatch.core.tasks import TaskInfo, TaskRegistry, config_fingerprint
from promptbatch.plugins.llm import BaseProvider, PooledExecutor, PromptTemplate, create_provider
from promptbatch.plugins.sources import TabularReader

EMPTY_CONTENT_ERROR = "Selected field content is empty"
EMPTY_RESULT_ERROR = "API call failed or returned an empty result"

ProviderFactory = Callable[..., BaseProvider]


@dataclass(frozen=True)
class RunRequest:
    """What to process: a data file, a field selection and a row window."""

    data_file: Path
    selected_fields: Sequence[int] = field(default_factory=lambda: [0])
    start_pos: int = 0
    end_pos: int | None = None

    def fields(self) -> list[int]:
        return list(self.selected_fields) or [0]


class BatchOrchestrator:
    """Drives one task from its cursor to the end of the window.

    prepare() does everything that can fail on bad input and returns
    the resolved task; execute() runs the loop. run() does both.
    pause(), resume() and stop() may be called from any thread.

    Usage:
        orchestrator = BatchOrchestrator(settings, observer=print)
        summary = orchestrator.run(RunRequest(Path("data.csv"), [0]))
    """

    def __init__(
        self,
        settings: BatchSettings,
        *,
        observer: ProgressObserver | None = None,
        registry: TaskRegistry | None = None,
        provider_factory: ProviderFactory = create_provider,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] | None = None,
        logger: Any = None,
    ) -> None:
        self._settings = settings
        self._processing = settings.processing
        self._observer = observer
        self._registry = registry or TaskRegistry(
            self._processing.output_dir,
            identity=self._processing.task_identity,
        )
        self._provider_factory = provider_factory
        self._http_client = http_client
        self._sleep = sleep
        self._log = logger or structlog.get_logger(__name__)
        self._template = PromptTemplate(settings.prompt_config)

        self._state = RunState.IDLE
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._unpaused = threading.Event()
        self._unpaused.set()

        self._task: TaskInfo | None = None
        self._tracker: ProgressTracker | None = None
        self._reader: TabularReader | None = None
        self._resumed = False
        self._window_rows = 0

    # === Introspection ===

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def task(self) -> TaskInfo | None:
        return self._task

    @property
    def task_id(self) -> str | None:
        return self._task.id if self._task else None

    @property
    def tracker(self) -> ProgressTracker | None:
        return self._tracker

    @property
    def registry(self) -> TaskRegistry:
        return self._registry

    def _set_state(self, state: RunState) -> None:
        with self._state_lock:
            self._state = state

    # === Control signals ===

    def pause(self) -> None:
        """Request a pause; takes effect before the next batch."""
        self._unpaused.clear()

    def resume(self) -> None:
        """Lift a pause."""
        self._unpaused.set()

    def stop(self) -> None:
        """Request a stop; the in-flight batch finishes first."""
        self._stop_event.set()
        self._unpaused.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    # === Lifecycle ===

    def run(self, request: RunRequest) -> RunSummary:
        """Prepare and execute in the calling thread."""
        self.prepare(request)
        return self.execute()

    def prepare(self, request: RunRequest) -> TaskInfo:
        """Validate inputs and resolve the task.

        Raises:
            InputValidationError: Missing file, field index out of range,
                empty window.
            DataSourceError: Unsupported or unreadable data file.
            TaskStateError: prepare() called twice.
        """
        if self._task is not None:
            raise TaskStateError("Orchestrator already prepared a task")

        data_file = Path(request.data_file)
        if not data_file.is_file():
            raise InputValidationError(f"Data file not found: {data_file}")

        fields = request.fields()
        reader = TabularReader(
            data_file,
            batch_size=self._processing.batch_size,
            fields=fields,
            start_pos=request.start_pos,
            end_pos=request.end_pos,
            encoding=self._processing.encoding,
        )
        column_count = reader.column_count()
        out_of_range = [f for f in fields if f >= column_count]
        if out_of_range:
            raise InputValidationError(
                f"Field index out of range: {out_of_range} (file has {column_count} columns)"
            )
        window_rows = reader.window_size()
        if window_rows == 0:
            raise InputValidationError(
                f"No rows to process in window [{request.start_pos}, {request.end_pos}) of {data_file}"
            )

        data_hash = self._registry.file_identity(data_file)
        config_hash = config_fingerprint(
            self._settings.api_config,
            self._settings.prompt_config,
            fields,
            request.start_pos,
            request.end_pos,
        )

        task = self._registry.find_resumable_task(data_hash, config_hash)
        existing = task is not None
        if task is None:
            task = self._registry.create_task(
                data_file,
                data_hash,
                config_hash,
                fields,
                start_pos=request.start_pos,
                end_pos=request.end_pos,
                config={
                    "apiConfig": self._settings.api_config.redacted(),
                    "promptConfig": self._settings.prompt_config.model_dump(mode="json"),
                },
            )

        tracker = ProgressTracker(
            task.id,
            task.output_files(),
            encoding=self._processing.encoding,
        )
        self._resumed = existing and tracker.load_progress()

        self._task = task
        self._tracker = tracker
        self._reader = reader
        self._window_rows = window_rows
        self._log = self._log.bind(task_id=task.id)
        self._log.info(
            "task_prepared",
            resumed=self._resumed,
            window_rows=window_rows,
            cursor=tracker.processed_rows,
        )
        return task

    def execute(self) -> RunSummary:
        """Run the batch loop until the window is exhausted or a stop.

        Raises:
            TaskStateError: prepare() not called, or execute() called twice.
            Exception: Any task-level failure, after the task is marked error.
        """
        if self._task is None or self._tracker is None or self._reader is None:
            raise TaskStateError("execute() called before prepare()")
        with self._state_lock:
            if self._state != RunState.IDLE:
                raise TaskStateError(f"Run already {self._state.value}")
            self._state = RunState.RUNNING

        task, tracker = self._task, self._tracker
        provider: BaseProvider | None = None
        batches = 0
        try:
            self._registry.update_task_status(task.id, TaskStatus.PROCESSING)
            if self._resumed and tracker.total_rows > 0:
                tracker.mark_processing()
            else:
                tracker.set_total_rows(self._window_rows)
            self._emit(EventType.STARTED, progress=tracker.get_progress())

            provider = self._provider_factory(
                self._settings.api_config,
                client=self._http_client,
                sleep=self._sleep,
            )
            batches = self._run_loop(provider, tracker)
        except Exception as e:
            message = f"{type(e).__name__}: {e}"
            self._set_state(RunState.ERROR)
            tracker.mark_error(message)
            self._update_status_quietly(TaskStatus.ERROR)
            self._log.exception("task_execution_failed", error=message)
            self._emit(EventType.FAILED, error=message, progress=tracker.get_progress())
            raise
        finally:
            if provider is not None:
                provider.close()

        if self._stop_event.is_set() and tracker.processed_rows < tracker.total_rows:
            self._set_state(RunState.STOPPED)
            tracker.mark_paused()
            self._registry.update_task_status(task.id, TaskStatus.PAUSED)
            summary = self._summary(batches)
            self._log.info("task_stopped", processed_rows=summary.processed_rows)
            self._emit(EventType.STOPPED, result=summary.to_dict(), progress=tracker.get_progress())
            return summary

        if self.state == RunState.PAUSED:
            # Paused after the last batch, then stopped: nothing is left to run
            tracker.mark_processing()
            self._registry.update_task_status(task.id, TaskStatus.PROCESSING)
        self._set_state(RunState.COMPLETED)
        tracker.mark_completed()
        self._registry.update_task_status(task.id, TaskStatus.COMPLETED)
        summary = self._summary(batches)
        self._emit(EventType.COMPLETED, result=summary.to_dict(), progress=tracker.get_progress())
        return summary

    # === Loop ===

    def _run_loop(self, provider: BaseProvider, tracker: ProgressTracker) -> int:
        assert self._reader is not None
        batches = 0
        cursor = tracker.processed_rows
        if cursor >= tracker.total_rows:
            return 0

        pool_size = self._processing.batch_size
        batch_iter = iter(self._reader.read_batches(offset=cursor))
        with PooledExecutor(max_workers=pool_size) as executor:
            while True:
                if self._stop_event.is_set():
                    break
                if not self._unpaused.is_set() and not self._wait_while_paused(tracker):
                    break

                batch = next(batch_iter, None)
                if batch is None:
                    break

                outcomes = self._dispatch(executor, provider, batch)
                position = batch[-1].index + 1
                tracker.commit_batch(outcomes, position)
                batches += 1
                self._log.info(
                    "batch_committed",
                    batch=batches,
                    rows=len(batch),
                    position=position,
                    successes=sum(1 for o in outcomes if o.status == "success"),
                )
                self._emit(EventType.PROGRESS, progress=tracker.get_progress())

                delay = self._settings.batch_delay
                if delay > 0 and position < tracker.total_rows:
                    self._stop_event.wait(delay)
        return batches

    def _wait_while_paused(self, tracker: ProgressTracker) -> bool:
        """Block until resumed. Returns False if a stop arrived instead."""
        assert self._task is not None
        self._set_state(RunState.PAUSED)
        tracker.mark_paused()
        self._registry.update_task_status(self._task.id, TaskStatus.PAUSED)
        self._log.info("task_paused", position=tracker.processed_rows)
        self._emit(EventType.PAUSED, progress=tracker.get_progress())

        poll = self._processing.pause_poll_seconds
        while not self._unpaused.wait(timeout=poll):
            pass
        if self._stop_event.is_set():
            return False

        self._set_state(RunState.RUNNING)
        tracker.mark_processing()
        self._registry.update_task_status(self._task.id, TaskStatus.PROCESSING)
        self._log.info("task_resumed", position=tracker.processed_rows)
        self._emit(EventType.RESUMED, progress=tracker.get_progress())
        return True

    def _dispatch(
        self,
        executor: PooledExecutor,
        provider: BaseProvider,
        batch: list[RowRecord],
    ) -> list[RowOutcome]:
        """Send every row of a batch; a batch-level failure errors every row."""
        try:
            return executor.execute_batch(batch, lambda row: self._process_row(provider, row))
        except Exception as e:
            message = f"Batch processing failed: {type(e).__name__}: {e}"
            self._log.exception(
                "batch_failed",
                first_row=batch[0].index,
                rows=len(batch),
                error=message,
            )
            return [RowOutcome.failure(row.index, row.original_text(), message) for row in batch]

    def _process_row(self, provider: BaseProvider, row: RowRecord) -> RowOutcome:
        """Row-level handler. Known failures become error outcomes."""
        if not row.content:
            if self._processing.skip_empty_rows:
                return RowOutcome.skipped(row.index, row.original_text())
            return RowOutcome.failure(row.index, row.original_text(), EMPTY_CONTENT_ERROR)

        prompt = self._template.render(row.content)
        try:
            result = provider.make_request(prompt.system, prompt.user)
        except RetriesExhaustedError as e:
            return RowOutcome.failure(
                row.index,
                row.original_text(),
                str(e),
                retry_count=max(e.attempts - 1, 0),
            )
        except httpx.HTTPError as e:
            return RowOutcome.failure(row.index, row.original_text(), f"{type(e).__name__}: {e}")

        if not result:
            return RowOutcome.failure(row.index, row.original_text(), EMPTY_RESULT_ERROR)

        data: dict[str, Any] = {
            "row_index": row.index,
            "input": row.content,
            "output": json.dumps(result, ensure_ascii=False),
        }
        # Reply keys never override the recorded row bookkeeping
        data.update((key, value) for key, value in result.items() if key not in data)
        return RowOutcome.success(row.index, data, raw_response=result)

    # === Reporting ===

    def _summary(self, batches: int) -> RunSummary:
        assert self._task is not None and self._tracker is not None
        snapshot = self._tracker.snapshot()
        return RunSummary(
            task_id=self._task.id,
            state=self._state,
            total_rows=snapshot.total_rows,
            processed_rows=snapshot.processed_rows,
            success_count=snapshot.success_count,
            error_count=snapshot.error_count,
            skipped_count=snapshot.skipped_count,
            output_files=self._tracker.get_output_files(),
            resumed=self._resumed,
            batches=batches,
        )

    def _emit(
        self,
        event_type: EventType,
        *,
        progress: dict[str, Any] | None = None,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        if self._observer is None or self._task is None:
            return
        event = ProgressEvent(
            type=event_type,
            task_id=self._task.id,
            progress=progress,
            result=result,
            error=error,
        )
        try:
            self._observer(event)
        except Exception as e:
            # Observers are external; a broken UI must not fail the task
            self._log.warning("observer_failed", event=event_type.value, error=str(e))

    def _update_status_quietly(self, status: TaskStatus) -> None:
        assert self._task is not None
        try:
            self._registry.update_task_status(self._task.id, status)
        except (TaskStateError, OSError) as e:
            self._log.warning("task_status_update_failed", status=status.value, error=str(e))
