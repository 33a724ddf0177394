# src/promptbatch/core/checkpoint/progress.py
"""Durable per-task progress: counters, cursor and output files.

The tracker is the single writer of a task's progress.json, results,
errors and raw-response files. Every mutating call rewrites
progress.json in full (tmp file + os.replace), so the file on disk is
always a complete snapshot and never a partial write.

Progress state machine:
    initializing -> processing -> {paused, completed, error}
    paused -> processing
A successful load_progress() labels the state "resuming", which is
handled exactly like "processing".
"""

from __future__ import annotations

import json
import os
import threading
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from promptbatch.contracts.enums import ProgressStatus
from promptbatch.contracts.results import OutputFiles, RowOutcome
from promptbatch.plugins.sinks import ErrorCSVSink, JSONLSink, ResultCSVSink

logger = structlog.get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(UTC)


class Progress(BaseModel):
    """Snapshot persisted to progress.json (camelCase keys on disk)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    task_id: str
    start_time: datetime
    last_update_time: datetime
    total_rows: int = Field(default=0, ge=0)
    processed_rows: int = Field(default=0, ge=0)
    success_count: int = Field(default=0, ge=0)
    error_count: int = Field(default=0, ge=0)
    skipped_count: int = Field(default=0, ge=0)
    current_position: int = Field(default=0, ge=0)
    status: ProgressStatus = ProgressStatus.INITIALIZING
    average_time_per_row: float = 0.0
    estimated_time_remaining: float = 0.0
    error_rate: float = 0.0
    last_error: str | None = None
    end_time: datetime | None = None

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ProgressTracker:
    """Task-scoped progress tracker.

    Thread-safe: the orchestrator mutates it from its run thread while
    status queries read snapshots from other threads.

    Example:
        tracker = ProgressTracker(task_id, files)
        if not tracker.load_progress():
            tracker.set_total_rows(100)
        tracker.commit_batch(outcomes, position=5)
        tracker.mark_completed()
    """

    def __init__(
        self,
        task_id: str,
        files: OutputFiles,
        *,
        encoding: str = "utf-8",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._task_id = task_id
        self._files = files
        self._clock = clock
        self._lock = threading.RLock()

        Path(files.task_dir).mkdir(parents=True, exist_ok=True)
        self._progress_path = Path(files.progress_file)
        self._errors = ErrorCSVSink(Path(files.error_file), encoding=encoding)
        self._results = ResultCSVSink(Path(files.success_file), encoding=encoding)
        self._raw = JSONLSink(Path(files.raw_response_file), encoding=encoding)

        now = self._clock()
        self._progress = Progress(task_id=task_id, start_time=now, last_update_time=now)

    @property
    def task_id(self) -> str:
        return self._task_id

    @property
    def status(self) -> ProgressStatus:
        return self._progress.status

    @property
    def processed_rows(self) -> int:
        return self._progress.processed_rows

    @property
    def total_rows(self) -> int:
        return self._progress.total_rows

    # === Persistence ===

    def load_progress(self) -> bool:
        """Reload state from progress.json.

        Returns:
            True if a matching file was loaded. False if there is no file,
            it cannot be parsed, or it belongs to a different task.
        """
        if not self._progress_path.exists():
            logger.info("progress_file_absent", task_id=self._task_id)
            return False
        try:
            raw = json.loads(self._progress_path.read_text(encoding="utf-8"))
            loaded = Progress.model_validate(raw)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning("progress_file_unreadable", task_id=self._task_id, error=str(e))
            return False

        if loaded.task_id != self._task_id:
            logger.warning(
                "progress_task_mismatch",
                expected=self._task_id,
                actual=loaded.task_id,
            )
            return False

        with self._lock:
            self._progress = loaded.model_copy(
                update={"last_update_time": self._clock(), "status": ProgressStatus.RESUMING}
            )
        logger.info(
            "progress_loaded",
            task_id=self._task_id,
            processed_rows=loaded.processed_rows,
            total_rows=loaded.total_rows,
        )
        return True

    def _save(self) -> None:
        """Full-state overwrite of progress.json. Caller holds the lock."""
        self._progress.last_update_time = self._clock()
        self._refresh_stats()
        tmp_path = self._progress_path.with_name(self._progress_path.name + ".tmp")
        tmp_path.write_text(
            json.dumps(self._progress.to_json_dict(), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        os.replace(tmp_path, self._progress_path)

    def _refresh_stats(self) -> None:
        p = self._progress
        if p.processed_rows <= 0:
            return
        elapsed = max((self._clock() - p.start_time).total_seconds(), 0.0)
        p.average_time_per_row = elapsed / p.processed_rows
        p.estimated_time_remaining = (p.total_rows - p.processed_rows) * p.average_time_per_row
        p.error_rate = p.error_count / p.processed_rows * 100

    # === Mutations ===

    def set_total_rows(self, total_rows: int) -> None:
        """Declare the number of rows in the window; enters processing."""
        if total_rows < 0:
            raise ValueError(f"total_rows must be >= 0, got {total_rows}")
        with self._lock:
            self._progress.total_rows = total_rows
            self._progress.status = ProgressStatus.PROCESSING
            self._save()
        logger.info("task_total_rows", task_id=self._task_id, total_rows=total_rows)

    def update_position(self, position: int) -> None:
        """Advance the cursor.

        Raises:
            ValueError: If position would move the cursor backwards or
                past the declared total.
        """
        with self._lock:
            self._check_position(position)
            self._progress.current_position = position
            self._progress.processed_rows = position
            self._save()

    def _check_position(self, position: int) -> None:
        p = self._progress
        if position < p.processed_rows:
            raise ValueError(f"cursor cannot move backwards: {p.processed_rows} -> {position}")
        if position > p.total_rows:
            raise ValueError(f"cursor {position} is past total_rows {p.total_rows}")

    def record_success(self, outcomes: Sequence[RowOutcome]) -> None:
        """Append success rows (and raw responses) and count them."""
        with self._lock:
            self._write_successes(outcomes)
            self._save()

    def record_error(
        self,
        row_index: int,
        original_content: str,
        error_message: str,
        retry_count: int = 0,
    ) -> None:
        """Append one error record and count it."""
        with self._lock:
            self._write_errors([(row_index, original_content, error_message, retry_count)])
            self._save()
        logger.warning(
            "row_error_recorded",
            task_id=self._task_id,
            row_index=row_index,
            error=error_message,
        )

    def record_skipped(self, count: int = 1) -> None:
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        with self._lock:
            self._progress.skipped_count += count
            self._save()

    def commit_batch(self, outcomes: Sequence[RowOutcome], position: int) -> None:
        """Record every outcome of one batch and advance the cursor.

        Output files are appended first; progress.json is then written
        once, so counts and cursor move together.
        """
        successes = [o for o in outcomes if o.status == "success"]
        errors = [
            (o.row_index, o.original_content, o.error or "", o.retry_count)
            for o in outcomes
            if o.status == "error"
        ]
        skipped = sum(1 for o in outcomes if o.status == "skipped")

        with self._lock:
            self._check_position(position)
            self._write_successes(successes)
            self._write_errors(errors)
            self._progress.skipped_count += skipped
            self._progress.current_position = position
            self._progress.processed_rows = position
            self._save()
        for index, _content, message, _retries in errors:
            logger.warning(
                "row_error_recorded",
                task_id=self._task_id,
                row_index=index,
                error=message,
            )

    def _write_successes(self, outcomes: Sequence[RowOutcome]) -> None:
        if not outcomes:
            return
        self._results.write([o.data or {} for o in outcomes])
        timestamp = self._clock().isoformat()
        self._raw.write(
            [
                {"timestamp": timestamp, "position": o.row_index, "rawResponse": o.raw_response}
                for o in outcomes
                if o.raw_response is not None
            ]
        )
        self._progress.success_count += len(outcomes)

    def _write_errors(self, records: Sequence[tuple[int, str, str, int]]) -> None:
        if not records:
            return
        timestamp = self._clock().isoformat()
        self._errors.write(
            [(index, content, message, timestamp, retries) for index, content, message, retries in records]
        )
        self._progress.error_count += len(records)

    # === Status transitions (idempotent) ===

    def mark_processing(self) -> None:
        with self._lock:
            self._progress.status = ProgressStatus.PROCESSING
            self._save()

    def mark_paused(self) -> None:
        with self._lock:
            self._progress.status = ProgressStatus.PAUSED
            self._save()
        logger.info("task_paused", task_id=self._task_id)

    def mark_completed(self) -> None:
        with self._lock:
            already = self._progress.status == ProgressStatus.COMPLETED
            self._progress.status = ProgressStatus.COMPLETED
            if self._progress.end_time is None:
                self._progress.end_time = self._clock()
            self._save()
        self.close()
        if not already:
            logger.info(
                "task_completed",
                task_id=self._task_id,
                success_count=self._progress.success_count,
                error_count=self._progress.error_count,
                skipped_count=self._progress.skipped_count,
            )

    def mark_error(self, message: str) -> None:
        with self._lock:
            self._progress.status = ProgressStatus.ERROR
            self._progress.last_error = message
            self._save()
        self.close()
        logger.error("task_failed", task_id=self._task_id, error=message)

    # === Queries ===

    def snapshot(self) -> Progress:
        """Copy of the current state with derived stats refreshed."""
        with self._lock:
            self._refresh_stats()
            return self._progress.model_copy()

    def get_progress(self) -> dict[str, Any]:
        """Camel-case snapshot plus percent complete and rows/minute."""
        return progress_payload(self.snapshot(), self._clock())

    def get_output_files(self) -> OutputFiles:
        return self._files

    def close(self) -> None:
        """Release output file handles. Later writes reopen them."""
        with self._lock:
            self._results.close()
            self._raw.close()
            self._errors.close()


def progress_payload(progress: Progress, now: datetime | None = None) -> dict[str, Any]:
    """Render a Progress for events and status queries.

    Adds `progress` (integer percent) and `speed` (rows per minute since
    startTime) to the persisted fields.
    """
    payload = progress.to_json_dict()
    total = progress.total_rows
    payload["progress"] = int(progress.processed_rows * 100 / total) if total else 0
    elapsed_minutes = ((now or utc_now()) - progress.start_time).total_seconds() / 60
    payload["speed"] = round(progress.processed_rows / elapsed_minutes) if elapsed_minutes > 0 else 0
    return payload


def load_progress_file(path: Path) -> Progress | None:
    """Read a progress.json without a tracker (status of idle tasks)."""
    if not path.exists():
        return None
    try:
        return Progress.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.warning("progress_file_unreadable", path=str(path), error=str(e))
        return None
