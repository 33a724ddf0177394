# src/promptbatch/core/tasks/registry.py
"""Task registry: identity, directories and lifecycle metadata.

A task binds one data file to one configuration. Its identity is a
pair of hashes stored in metadata.json:

- dataFileHash: path + size + mtime ("stat" mode) or the file's
  content ("content" mode)
- configHash: canonical JSON of api config (credential excluded),
  prompt config, field selection and row window

A rerun with matching hashes resumes the newest non-completed task.
"""

from __future__ import annotations

import hashlib
import json
import os
import re
import secrets
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

import structlog

from promptbatch.contracts.enums import TaskStatus
from promptbatch.contracts.errors import InputValidationError, TaskNotFoundError, TaskStateError
from promptbatch.contracts.results import OutputFiles
from promptbatch.core.canonical import CANONICAL_VERSION, stable_hash
from promptbatch.core.checkpoint.progress import Progress, load_progress_file
from promptbatch.core.config import AgentApiConfig, LLMApiConfig, PromptConfig
from promptbatch.core.retention.purge import PurgeManager, PurgeResult

logger = structlog.get_logger(__name__)

METADATA_FILE = "metadata.json"
PROGRESS_FILE = "progress.json"

_TASK_ID = re.compile(r"[A-Za-z0-9_\-]+")

# Completed is terminal. Error may be resumed. Same-status updates are no-ops.
ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.CREATED: frozenset({TaskStatus.PROCESSING, TaskStatus.PAUSED, TaskStatus.ERROR}),
    TaskStatus.PROCESSING: frozenset({TaskStatus.PAUSED, TaskStatus.COMPLETED, TaskStatus.ERROR}),
    TaskStatus.PAUSED: frozenset({TaskStatus.PROCESSING, TaskStatus.ERROR}),
    TaskStatus.ERROR: frozenset({TaskStatus.PROCESSING}),
    TaskStatus.COMPLETED: frozenset(),
}


def utc_now() -> datetime:
    return datetime.now(UTC)


def _write_json_atomic(path: Path, data: dict[str, Any]) -> None:
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    os.replace(tmp_path, path)


def file_identity(path: Path, mode: Literal["stat", "content"] = "stat") -> str:
    """Hash identifying a data file.

    "stat" hashes resolved path, size and mtime; a file rewritten with
    the same size and mtime aliases to the old identity. "content"
    hashes the bytes, so a moved but unchanged file keeps its identity.

    Raises:
        InputValidationError: If the file does not exist.
    """
    if not path.is_file():
        raise InputValidationError(f"Data file not found: {path}")
    if mode == "content":
        digest = hashlib.sha256()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(65536), b""):
                digest.update(chunk)
        return digest.hexdigest()
    stat = path.stat()
    key = f"{path.resolve()}_{stat.st_size}_{stat.st_mtime_ns}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def config_fingerprint(
    api_config: LLMApiConfig | AgentApiConfig,
    prompt_config: PromptConfig,
    selected_fields: Sequence[int],
    start_pos: int = 0,
    end_pos: int | None = None,
) -> str:
    """Canonical hash of everything that changes what a task produces."""
    api = api_config.model_dump(mode="json")
    api.pop("api_key", None)
    return stable_hash(
        {
            "apiConfig": api,
            "promptConfig": prompt_config.model_dump(mode="json"),
            "selectedFields": list(selected_fields),
            "window": {"start": start_pos, "end": end_pos},
        }
    )


@dataclass
class TaskInfo:
    """Metadata and file layout of one task."""

    id: str
    status: TaskStatus
    created_at: str
    updated_at: str
    data_file: str
    data_file_hash: str
    config_hash: str
    task_dir: Path
    selected_fields: list[int] = field(default_factory=list)
    start_pos: int = 0
    end_pos: int | None = None
    success_file_name: str = "results.csv"
    error_file_name: str = "errors.csv"
    raw_response_file_name: str = "raw_responses.jsonl"
    config: dict[str, Any] = field(default_factory=dict)

    @property
    def metadata_file(self) -> Path:
        return self.task_dir / METADATA_FILE

    def output_files(self) -> OutputFiles:
        return OutputFiles(
            task_dir=str(self.task_dir),
            success_file=str(self.task_dir / self.success_file_name),
            error_file=str(self.task_dir / self.error_file_name),
            progress_file=str(self.task_dir / PROGRESS_FILE),
            raw_response_file=str(self.task_dir / self.raw_response_file_name),
        )

    def summary(self) -> dict[str, Any]:
        """Listing shape: {id, status, createdAt, dataFile}."""
        return {
            "id": self.id,
            "status": self.status.value,
            "createdAt": self.created_at,
            "dataFile": self.data_file,
        }

    def to_metadata(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "dataFile": self.data_file,
            "dataFileHash": self.data_file_hash,
            "configHash": self.config_hash,
            "hashVersion": CANONICAL_VERSION,
            "selectedFields": list(self.selected_fields),
            "window": {"start": self.start_pos, "end": self.end_pos},
            "files": {
                "success": self.success_file_name,
                "error": self.error_file_name,
                "rawResponse": self.raw_response_file_name,
            },
            "config": self.config,
        }

    @classmethod
    def from_metadata(cls, task_dir: Path, metadata: dict[str, Any]) -> TaskInfo:
        """Rebuild from metadata.json.

        Raises:
            KeyError, ValueError: If required keys are missing or invalid.
        """
        files = metadata.get("files") or {}
        window = metadata.get("window") or {}
        return cls(
            id=task_dir.name,
            status=TaskStatus(metadata["status"]),
            created_at=metadata["createdAt"],
            updated_at=metadata.get("updatedAt", metadata["createdAt"]),
            data_file=metadata["dataFile"],
            data_file_hash=metadata.get("dataFileHash", ""),
            config_hash=metadata["configHash"],
            task_dir=task_dir,
            selected_fields=list(metadata.get("selectedFields") or []),
            start_pos=int(window.get("start") or 0),
            end_pos=window.get("end"),
            success_file_name=files.get("success", "results.csv"),
            error_file_name=files.get("error", "errors.csv"),
            raw_response_file_name=files.get("rawResponse", "raw_responses.jsonl"),
            config=metadata.get("config") or {},
        )


class TaskRegistry:
    """Owns the tasks/ directory under the output root.

    Example:
        registry = TaskRegistry(Path("outputData"))
        task = registry.find_resumable_task(data_hash, cfg_hash)
        if task is None:
            task = registry.create_task(path, data_hash, cfg_hash, [0])
    """

    def __init__(
        self,
        output_dir: Path,
        *,
        identity: Literal["stat", "content"] = "stat",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._tasks_dir = output_dir / "tasks"
        self._tasks_dir.mkdir(parents=True, exist_ok=True)
        self._identity = identity
        self._clock = clock
        self._purger = PurgeManager(self._tasks_dir)

    @property
    def tasks_dir(self) -> Path:
        return self._tasks_dir

    def file_identity(self, data_file: Path) -> str:
        return file_identity(data_file, self._identity)

    def generate_task_id(self, data_file_hash: str, config_hash: str) -> str:
        millis = int(self._clock().timestamp() * 1000)
        return f"task_{millis}_{secrets.token_hex(4)}_{data_file_hash[:8]}_{config_hash[:8]}"

    def create_task(
        self,
        data_file: Path,
        data_file_hash: str,
        config_hash: str,
        selected_fields: Sequence[int],
        *,
        start_pos: int = 0,
        end_pos: int | None = None,
        config: dict[str, Any] | None = None,
    ) -> TaskInfo:
        """Create a task directory and its metadata.json.

        Args:
            config: Redacted configuration stored for diagnosis.
        """
        task_id = self.generate_task_id(data_file_hash, config_hash)
        task_dir = self._tasks_dir / task_id
        task_dir.mkdir(parents=True, exist_ok=False)

        now = self._clock()
        stamp = now.strftime("%Y-%m-%dT%H-%M-%S")
        short_id = "_".join(task_id.split("_")[-2:])
        created = now.isoformat()
        task = TaskInfo(
            id=task_id,
            status=TaskStatus.CREATED,
            created_at=created,
            updated_at=created,
            data_file=str(data_file.resolve()),
            data_file_hash=data_file_hash,
            config_hash=config_hash,
            task_dir=task_dir,
            selected_fields=list(selected_fields),
            start_pos=start_pos,
            end_pos=end_pos,
            success_file_name=f"results_{short_id}_{stamp}.csv",
            error_file_name=f"errors_{short_id}_{stamp}.csv",
            raw_response_file_name=f"raw_responses_{short_id}_{stamp}.jsonl",
            config=config or {},
        )
        _write_json_atomic(task.metadata_file, task.to_metadata())
        logger.info("task_created", task_id=task_id, data_file=task.data_file)
        return task

    def _iter_tasks(self) -> Iterator[TaskInfo]:
        for task_dir in self._tasks_dir.iterdir():
            if not task_dir.is_dir():
                continue
            metadata_path = task_dir / METADATA_FILE
            if not metadata_path.exists():
                continue
            try:
                metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
                yield TaskInfo.from_metadata(task_dir, metadata)
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.warning("task_metadata_unreadable", task_dir=str(task_dir), error=str(e))

    def find_resumable_task(self, data_file_hash: str, config_hash: str) -> TaskInfo | None:
        """Newest non-completed task with matching identity, or None."""
        matches = [
            t
            for t in self._iter_tasks()
            if t.data_file_hash == data_file_hash
            and t.config_hash == config_hash
            and t.status != TaskStatus.COMPLETED
        ]
        if not matches:
            logger.info("no_resumable_task")
            return None
        task = max(matches, key=lambda t: t.created_at)
        logger.info("resumable_task_found", task_id=task.id, status=task.status.value)
        return task

    def get_task(self, task_id: str) -> TaskInfo:
        """Load a task by id.

        Raises:
            TaskNotFoundError: If the id is malformed or has no readable metadata.
        """
        if not _TASK_ID.fullmatch(task_id):
            raise TaskNotFoundError(f"Task not found: {task_id}")
        task_dir = self._tasks_dir / task_id
        metadata_path = task_dir / METADATA_FILE
        try:
            metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
            return TaskInfo.from_metadata(task_dir, metadata)
        except FileNotFoundError as e:
            raise TaskNotFoundError(f"Task not found: {task_id}") from e
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise TaskNotFoundError(f"Task metadata unreadable for {task_id}: {e}") from e

    def update_task_status(self, task_id: str, status: TaskStatus) -> TaskInfo:
        """Persist a status change.

        Raises:
            TaskNotFoundError: If the task does not exist.
            TaskStateError: If the transition is not allowed.
        """
        task = self.get_task(task_id)
        if task.status == status:
            return task
        if status not in ALLOWED_TRANSITIONS[task.status]:
            raise TaskStateError(
                f"Illegal task status transition for {task_id}: "
                f"{task.status.value} -> {status.value}"
            )
        task.status = status
        task.updated_at = self._clock().isoformat()
        _write_json_atomic(task.metadata_file, task.to_metadata())
        logger.info("task_status_updated", task_id=task_id, status=status.value)
        return task

    def list_tasks(self) -> list[dict[str, Any]]:
        """All tasks as {id, status, createdAt, dataFile}, newest first."""
        tasks = sorted(self._iter_tasks(), key=lambda t: t.created_at, reverse=True)
        return [t.summary() for t in tasks]

    def get_task_progress(self, task_id: str) -> Progress | None:
        """Progress from disk, or None when the task has not started."""
        task = self.get_task(task_id)
        return load_progress_file(Path(task.output_files().progress_file))

    def cleanup_old_tasks(
        self,
        max_age_days: float,
        *,
        exclude: Sequence[str] = (),
        as_of: datetime | None = None,
    ) -> PurgeResult:
        """Irreversibly delete tasks created more than max_age_days ago, any status."""
        expired = self._purger.find_expired_tasks(
            max_age_days,
            as_of=as_of or self._clock(),
            exclude=exclude,
        )
        result = self._purger.purge_tasks(expired)
        logger.info(
            "task_cleanup_finished",
            deleted=result.deleted_count,
            failed=len(result.failed_refs),
            bytes_freed=result.bytes_freed,
        )
        return result
