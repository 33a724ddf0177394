# src/promptbatch/core/retention/purge.py
"""Age-based deletion of task directories.

A task is expired when its metadata createdAt is older than the
retention window, whatever its status. Deletion is irreversible.
"""

import json
import shutil
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from time import perf_counter

import structlog

logger = structlog.get_logger(__name__)

METADATA_FILE = "metadata.json"


@dataclass
class PurgeResult:
    """Result of a purge operation."""

    deleted_count: int
    bytes_freed: int
    failed_refs: list[str] = field(default_factory=list)
    deleted_ids: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, object]:
        return {
            "deletedCount": self.deleted_count,
            "bytesFreed": self.bytes_freed,
            "failed": list(self.failed_refs),
            "deleted": list(self.deleted_ids),
            "durationSeconds": self.duration_seconds,
        }


def _dir_size(path: Path) -> int:
    return sum(p.stat().st_size for p in path.rglob("*") if p.is_file())


def _created_at(task_dir: Path) -> datetime | None:
    metadata_path = task_dir / METADATA_FILE
    try:
        metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
        created = datetime.fromisoformat(metadata["createdAt"])
    except (OSError, ValueError, KeyError, TypeError):
        return None
    if created.tzinfo is None:
        created = created.replace(tzinfo=UTC)
    return created


class PurgeManager:
    """Manages task directory purging based on retention policy.

    Directories without readable metadata are never selected.
    """

    def __init__(self, tasks_dir: Path) -> None:
        """Initialize PurgeManager.

        Args:
            tasks_dir: Directory holding one sub-directory per task
        """
        self._tasks_dir = tasks_dir

    def find_expired_tasks(
        self,
        retention_days: float,
        as_of: datetime | None = None,
        exclude: Iterable[str] = (),
    ) -> list[Path]:
        """Find task directories created before the retention cutoff.

        Args:
            retention_days: Maximum age in days
            as_of: Reference datetime for cutoff calculation (defaults to now)
            exclude: Task ids that must be kept (e.g. the running task)

        Returns:
            Expired task directories, oldest first
        """
        if retention_days < 0:
            raise ValueError(f"retention_days must be >= 0, got {retention_days}")
        if as_of is None:
            as_of = datetime.now(UTC)
        cutoff = as_of - timedelta(days=retention_days)
        keep = set(exclude)

        if not self._tasks_dir.exists():
            return []

        expired: list[tuple[datetime, Path]] = []
        for task_dir in self._tasks_dir.iterdir():
            if not task_dir.is_dir() or task_dir.name in keep:
                continue
            created = _created_at(task_dir)
            if created is not None and created < cutoff:
                expired.append((created, task_dir))
        return [path for _, path in sorted(expired)]

    def purge_tasks(self, task_dirs: list[Path]) -> PurgeResult:
        """Delete task directories.

        Args:
            task_dirs: Directories to delete

        Returns:
            PurgeResult with deletion statistics
        """
        start_time = perf_counter()
        deleted_ids: list[str] = []
        failed: list[str] = []
        bytes_freed = 0

        for task_dir in task_dirs:
            try:
                size = _dir_size(task_dir)
                shutil.rmtree(task_dir)
            except OSError as e:
                logger.warning("task_purge_failed", task_id=task_dir.name, error=str(e))
                failed.append(task_dir.name)
                continue
            bytes_freed += size
            deleted_ids.append(task_dir.name)
            logger.info("task_purged", task_id=task_dir.name)

        return PurgeResult(
            deleted_count=len(deleted_ids),
            bytes_freed=bytes_freed,
            failed_refs=failed,
            deleted_ids=deleted_ids,
            duration_seconds=perf_counter() - start_time,
        )
