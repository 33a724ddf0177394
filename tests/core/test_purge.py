# tests/core/test_purge.py
"""Tests for PurgeManager."""

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest


def make_task_dir(tasks_dir: Path, task_id: str, created_at: str | None) -> Path:
    task_dir = tasks_dir / task_id
    task_dir.mkdir(parents=True)
    if created_at is not None:
        (task_dir / "metadata.json").write_text(json.dumps({"createdAt": created_at}))
    (task_dir / "results.csv").write_text("a\n1\n")
    return task_dir


class TestFindExpiredTasks:
    def test_oldest_first(self, tmp_path: Path) -> None:
        from promptbatch.core.retention import PurgeManager

        make_task_dir(tmp_path, "b", "2024-01-02T00:00:00+00:00")
        make_task_dir(tmp_path, "a", "2024-01-01T00:00:00+00:00")
        make_task_dir(tmp_path, "new", "2024-02-27T00:00:00+00:00")

        expired = PurgeManager(tmp_path).find_expired_tasks(
            7, as_of=datetime(2024, 3, 1, tzinfo=UTC)
        )
        assert [p.name for p in expired] == ["a", "b"]

    def test_naive_timestamp_treated_as_utc(self, tmp_path: Path) -> None:
        from promptbatch.core.retention import PurgeManager

        make_task_dir(tmp_path, "naive", "2024-01-01T00:00:00")
        expired = PurgeManager(tmp_path).find_expired_tasks(
            1, as_of=datetime(2024, 1, 3, tzinfo=UTC)
        )
        assert [p.name for p in expired] == ["naive"]

    def test_directory_without_metadata_never_selected(self, tmp_path: Path) -> None:
        from promptbatch.core.retention import PurgeManager

        make_task_dir(tmp_path, "orphan", None)
        assert PurgeManager(tmp_path).find_expired_tasks(0) == []

    def test_negative_retention_rejected(self, tmp_path: Path) -> None:
        from promptbatch.core.retention import PurgeManager

        with pytest.raises(ValueError):
            PurgeManager(tmp_path).find_expired_tasks(-1)

    def test_missing_tasks_dir(self, tmp_path: Path) -> None:
        from promptbatch.core.retention import PurgeManager

        assert PurgeManager(tmp_path / "absent").find_expired_tasks(1) == []


class TestPurgeTasks:
    def test_reports_deleted_and_failed(self, tmp_path: Path) -> None:
        from promptbatch.core.retention import PurgeManager

        present = make_task_dir(tmp_path, "present", "2024-01-01T00:00:00+00:00")
        result = PurgeManager(tmp_path).purge_tasks([present, tmp_path / "vanished"])

        assert result.deleted_ids == ["present"]
        assert result.failed_refs == ["vanished"]
        assert result.bytes_freed > 0
        assert result.to_dict()["deletedCount"] == 1
        assert not present.exists()
