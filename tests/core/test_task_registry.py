# tests/core/test_task_registry.py
"""Tests for task identity, metadata and lifecycle."""

import json
import os
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from promptbatch.contracts.enums import TaskStatus
from promptbatch.contracts.errors import InputValidationError, TaskNotFoundError, TaskStateError
from promptbatch.core.config import parse_api_config, parse_prompt_config
from promptbatch.core.tasks import TaskRegistry, config_fingerprint, file_identity


class StepClock:
    """Clock that advances one second per call so creation order is strict."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def registry(tmp_path: Path) -> TaskRegistry:
    return TaskRegistry(tmp_path / "out", clock=StepClock())


@pytest.fixture
def data_file(tmp_path: Path) -> Path:
    path = tmp_path / "data.csv"
    path.write_text("text\nhello\n")
    return path


class TestFileIdentity:
    def test_stat_identity_changes_with_mtime(self, data_file: Path) -> None:
        before = file_identity(data_file)
        stat = data_file.stat()
        os.utime(data_file, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))
        assert file_identity(data_file) != before

    def test_content_identity_ignores_location(self, tmp_path: Path, data_file: Path) -> None:
        copy = tmp_path / "copy.csv"
        copy.write_bytes(data_file.read_bytes())
        assert file_identity(data_file, "content") == file_identity(copy, "content")
        assert file_identity(data_file, "stat") != file_identity(copy, "stat")

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(InputValidationError):
            file_identity(tmp_path / "absent.csv")


class TestConfigFingerprint:
    def test_api_key_excluded(
        self, llm_config_dict: dict[str, Any], prompt_config_dict: dict[str, Any]
    ) -> None:
        prompt = parse_prompt_config(prompt_config_dict)
        first = config_fingerprint(parse_api_config(llm_config_dict), prompt, [0])
        llm_config_dict["api_key"] = "sk-rotated"
        second = config_fingerprint(parse_api_config(llm_config_dict), prompt, [0])
        assert first == second

    def test_fields_and_window_included(
        self, llm_config_dict: dict[str, Any], prompt_config_dict: dict[str, Any]
    ) -> None:
        api = parse_api_config(llm_config_dict)
        prompt = parse_prompt_config(prompt_config_dict)
        base = config_fingerprint(api, prompt, [0])
        assert config_fingerprint(api, prompt, [0, 1]) != base
        assert config_fingerprint(api, prompt, [0], 5, 10) != base

    def test_prompt_change_changes_hash(
        self, llm_config_dict: dict[str, Any], prompt_config_dict: dict[str, Any]
    ) -> None:
        api = parse_api_config(llm_config_dict)
        base = config_fingerprint(api, parse_prompt_config(prompt_config_dict), [0])
        prompt_config_dict["system"] = "Be terse."
        assert config_fingerprint(api, parse_prompt_config(prompt_config_dict), [0]) != base


class TestCreateTask:
    def test_layout_and_metadata(self, registry: TaskRegistry, data_file: Path) -> None:
        task = registry.create_task(data_file, "d" * 64, "c" * 64, [0], config={"k": "v"})

        assert task.id.startswith("task_")
        assert task.id.endswith("_dddddddd_cccccccc")
        assert task.task_dir == registry.tasks_dir / task.id
        metadata = json.loads(task.metadata_file.read_text())
        assert metadata["status"] == "created"
        assert metadata["dataFile"] == str(data_file.resolve())
        assert metadata["dataFileHash"] == "d" * 64
        assert metadata["configHash"] == "c" * 64
        assert metadata["selectedFields"] == [0]
        assert metadata["config"] == {"k": "v"}

        files = task.output_files()
        assert Path(files.success_file).name.startswith("results_dddddddd_cccccccc_")
        assert files.success_file.endswith(".csv")
        assert Path(files.error_file).name.startswith("errors_")
        assert files.raw_response_file.endswith(".jsonl")
        assert Path(files.progress_file).name == "progress.json"

    def test_ids_are_unique(self, registry: TaskRegistry, data_file: Path) -> None:
        ids = {registry.create_task(data_file, "a" * 64, "b" * 64, [0]).id for _ in range(5)}
        assert len(ids) == 5

    def test_get_task_round_trip(self, registry: TaskRegistry, data_file: Path) -> None:
        created = registry.create_task(data_file, "a" * 64, "b" * 64, [1, 2], start_pos=3, end_pos=9)
        loaded = registry.get_task(created.id)
        assert loaded.selected_fields == [1, 2]
        assert (loaded.start_pos, loaded.end_pos) == (3, 9)
        assert loaded.output_files() == created.output_files()


class TestFindResumableTask:
    def test_matches_identity(self, registry: TaskRegistry, data_file: Path) -> None:
        task = registry.create_task(data_file, "a" * 64, "b" * 64, [0])
        assert registry.find_resumable_task("a" * 64, "b" * 64).id == task.id  # type: ignore[union-attr]
        assert registry.find_resumable_task("a" * 64, "x" * 64) is None
        assert registry.find_resumable_task("x" * 64, "b" * 64) is None

    def test_completed_task_not_resumed(self, registry: TaskRegistry, data_file: Path) -> None:
        task = registry.create_task(data_file, "a" * 64, "b" * 64, [0])
        registry.update_task_status(task.id, TaskStatus.PROCESSING)
        registry.update_task_status(task.id, TaskStatus.COMPLETED)
        assert registry.find_resumable_task("a" * 64, "b" * 64) is None

    def test_error_task_is_resumable(self, registry: TaskRegistry, data_file: Path) -> None:
        task = registry.create_task(data_file, "a" * 64, "b" * 64, [0])
        registry.update_task_status(task.id, TaskStatus.ERROR)
        assert registry.find_resumable_task("a" * 64, "b" * 64).id == task.id  # type: ignore[union-attr]

    def test_newest_match_wins(self, registry: TaskRegistry, data_file: Path) -> None:
        registry.create_task(data_file, "a" * 64, "b" * 64, [0])
        newer = registry.create_task(data_file, "a" * 64, "b" * 64, [0])
        assert registry.find_resumable_task("a" * 64, "b" * 64).id == newer.id  # type: ignore[union-attr]

    def test_unreadable_metadata_skipped(self, registry: TaskRegistry, data_file: Path) -> None:
        broken = registry.tasks_dir / "task_broken"
        broken.mkdir()
        (broken / "metadata.json").write_text("{oops")
        task = registry.create_task(data_file, "a" * 64, "b" * 64, [0])
        assert registry.find_resumable_task("a" * 64, "b" * 64).id == task.id  # type: ignore[union-attr]


class TestStatusTransitions:
    def test_legal_path(self, registry: TaskRegistry, data_file: Path) -> None:
        task = registry.create_task(data_file, "a" * 64, "b" * 64, [0])
        for status in (
            TaskStatus.PROCESSING,
            TaskStatus.PAUSED,
            TaskStatus.PROCESSING,
            TaskStatus.COMPLETED,
        ):
            assert registry.update_task_status(task.id, status).status == status
        assert registry.get_task(task.id).status == TaskStatus.COMPLETED

    def test_completed_is_terminal(self, registry: TaskRegistry, data_file: Path) -> None:
        task = registry.create_task(data_file, "a" * 64, "b" * 64, [0])
        registry.update_task_status(task.id, TaskStatus.PROCESSING)
        registry.update_task_status(task.id, TaskStatus.COMPLETED)
        with pytest.raises(TaskStateError):
            registry.update_task_status(task.id, TaskStatus.PROCESSING)

    def test_created_cannot_complete(self, registry: TaskRegistry, data_file: Path) -> None:
        task = registry.create_task(data_file, "a" * 64, "b" * 64, [0])
        with pytest.raises(TaskStateError):
            registry.update_task_status(task.id, TaskStatus.COMPLETED)

    def test_same_status_is_noop(self, registry: TaskRegistry, data_file: Path) -> None:
        task = registry.create_task(data_file, "a" * 64, "b" * 64, [0])
        before = task.metadata_file.read_text()
        registry.update_task_status(task.id, TaskStatus.CREATED)
        assert task.metadata_file.read_text() == before

    def test_unknown_task(self, registry: TaskRegistry) -> None:
        with pytest.raises(TaskNotFoundError):
            registry.update_task_status("task_missing", TaskStatus.PROCESSING)

    @pytest.mark.parametrize("bad_id", ["../etc", "task/../x", ""])
    def test_malformed_id(self, registry: TaskRegistry, bad_id: str) -> None:
        with pytest.raises(TaskNotFoundError):
            registry.get_task(bad_id)


class TestListingAndProgress:
    def test_list_newest_first(self, registry: TaskRegistry, data_file: Path) -> None:
        first = registry.create_task(data_file, "a" * 64, "b" * 64, [0])
        second = registry.create_task(data_file, "c" * 64, "d" * 64, [0])
        listing = registry.list_tasks()
        assert [t["id"] for t in listing] == [second.id, first.id]
        assert set(listing[0]) == {"id", "status", "createdAt", "dataFile"}

    def test_progress_absent_until_started(self, registry: TaskRegistry, data_file: Path) -> None:
        task = registry.create_task(data_file, "a" * 64, "b" * 64, [0])
        assert registry.get_task_progress(task.id) is None


class TestCleanup:
    def test_deletes_only_old_tasks(self, tmp_path: Path, data_file: Path) -> None:
        old_clock = StepClock(datetime(2024, 1, 1, tzinfo=UTC))
        registry = TaskRegistry(tmp_path / "out", clock=old_clock)
        old = registry.create_task(data_file, "a" * 64, "b" * 64, [0])
        old_clock.now = datetime(2024, 1, 20, tzinfo=UTC)
        recent = registry.create_task(data_file, "c" * 64, "d" * 64, [0])

        result = registry.cleanup_old_tasks(7, as_of=datetime(2024, 1, 21, tzinfo=UTC))

        assert result.deleted_ids == [old.id]
        assert result.deleted_count == 1
        assert result.bytes_freed > 0
        assert not old.task_dir.exists()
        assert recent.task_dir.exists()

    def test_excluded_task_kept(self, tmp_path: Path, data_file: Path) -> None:
        registry = TaskRegistry(tmp_path / "out", clock=StepClock(datetime(2024, 1, 1, tzinfo=UTC)))
        task = registry.create_task(data_file, "a" * 64, "b" * 64, [0])
        result = registry.cleanup_old_tasks(
            1, exclude=[task.id], as_of=datetime(2024, 3, 1, tzinfo=UTC)
        )
        assert result.deleted_count == 0
        assert task.task_dir.exists()

    def test_any_status_is_deleted(self, tmp_path: Path, data_file: Path) -> None:
        registry = TaskRegistry(tmp_path / "out", clock=StepClock(datetime(2024, 1, 1, tzinfo=UTC)))
        task = registry.create_task(data_file, "a" * 64, "b" * 64, [0])
        registry.update_task_status(task.id, TaskStatus.PROCESSING)
        result = registry.cleanup_old_tasks(1, as_of=datetime(2024, 3, 1, tzinfo=UTC))
        assert result.deleted_ids == [task.id]
