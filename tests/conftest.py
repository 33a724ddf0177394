# tests/conftest.py
"""Shared test fixtures and helpers.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/
"""

import csv
import json
import logging
import os
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import httpx
import pytest
import structlog
from hypothesis import Phase, Verbosity, settings

# =============================================================================
# Hypothesis Configuration
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Data files
# =============================================================================


def write_csv(path: Path, header: list[str], rows: list[list[Any]]) -> Path:
    """Write a CSV file with a header row."""
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        writer.writerows(rows)
    return path


def read_csv_rows(path: Path) -> list[dict[str, str]]:
    with open(path, encoding="utf-8", newline="") as f:
        return list(csv.DictReader(f))


@pytest.fixture
def names_csv(tmp_path: Path) -> Path:
    """Three-row CSV: name,age."""
    return write_csv(tmp_path / "people.csv", ["name", "age"], [["Alice", 30], ["Bob", 25], ["Carol", 41]])


@pytest.fixture
def numbered_csv(tmp_path: Path) -> Callable[[int], Path]:
    """Factory for a CSV with n rows: id,text."""

    def _make(n: int) -> Path:
        return write_csv(
            tmp_path / f"numbered_{n}.csv",
            ["id", "text"],
            [[i, f"row {i}"] for i in range(n)],
        )

    return _make


# =============================================================================
# Configuration
# =============================================================================


@pytest.fixture
def llm_config_dict() -> dict[str, Any]:
    return {
        "api_type": "llm",
        "api_key": "sk-test-0123456789",
        "api_url": "https://api.example.com",
        "model": "test-model",
        "max_retries": 3,
        "retry_interval": 0.5,
    }


@pytest.fixture
def prompt_config_dict() -> dict[str, Any]:
    return {
        "system": "You are a test assistant.",
        "task": "Summarize: {input_text}",
        "output": '{"summary": "..."}',
    }


# =============================================================================
# HTTP fakes
# =============================================================================


def chat_response(payload: Any, status_code: int = 200) -> httpx.Response:
    """Chat-completions response whose assistant message is JSON of payload."""
    return httpx.Response(
        status_code,
        json={"choices": [{"message": {"role": "assistant", "content": json.dumps(payload)}}]},
    )


def user_content(request: httpx.Request) -> str:
    """User message of a chat-completions request."""
    body = json.loads(request.content)
    return str(body["messages"][1]["content"])


class RecordingSleep:
    """Sleep stand-in that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_csv() -> Callable[[Path, list[str], list[list[Any]]], Path]:
    return write_csv


@pytest.fixture
def read_rows() -> Callable[[Path], list[dict[str, str]]]:
    return read_csv_rows


@pytest.fixture
def chat_reply() -> Callable[..., httpx.Response]:
    return chat_response


@pytest.fixture
def request_content() -> Callable[[httpx.Request], str]:
    return user_content


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    """Undo configure_logging() calls made by CLI tests.

    The CLI binds log output to the current stderr, which CliRunner
    replaces and closes after each invocation.
    """
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    structlog.reset_defaults()
    root.handlers[:] = handlers
    root.setLevel(level)
