"""Exception hierarchy.

Row-level failures are never raised past the batch boundary; they are
carried as RowOutcome values. Everything here is either an input problem
surfaced before a task exists, or a task-level failure.
"""

from typing import Any


class PromptBatchError(Exception):
    """Base class for all promptbatch errors."""


class ConfigurationError(PromptBatchError):
    """Raised when api, prompt or processing configuration is invalid."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class InputValidationError(PromptBatchError):
    """Raised for bad run inputs: missing file, field out of range, empty window."""


class DataSourceError(PromptBatchError):
    """Raised when a data file cannot be read as a table."""


class RetriesExhaustedError(PromptBatchError):
    """Raised by a provider when every attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_error: str) -> None:
        super().__init__(f"Request failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class TaskNotFoundError(PromptBatchError):
    """Raised when a task id has no directory or metadata."""


class TaskAlreadyRunningError(PromptBatchError):
    """Raised when a run is requested while another one is active."""


class TaskStateError(PromptBatchError):
    """Raised on an illegal task status transition."""
