"""Shared contracts for cross-boundary data types.

Import pattern:
    from promptbatch.contracts import RowOutcome, TaskStatus, ProgressEvent
"""

from promptbatch.contracts.enums import (
    ApiType,
    EventType,
    ProgressStatus,
    RunState,
    TaskStatus,
)
from promptbatch.contracts.errors import (
    ConfigurationError,
    DataSourceError,
    InputValidationError,
    PromptBatchError,
    RetriesExhaustedError,
    TaskAlreadyRunningError,
    TaskNotFoundError,
    TaskStateError,
)
from promptbatch.contracts.events import ProgressEvent, ProgressObserver
from promptbatch.contracts.results import OutputFiles, RowOutcome, RowRecord, RunSummary

__all__ = [
    "ApiType",
    "ConfigurationError",
    "DataSourceError",
    "EventType",
    "InputValidationError",
    "OutputFiles",
    "ProgressEvent",
    "ProgressObserver",
    "ProgressStatus",
    "PromptBatchError",
    "RetriesExhaustedError",
    "RowOutcome",
    "RowRecord",
    "RunState",
    "RunSummary",
    "TaskAlreadyRunningError",
    "TaskNotFoundError",
    "TaskStateError",
    "TaskStatus",
]
