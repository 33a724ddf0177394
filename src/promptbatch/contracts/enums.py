"""Status codes and kinds used across subsystem boundaries.

All enums use (str, Enum) because their values are persisted to
metadata.json / progress.json and pushed to observers as-is.
"""

from enum import Enum


class TaskStatus(str, Enum):
    """Lifecycle status of a task as recorded in metadata.json."""

    CREATED = "created"
    PROCESSING = "processing"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


class ProgressStatus(str, Enum):
    """Status of the progress tracker state machine.

    RESUMING is a transient label applied right after a successful
    reload from disk. It is functionally equivalent to PROCESSING.
    """

    INITIALIZING = "initializing"
    PROCESSING = "processing"
    RESUMING = "resuming"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


class RunState(str, Enum):
    """State of a single orchestrator run.

    STOPPED and ERROR are terminal for the run. A fresh invocation
    creates or resumes a task instead of mutating a finished run.
    """

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"
    STOPPED = "stopped"


class EventType(str, Enum):
    """Type of a progress event pushed to observers."""

    STARTED = "started"
    PROGRESS = "progress"
    PAUSED = "paused"
    RESUMED = "resumed"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"


class ApiType(str, Enum):
    """Provider variant selected by the api_type config field."""

    LLM = "llm"
    ALIYUN_AGENT = "aliyun_agent"
