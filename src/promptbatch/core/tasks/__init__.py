"""Task identity, directories and lifecycle metadata."""

from promptbatch.core.tasks.registry import (
    ALLOWED_TRANSITIONS,
    TaskInfo,
    TaskRegistry,
    config_fingerprint,
    file_identity,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "TaskInfo",
    "TaskRegistry",
    "config_fingerprint",
    "file_identity",
]
