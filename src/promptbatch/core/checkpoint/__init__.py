"""Checkpoint subsystem for crash recovery.

Provides:
- ProgressTracker: durable counters, cursor and output files per task
- Progress: the progress.json snapshot model
- progress_payload: event/status rendering of a snapshot
"""

from promptbatch.core.checkpoint.progress import (
    Progress,
    ProgressTracker,
    load_progress_file,
    progress_payload,
)

__all__ = ["Progress", "ProgressTracker", "load_progress_file", "progress_payload"]
