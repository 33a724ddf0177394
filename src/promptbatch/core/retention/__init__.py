"""Retention: age-based cleanup of task directories."""

from promptbatch.core.retention.purge import PurgeManager, PurgeResult

__all__ = ["PurgeManager", "PurgeResult"]
