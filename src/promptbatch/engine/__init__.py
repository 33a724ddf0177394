"""Batch engine: the orchestrator control loop and the task service."""

from promptbatch.engine.orchestrator import BatchOrchestrator, RunRequest
from promptbatch.engine.service import TaskService

__all__ = ["BatchOrchestrator", "RunRequest", "TaskService"]
