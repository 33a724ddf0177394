"""Progress events pushed to observers (UI, CLI, websocket bridge)."""

from dataclasses import dataclass
from typing import Any, Protocol

from promptbatch.contracts.enums import EventType


@dataclass(frozen=True)
class ProgressEvent:
    """One event in the progress stream.

    One PROGRESS event is emitted per committed batch, plus lifecycle
    milestones (STARTED, PAUSED, RESUMED, STOPPED, COMPLETED, FAILED).
    """

    type: EventType
    task_id: str
    progress: dict[str, Any] | None = None
    result: dict[str, Any] | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type.value, "taskId": self.task_id}
        if self.progress is not None:
            payload["progress"] = self.progress
        if self.result is not None:
            payload["result"] = self.result
        if self.error is not None:
            payload["error"] = self.error
        return payload


class ProgressObserver(Protocol):
    """Sink for progress events. Must not block for long."""

    def __call__(self, event: ProgressEvent) -> None: ...
