"""Row records, row outcomes and run summaries.

These types answer two questions: "what did the reader produce?" and
"what happened to each row?"

IMPORTANT: RowOutcome.status uses Literal["success", "error", "skipped"],
not an enum. Row-level failures are values, never exceptions.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

from promptbatch.contracts.enums import RunState


@dataclass(frozen=True)
class RowRecord:
    """One input row reduced to what the pipeline needs.

    Attributes:
        index: 0-based position within the windowed data region.
            This is what the progress cursor counts.
        source_index: 0-based position in the data region before windowing.
        content: Selected field values joined by a single space.
        original_data: The row as decoded from the file (dict, list or scalar).
        values: Ordered field values used for field-index selection.
    """

    index: int
    source_index: int
    content: str
    original_data: Any
    values: tuple[Any, ...] = ()

    def original_text(self) -> str:
        """Flatten the original row to a comma-joined string for error records."""
        return ",".join("" if v is None else str(v) for v in self.values)


@dataclass
class RowOutcome:
    """Outcome of sending one row through a provider.

    Use the factory methods to create instances.
    """

    status: Literal["success", "error", "skipped"]
    row_index: int
    data: dict[str, Any] | None = None
    raw_response: Any = None
    original_content: str = ""
    error: str | None = None
    retry_count: int = 0

    @classmethod
    def success(
        cls, row_index: int, data: dict[str, Any], raw_response: Any = None
    ) -> "RowOutcome":
        """Create successful outcome with the output row."""
        return cls(status="success", row_index=row_index, data=data, raw_response=raw_response)

    @classmethod
    def failure(
        cls,
        row_index: int,
        original_content: str,
        error: str,
        *,
        retry_count: int = 0,
    ) -> "RowOutcome":
        """Create error outcome with a message for the error log."""
        return cls(
            status="error",
            row_index=row_index,
            original_content=original_content,
            error=error,
            retry_count=retry_count,
        )

    @classmethod
    def skipped(cls, row_index: int, original_content: str = "") -> "RowOutcome":
        """Create skipped outcome (counted, not written to any output file)."""
        return cls(status="skipped", row_index=row_index, original_content=original_content)

    @property
    def is_success(self) -> bool:
        return self.status == "success"


@dataclass(frozen=True)
class OutputFiles:
    """Paths of everything a task writes."""

    task_dir: str
    success_file: str
    error_file: str
    progress_file: str
    raw_response_file: str

    def to_dict(self) -> dict[str, str]:
        return {
            "taskDir": self.task_dir,
            "successFile": self.success_file,
            "errorFile": self.error_file,
            "progressFile": self.progress_file,
            "rawResponseFile": self.raw_response_file,
        }


@dataclass
class RunSummary:
    """Result of one orchestrator run."""

    task_id: str
    state: RunState
    total_rows: int
    processed_rows: int
    success_count: int
    error_count: int
    skipped_count: int
    output_files: OutputFiles
    resumed: bool = False
    batches: int = field(default=0, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskId": self.task_id,
            "state": self.state.value,
            "totalRows": self.total_rows,
            "processedRows": self.processed_rows,
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "skippedCount": self.skipped_count,
            "resumed": self.resumed,
            "outputFiles": self.output_files.to_dict(),
        }
