# src/promptbatch/plugins/sources/reader.py
"""Tabular reader: windowed, field-selected, batched rows from a data file.

The reader picks a row source by file extension, then applies the
start/end window and the field selection and groups rows into batches.
Row indices on the produced records are relative to the window start.
"""

from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any

import structlog

from promptbatch.contracts.errors import DataSourceError, InputValidationError
from promptbatch.contracts.results import RowRecord
from promptbatch.plugins.sources.base import BaseSource
from promptbatch.plugins.sources.csv_source import CSVSource
from promptbatch.plugins.sources.excel_source import ExcelSource
from promptbatch.plugins.sources.json_source import JSONSource

logger = structlog.get_logger(__name__)

SOURCE_TYPES: tuple[type[BaseSource], ...] = (CSVSource, ExcelSource, JSONSource)

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(
    ext for source in SOURCE_TYPES for ext in source.extensions
)


def source_for(path: Path, *, encoding: str = "utf-8") -> BaseSource:
    """Instantiate the row source for a file extension.

    Raises:
        DataSourceError: If the extension is not supported.
    """
    suffix = path.suffix.lower()
    for source_type in SOURCE_TYPES:
        if suffix in source_type.extensions:
            return source_type(path, encoding=encoding)
    raise DataSourceError(
        f"Unsupported file format: {suffix or '<none>'} "
        f"(expected one of {', '.join(sorted(SUPPORTED_EXTENSIONS))})"
    )


def select_content(values: Sequence[Any], fields: Sequence[int] | None) -> str:
    """Join the selected field values into row content.

    Missing indices read as empty; None and empty values are dropped;
    each value is stripped; the rest are joined by a single space.
    With no selection, field 0 is used.
    """
    indices = list(fields) if fields else [0]
    picked = [values[i] if 0 <= i < len(values) else "" for i in indices]
    parts = (str(v).strip() for v in picked if v is not None and v != "")
    return " ".join(p for p in parts if p)


class TabularReader:
    """Lazy batched reader over a CSV, Excel or JSON(L) file.

    Example:
        reader = TabularReader(Path("data.csv"), batch_size=5, fields=[0, 2])
        for batch in reader.read_batches():
            for row in batch:
                print(row.index, row.content)
    """

    def __init__(
        self,
        path: Path,
        *,
        batch_size: int = 5,
        fields: Sequence[int] | None = None,
        start_pos: int = 0,
        end_pos: int | None = None,
        encoding: str = "utf-8",
    ) -> None:
        if batch_size <= 0:
            raise InputValidationError(f"batch_size must be positive, got {batch_size}")
        if start_pos < 0:
            raise InputValidationError(f"start position must be >= 0, got {start_pos}")
        if end_pos is not None and end_pos < 0:
            raise InputValidationError(f"end position must be >= 0, got {end_pos}")
        if fields is not None and any(f < 0 for f in fields):
            raise InputValidationError(f"field indices must be >= 0, got {list(fields)}")

        self._path = path
        self._source = source_for(path, encoding=encoding)
        self._batch_size = batch_size
        self._fields = list(fields) if fields else None
        self._start = start_pos
        self._end = end_pos

    @property
    def path(self) -> Path:
        return self._path

    @property
    def fields(self) -> list[int]:
        """Effective field selection (defaults to field 0)."""
        return self._fields or [0]

    def count_rows(self) -> int:
        """Total data rows in the file, ignoring the window."""
        return self._source.count_rows()

    def window_size(self) -> int:
        """Number of rows inside the start/end window."""
        total = self.count_rows()
        end = total if self._end is None else min(self._end, total)
        return max(0, end - self._start)

    def column_count(self) -> int:
        return self._source.column_count()

    def read_batches(self, offset: int = 0) -> Iterator[list[RowRecord]]:
        """Yield batches of row records, starting `offset` rows into the window.

        The sequence is finite and not restartable; call again for a new pass.
        """
        if offset < 0:
            raise ValueError(f"offset must be >= 0, got {offset}")
        first = self._start + offset
        if self._end is not None and first >= self._end:
            return

        batch: list[RowRecord] = []
        rows = 0
        for row in self._source.iter_rows(first, self._end):
            rows += 1
            batch.append(
                RowRecord(
                    index=row.source_index - self._start,
                    source_index=row.source_index,
                    content=select_content(row.values, self._fields),
                    original_data=row.original,
                    values=tuple(row.values),
                )
            )
            if len(batch) >= self._batch_size:
                yield batch
                batch = []
        if batch:
            yield batch
        logger.debug(
            "reader_pass_finished",
            path=str(self._path),
            source=self._source.name,
            first=first,
            rows=rows,
        )
