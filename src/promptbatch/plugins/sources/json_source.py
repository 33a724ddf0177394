# src/promptbatch/plugins/sources/json_source.py
"""JSON row source. Supports a JSON array and newline-delimited JSON.

The format is detected by counting non-empty lines: a single line is
parsed as one document, several lines are parsed one object per line.
"""

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import structlog

from promptbatch.contracts.errors import DataSourceError
from promptbatch.plugins.sources.base import BaseSource, SourceRow, row_values

logger = structlog.get_logger(__name__)


class JSONSource(BaseSource):
    """Load rows from a JSON or JSONL file.

    Unparsable lines in a multi-line file are skipped with a warning and
    do not count as rows. A malformed single-line document is fatal.
    """

    name = "json"
    extensions = (".json", ".jsonl")

    def __init__(self, path: Path, *, encoding: str = "utf-8") -> None:
        super().__init__(path, encoding=encoding)
        self._rows: list[Any] | None = None

    def _load(self) -> list[Any]:
        if self._rows is not None:
            return self._rows
        try:
            content = self._path.read_text(encoding=self._encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise DataSourceError(f"Cannot read JSON file {self._path}: {e}") from e

        lines = [line.strip() for line in content.strip().splitlines()]
        lines = [line for line in lines if line]

        rows: list[Any] = []
        if len(lines) == 1:
            try:
                data = json.loads(lines[0])
            except json.JSONDecodeError as e:
                raise DataSourceError(f"Invalid JSON document in {self._path}: {e}") from e
            rows = data if isinstance(data, list) else [data]
        else:
            for line_no, line in enumerate(lines, start=1):
                try:
                    rows.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.warning(
                        "jsonl_line_skipped",
                        path=str(self._path),
                        line=line_no,
                        preview=line[:50],
                    )
        self._rows = rows
        return rows

    def column_count(self) -> int:
        return max((len(row_values(row)) for row in self._load()), default=0)

    def count_rows(self) -> int:
        return len(self._load())

    def iter_rows(self, start: int, end: int | None) -> Iterator[SourceRow]:
        rows = self._load()
        for offset, row in enumerate(rows[start:end]):
            yield SourceRow(start + offset, row, row_values(row))
