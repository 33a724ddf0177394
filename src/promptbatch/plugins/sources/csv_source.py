# src/promptbatch/plugins/sources/csv_source.py
"""CSV row source.

Reads delimited text with pandas in chunks so only one window of the
file is held in memory at a time. The first line is the header.
"""

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pandas as pd
import structlog

from promptbatch.contracts.errors import DataSourceError
from promptbatch.plugins.sources.base import BaseSource, SourceRow

logger = structlog.get_logger(__name__)

_COUNT_CHUNK = 10_000


class CSVSource(BaseSource):
    """Load rows from a CSV file with a header row.

    All values are read as strings; empty cells stay empty strings.
    """

    name = "csv"
    extensions = (".csv",)

    def __init__(self, path: Path, *, encoding: str = "utf-8", chunk_size: int = 500) -> None:
        super().__init__(path, encoding=encoding)
        self._chunk_size = chunk_size

    def _read(self, **kwargs: Any) -> Any:
        """Run read_csv; returns None for a file with no header at all."""
        try:
            return pd.read_csv(
                self._path,
                encoding=self._encoding,
                dtype=str,  # Keep all values as strings for consistent handling
                keep_default_na=False,  # Don't convert empty strings to NaN
                **kwargs,
            )
        except pd.errors.EmptyDataError:
            return None
        except (pd.errors.ParserError, UnicodeDecodeError, OSError) as e:
            raise DataSourceError(f"Cannot read CSV file {self._path}: {e}") from e

    def headers(self) -> list[str]:
        frame = self._read(nrows=0)
        if frame is None:
            return []
        return [str(c) for c in frame.columns]

    def column_count(self) -> int:
        return len(self.headers())

    def count_rows(self) -> int:
        chunks = self._read(chunksize=_COUNT_CHUNK)
        if chunks is None:
            return 0
        with chunks:
            return sum(len(chunk) for chunk in chunks)

    def iter_rows(self, start: int, end: int | None) -> Iterator[SourceRow]:
        if end is not None and end <= start:
            return
        chunks = self._read(chunksize=self._chunk_size)
        if chunks is None:
            return
        # Positions count parsed records, as count_rows does; blank lines are not records
        index = 0
        emitted = 0
        try:
            with chunks:
                for chunk in chunks:
                    if index + len(chunk) <= start:
                        index += len(chunk)
                        continue
                    headers = [str(c) for c in chunk.columns]
                    for record in chunk.itertuples(index=False, name=None):
                        if end is not None and index >= end:
                            break
                        if index >= start:
                            values = list(record)
                            yield SourceRow(index, dict(zip(headers, values, strict=True)), values)
                            emitted += 1
                        index += 1
                    if end is not None and index >= end:
                        break
        except pd.errors.ParserError as e:
            raise DataSourceError(f"Cannot read CSV file {self._path}: {e}") from e
        logger.debug("csv_window_read", path=str(self._path), start=start, rows=emitted)
