# src/promptbatch/plugins/sinks/csv_sink.py
"""Append-only CSV writers for task output.

ResultCSVSink writes success rows with a header discovered from the
first batch. ErrorCSVSink writes the fixed error-record layout.
Both append, so a resumed task keeps extending the same files.
"""

import csv
import json
from collections.abc import Sequence
from pathlib import Path
from typing import IO, Any

ERROR_COLUMNS: tuple[str, ...] = (
    "row_index",
    "original_content",
    "error_message",
    "timestamp",
    "retry_count",
)


def _cell(value: Any) -> Any:
    """Render one value for a CSV cell; containers become JSON text."""
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return value


class ResultCSVSink:
    """Write success rows to a CSV file.

    The header comes from the existing file when appending to one,
    otherwise from the keys of the first row written. Later rows with
    keys outside the header have those keys dropped; missing keys
    become empty cells.
    """

    def __init__(self, path: Path, *, encoding: str = "utf-8") -> None:
        self._path = path
        self._encoding = encoding
        self._file: IO[str] | None = None
        self._writer: csv.DictWriter[str] | None = None
        self._fieldnames: list[str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def fieldnames(self) -> list[str] | None:
        return self._fieldnames

    def _existing_header(self) -> list[str] | None:
        if not self._path.exists() or self._path.stat().st_size == 0:
            return None
        with open(self._path, encoding=self._encoding, newline="") as f:
            return next(csv.reader(f), None)

    def write(self, rows: Sequence[dict[str, Any]]) -> None:
        """Append a batch of rows and flush them to disk."""
        if not rows:
            return

        # Lazy initialization - discover fieldnames from file or first batch
        if self._file is None:
            header = self._existing_header()
            needs_header = header is None
            if header is None:
                header = []
                for row in rows:
                    header.extend(k for k in row if k not in header)
            self._fieldnames = header
            self._file = open(  # noqa: SIM115 - lifecycle managed by class
                self._path, "a", encoding=self._encoding, newline=""
            )
            self._writer = csv.DictWriter(
                self._file,
                fieldnames=self._fieldnames,
                extrasaction="ignore",
                restval="",
            )
            if needs_header:
                self._writer.writeheader()

        for row in rows:
            self._writer.writerow({k: _cell(v) for k, v in row.items()})  # type: ignore[union-attr]
        self._file.flush()

    def close(self) -> None:
        """Close the file handle."""
        if self._file is not None:
            self._file.close()
            self._file = None
            self._writer = None


class ErrorCSVSink:
    """Write error records with a fixed header.

    Strings are always quoted and embedded quotes are doubled, so the
    original content round-trips through any CSV parser.
    """

    def __init__(self, path: Path, *, encoding: str = "utf-8") -> None:
        self._path = path
        self._encoding = encoding
        if not self._path.exists() or self._path.stat().st_size == 0:
            with open(self._path, "w", encoding=self._encoding, newline="") as f:
                csv.writer(f).writerow(ERROR_COLUMNS)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, records: Sequence[tuple[int, str, str, str, int]]) -> None:
        """Append (row_index, original_content, error_message, timestamp, retry_count) records."""
        if not records:
            return
        with open(self._path, "a", encoding=self._encoding, newline="") as f:
            writer = csv.writer(f, quoting=csv.QUOTE_NONNUMERIC)
            writer.writerows(records)
            f.flush()

    def close(self) -> None:
        """Nothing held open between writes."""
