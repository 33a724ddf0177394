# src/promptbatch/plugins/sinks/jsonl_sink.py
"""Append-only JSONL writer for raw provider responses."""

import json
from collections.abc import Sequence
from pathlib import Path
from typing import IO, Any

from promptbatch.core.canonical import to_json_safe


class JSONLSink:
    """Write one JSON object per line, appending to an existing file."""

    def __init__(self, path: Path, *, encoding: str = "utf-8") -> None:
        self._path = path
        self._encoding = encoding
        self._file: IO[str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def write(self, rows: Sequence[dict[str, Any]]) -> None:
        if not rows:
            return
        if self._file is None:
            self._file = open(self._path, "a", encoding=self._encoding)  # noqa: SIM115 - lifecycle managed by class
        for row in rows:
            self._file.write(json.dumps(to_json_safe(row), ensure_ascii=False))
            self._file.write("\n")
        self._file.flush()

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
