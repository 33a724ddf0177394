# src/promptbatch/plugins/sources/base.py
"""Base class for row sources.

A row source decodes one file format into ordered rows. Windowing,
field selection and batching are applied on top by TabularReader.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from pathlib import Path
from typing import Any, NamedTuple


class SourceRow(NamedTuple):
    """One decoded data row.

    Attributes:
        source_index: 0-based position in the data region (header excluded).
        original: The row as decoded (dict for tabular formats).
        values: Field values in column order.
    """

    source_index: int
    original: Any
    values: list[Any]


def row_values(row: Any, headers: list[str] | None = None) -> list[Any]:
    """Flatten a decoded row into an ordered value list.

    Lists are taken as-is, mappings follow the header order when one is
    known and insertion order otherwise, scalars become a single field.
    """
    if isinstance(row, list):
        return row
    if isinstance(row, dict):
        if headers is not None:
            return [row.get(h, "") for h in headers]
        return list(row.values())
    return [row]


class BaseSource(ABC):
    """Abstract row source.

    Subclasses set `name` and `extensions` and implement the three
    reading operations. Sources never hold file handles between calls.
    """

    name: str
    extensions: tuple[str, ...] = ()

    def __init__(self, path: Path, *, encoding: str = "utf-8") -> None:
        self._path = path
        self._encoding = encoding

    @property
    def path(self) -> Path:
        return self._path

    @abstractmethod
    def iter_rows(self, start: int, end: int | None) -> Iterator[SourceRow]:
        """Yield rows with start <= source_index < end (end=None means to EOF)."""
        ...

    @abstractmethod
    def count_rows(self) -> int:
        """Count all data rows with an independent scan of the file."""
        ...

    @abstractmethod
    def column_count(self) -> int:
        """Number of addressable fields per row."""
        ...
