# src/promptbatch/plugins/sources/excel_source.py
"""Spreadsheet row source: first sheet, first row as header."""

import zipfile
from collections.abc import Iterator
from pathlib import Path

import pandas as pd

from promptbatch.contracts.errors import DataSourceError
from promptbatch.plugins.sources.base import BaseSource, SourceRow


class ExcelSource(BaseSource):
    """Load rows from the first worksheet of an Excel workbook.

    Workbooks cannot be streamed, so the sheet is loaded once and cached.
    """

    name = "excel"
    extensions = (".xlsx",)

    def __init__(self, path: Path, *, encoding: str = "utf-8") -> None:
        super().__init__(path, encoding=encoding)
        self._dataframe: pd.DataFrame | None = None

    def _frame(self) -> pd.DataFrame:
        if self._dataframe is None:
            try:
                self._dataframe = pd.read_excel(
                    self._path,
                    sheet_name=0,
                    header=0,
                    dtype=str,
                    keep_default_na=False,
                )
            except (ValueError, OSError, ImportError, zipfile.BadZipFile) as e:
                raise DataSourceError(f"Cannot read workbook {self._path}: {e}") from e
        return self._dataframe

    def column_count(self) -> int:
        return len(self._frame().columns)

    def count_rows(self) -> int:
        return len(self._frame())

    def iter_rows(self, start: int, end: int | None) -> Iterator[SourceRow]:
        frame = self._frame()
        headers = [str(c) for c in frame.columns]
        window = frame.iloc[start:end]
        for offset, record in enumerate(window.itertuples(index=False, name=None)):
            values = list(record)
            yield SourceRow(start + offset, dict(zip(headers, values, strict=True)), values)
