"""Row sources and the tabular reader.

Sources decode one file format each; the reader windows and batches them.
"""

from promptbatch.plugins.sources.base import BaseSource, SourceRow
from promptbatch.plugins.sources.csv_source import CSVSource
from promptbatch.plugins.sources.excel_source import ExcelSource
from promptbatch.plugins.sources.json_source import JSONSource
from promptbatch.plugins.sources.reader import (
    SUPPORTED_EXTENSIONS,
    TabularReader,
    select_content,
    source_for,
)

__all__ = [
    "SUPPORTED_EXTENSIONS",
    "BaseSource",
    "CSVSource",
    "ExcelSource",
    "JSONSource",
    "SourceRow",
    "TabularReader",
    "select_content",
    "source_for",
]
