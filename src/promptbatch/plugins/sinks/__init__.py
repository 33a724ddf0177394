"""Output writers used by the progress tracker.

All sinks append; a resumed task extends the files it already wrote.
"""

from promptbatch.plugins.sinks.csv_sink import ERROR_COLUMNS, ErrorCSVSink, ResultCSVSink
from promptbatch.plugins.sinks.jsonl_sink import JSONLSink

__all__ = ["ERROR_COLUMNS", "ErrorCSVSink", "JSONLSink", "ResultCSVSink"]
