"""promptbatch: resumable batch execution of tabular rows through LLM APIs."""

__version__ = "0.4.0"
