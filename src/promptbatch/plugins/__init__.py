"""Pluggable pieces of the batch pipeline.

- sources: decode data files into rows (CSV, Excel, JSON/JSONL)
- sinks: append success, error and raw-response records
- llm: prompt building, retry policy, pooled dispatch and API providers
"""
