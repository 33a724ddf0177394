# src/promptbatch/plugins/llm/capacity_errors.py
"""Classification of transient provider failures.

Rate limiting and gateway/availability statuses are retried with
backoff. Every other non-2xx status fails the row immediately.
"""

import httpx

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({429, 502, 503, 504})


def is_retryable_status(status_code: int) -> bool:
    """True for statuses that indicate temporary capacity problems."""
    return status_code in RETRYABLE_STATUS_CODES


def is_retryable_exception(error: BaseException) -> bool:
    """True for transport-level failures (connect, read, timeouts, protocol)."""
    return isinstance(error, httpx.TransportError)
