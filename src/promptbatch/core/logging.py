# src/promptbatch/core/logging.py
"""Structured logging setup.

Every module logs through structlog.get_logger(__name__) with key/value
events. configure_logging() is called once by the CLI; library users
may skip it and get structlog's defaults.
"""

import logging
import sys
from typing import Any

import structlog

# Response bodies are cut to this length before they reach a log line
MAX_LOGGED_BODY = 200


def truncate(text: Any, limit: int = MAX_LOGGED_BODY) -> str:
    """Shorten a response body for logging."""
    rendered = text if isinstance(text, str) else repr(text)
    if len(rendered) <= limit:
        return rendered
    return rendered[:limit] + "..."


def configure_logging(*, verbose: bool = False, json_output: bool = False) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        verbose: Emit DEBUG events (per-attempt retries, prompt sizes).
        json_output: Render one JSON object per line instead of console output.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level, force=True)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        # ConsoleRenderer formats exceptions itself
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )