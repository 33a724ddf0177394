# src/promptbatch/core/__init__.py
"""Core infrastructure: configuration, canonical hashing and logging setup.

Checkpoint, task registry and retention live in sub-packages and are
imported from there.
"""

from promptbatch.core.canonical import (
    CANONICAL_VERSION,
    canonical_json,
    stable_hash,
)
from promptbatch.core.config import (
    AgentApiConfig,
    BatchSettings,
    LLMApiConfig,
    ProcessingSettings,
    PromptConfig,
    load_settings,
    mask_secret,
)
from promptbatch.core.logging import configure_logging

__all__ = [
    "CANONICAL_VERSION",
    "AgentApiConfig",
    "BatchSettings",
    "LLMApiConfig",
    "ProcessingSettings",
    "PromptConfig",
    "canonical_json",
    "configure_logging",
    "load_settings",
    "mask_secret",
    "stable_hash",
]
