"""Prompt building, retry policy, pooled dispatch and API providers."""

from promptbatch.plugins.llm.agent import AgentProvider
from promptbatch.plugins.llm.base import BaseProvider
from promptbatch.plugins.llm.capacity_errors import (
    RETRYABLE_STATUS_CODES,
    is_retryable_exception,
    is_retryable_status,
)
from promptbatch.plugins.llm.factory import create_provider, supported_api_types
from promptbatch.plugins.llm.openai_chat import (
    LLMProvider,
    detect_endpoint_path,
    extract_json_text,
    normalize_base_url,
)
from promptbatch.plugins.llm.pooled_executor import PooledExecutor
from promptbatch.plugins.llm.retry import RetryPolicy, backoff_delay
from promptbatch.plugins.llm.templates import PromptTemplate, RenderedPrompt, build_prompt

__all__ = [
    "RETRYABLE_STATUS_CODES",
    "AgentProvider",
    "BaseProvider",
    "LLMProvider",
    "PooledExecutor",
    "PromptTemplate",
    "RenderedPrompt",
    "RetryPolicy",
    "backoff_delay",
    "build_prompt",
    "create_provider",
    "detect_endpoint_path",
    "extract_json_text",
    "is_retryable_exception",
    "is_retryable_status",
    "normalize_base_url",
    "supported_api_types",
]
