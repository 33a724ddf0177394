# src/promptbatch/plugins/llm/factory.py
"""Provider selection by api_type."""

from collections.abc import Callable

import httpx

from promptbatch.contracts.enums import ApiType
from promptbatch.contracts.errors import ConfigurationError
from promptbatch.core.config import AgentApiConfig, LLMApiConfig
from promptbatch.plugins.llm.agent import AgentProvider
from promptbatch.plugins.llm.base import BaseProvider
from promptbatch.plugins.llm.openai_chat import LLMProvider

PROVIDER_TYPES: dict[ApiType, type[BaseProvider]] = {
    ApiType.LLM: LLMProvider,
    ApiType.ALIYUN_AGENT: AgentProvider,
}


def supported_api_types() -> list[str]:
    return sorted(api_type.value for api_type in PROVIDER_TYPES)


def create_provider(
    config: LLMApiConfig | AgentApiConfig,
    *,
    client: httpx.Client | None = None,
    sleep: Callable[[float], None] | None = None,
) -> BaseProvider:
    """Build the provider matching config.api_type.

    Raises:
        ConfigurationError: If no provider is registered for the api_type.
    """
    try:
        provider_type = PROVIDER_TYPES[ApiType(config.api_type)]
    except (ValueError, KeyError):
        raise ConfigurationError(
            f"Unsupported api_type {config.api_type!r}; expected one of {supported_api_types()}"
        ) from None
    return provider_type(config, client=client, sleep=sleep)  # type: ignore[arg-type]
