# src/promptbatch/plugins/llm/openai_chat.py
"""Generic chat-completions provider for OpenAI-compatible endpoints."""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any

import httpx
import structlog

from promptbatch.core.config import LLMApiConfig
from promptbatch.core.logging import truncate
from promptbatch.plugins.llm.base import BaseProvider

logger = structlog.get_logger(__name__)

DEFAULT_ENDPOINT_PATH = "/v1/chat/completions"

# Hosts whose chat endpoint does not follow the /v1 convention
KNOWN_ENDPOINT_PATHS: tuple[tuple[str, str], ...] = (
    ("dashscope.aliyuncs.com", "/chat/completions"),
    ("volces.com", "/api/v3/chat/completions"),
)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


def normalize_base_url(url: str) -> str:
    """Strip a trailing slash and a pasted /v1/chat/completions suffix."""
    url = url.rstrip("/")
    suffix = "/v1/chat/completions"
    if url.endswith(suffix):
        url = url[: -len(suffix)]
    return url


def detect_endpoint_path(base_url: str) -> str:
    """Choose the chat endpoint path from the base URL host."""
    lowered = base_url.lower()
    for host, path in KNOWN_ENDPOINT_PATHS:
        if host in lowered:
            return path
    return DEFAULT_ENDPOINT_PATH


def extract_json_text(content: str) -> str:
    """Return the inner text of a fenced code block, or the content itself."""
    match = _FENCED_BLOCK.search(content)
    if match:
        return match.group(1).strip()
    return content


class LLMProvider(BaseProvider):
    """Chat-completions provider.

    Sends {model, messages: [system, user], **model_params} and expects
    the assistant message to be JSON, optionally inside a ``` fence.

    Configuration example:
        api_config:
          api_type: llm
          api_key: "${PROMPTBATCH_API_CONFIG__API_KEY}"
          api_url: https://api.deepseek.com
          model: deepseek-chat
    """

    api_type = "llm"

    def __init__(
        self,
        config: LLMApiConfig,
        *,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        super().__init__(config, client=client, sleep=sleep)
        self._base_url = normalize_base_url(config.api_url)
        self._model = config.model
        self._model_params = dict(config.model_params)
        self._endpoint_path = config.endpoint_path or detect_endpoint_path(self._base_url)
        logger.info("provider_initialized", **self.info())

    @property
    def url(self) -> str:
        return f"{self._base_url}{self._endpoint_path}"

    def build_body(self, system: str, user: str) -> dict[str, Any]:
        return {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            **self._model_params,
        }

    def parse_response(self, data: Any) -> dict[str, Any] | None:
        # Providers may return error JSON with HTTP 200 or empty choices
        try:
            choices = data["choices"]
            if not choices:
                logger.error("llm_empty_choices", body=truncate(data))
                return None
            content = choices[0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            logger.error(
                "llm_malformed_response",
                error=f"{type(e).__name__}: {e}",
                response_keys=list(data.keys()) if isinstance(data, dict) else None,
            )
            return None

        if not isinstance(content, str):
            logger.error("llm_non_text_content", content=truncate(content))
            return None

        text = extract_json_text(content)
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error("llm_content_not_json", error=str(e), content=truncate(text))
            return None
        if isinstance(parsed, dict):
            return parsed
        return {"content": parsed}

    def info(self) -> dict[str, Any]:
        return {
            **self._common_info(),
            "baseUrl": self._base_url,
            "endpointPath": self._endpoint_path,
            "model": self._model,
        }
