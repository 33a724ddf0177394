# src/promptbatch/plugins/llm/agent.py
"""Agent application provider (app completion endpoint)."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import structlog

from promptbatch.core.config import AgentApiConfig
from promptbatch.core.logging import truncate
from promptbatch.plugins.llm.base import BaseProvider

logger = structlog.get_logger(__name__)

_USAGE_KEYS = ("input_tokens", "output_tokens", "total_tokens")


class AgentProvider(BaseProvider):
    """Provider for agent apps hosted behind /api/v1/apps/{app_id}/completion.

    The agent answers with free text in output.text. Text that looks
    like a JSON object is parsed; anything else is returned as
    {"content": text} plus token usage when the platform reports it.
    """

    api_type = "aliyun_agent"

    def __init__(
        self,
        config: AgentApiConfig,
        *,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        super().__init__(config, client=client, sleep=sleep)
        self._base_url = config.api_url.rstrip("/")
        self._app_id = config.app_id
        logger.info("provider_initialized", **self.info())

    @property
    def url(self) -> str:
        return f"{self._base_url}/api/v1/apps/{self._app_id}/completion"

    @property
    def model(self) -> str:
        return f"agent-app-{self._app_id}"

    def build_body(self, system: str, user: str) -> dict[str, Any]:
        return {
            "input": {"prompt": user},
            "parameters": {"system_prompt": system},
        }

    def parse_response(self, data: Any) -> dict[str, Any] | None:
        if not isinstance(data, dict):
            logger.error("agent_malformed_response", body=truncate(data))
            return None

        # Application-level failures come back with HTTP 200
        if "code" in data and data["code"] != 200:
            logger.error(
                "agent_application_error",
                code=data["code"],
                message=data.get("message", "unknown error"),
            )
            return None

        output = data.get("output") or {}
        text = (output.get("text") or "") if isinstance(output, dict) else ""
        if not isinstance(text, str):
            text = json.dumps(text, ensure_ascii=False)
        stripped = text.strip()
        if stripped.startswith("{") and stripped.endswith("}"):
            try:
                parsed = json.loads(stripped)
            except json.JSONDecodeError:
                logger.info("agent_text_not_json", content=truncate(stripped))
            else:
                if isinstance(parsed, dict):
                    return parsed

        result: dict[str, Any] = {"content": text}
        usage = data.get("usage") or {}
        if isinstance(usage, dict) and usage:
            result["usage"] = {key: usage.get(key, 0) or 0 for key in _USAGE_KEYS}
        return result

    def info(self) -> dict[str, Any]:
        return {
            **self._common_info(),
            "baseUrl": self._base_url,
            "appId": self._app_id,
            "model": self.model,
        }
