# src/promptbatch/core/config.py
"""
Configuration schema and loading for promptbatch runs.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.
"""

from pathlib import Path
from typing import Annotated, Any, Literal, Self

from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from promptbatch.contracts.errors import ConfigurationError

DEFAULT_PLACEHOLDER = "{input_text}"


def mask_secret(secret: str | None) -> str:
    """Return a log-safe rendering of a credential.

    Keeps the first four characters and the length so operators can
    tell keys apart without the key ever reaching a log line.
    """
    if not secret:
        return "<unset>"
    return f"{secret[:4]}...({len(secret)} chars)"


class _ApiConfigBase(BaseModel):
    """Fields shared by both provider variants."""

    model_config = {"frozen": True, "extra": "forbid", "populate_by_name": True}

    api_key: str = Field(min_length=1, description="Bearer credential for the provider")
    api_url: str = Field(
        min_length=1,
        validation_alias=AliasChoices("api_url", "base_url"),
        description="Provider base URL",
    )
    max_retries: int = Field(
        default=5,
        ge=1,
        description="Total attempt budget per row for retryable failures",
    )
    retry_interval: float = Field(
        default=0.5,
        ge=0,
        description="Base backoff interval in seconds (also default inter-batch pacing)",
    )
    timeout_seconds: float = Field(default=120.0, gt=0, description="Per-request timeout")

    @field_validator("api_key", "api_url")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    def redacted(self) -> dict[str, Any]:
        """Dump for metadata.json and logs with the credential masked."""
        data = self.model_dump(mode="json")
        data["api_key"] = mask_secret(self.api_key)
        return data


class LLMApiConfig(_ApiConfigBase):
    """Generic chat-completions provider (OpenAI-compatible endpoints).

    Example YAML:
        api_config:
          api_type: llm
          api_key: "${PROMPTBATCH_API_CONFIG__API_KEY}"
          api_url: https://api.deepseek.com
          model: deepseek-chat
          model_params:
            temperature: 0.2
    """

    api_type: Literal["llm"] = "llm"
    model: str = Field(min_length=1, description="Model name sent in the request body")
    model_params: dict[str, Any] = Field(
        default_factory=dict,
        description="Extra request body fields (temperature, max_tokens, ...)",
    )
    endpoint_path: str | None = Field(
        default=None,
        description="Override for the chat endpoint path; auto-detected from host when unset",
    )
    concurrent_limit: int = Field(default=10, gt=0, description="Permit pool size")


class AgentApiConfig(_ApiConfigBase):
    """Agent application provider (app completion endpoint)."""

    api_type: Literal["aliyun_agent"] = "aliyun_agent"
    app_id: str = Field(min_length=1, description="Application id in the agent platform")
    concurrent_limit: int = Field(default=5, gt=0, description="Permit pool size")


ApiConfig = Annotated[LLMApiConfig | AgentApiConfig, Field(discriminator="api_type")]

_API_CONFIG_ADAPTER: TypeAdapter[LLMApiConfig | AgentApiConfig] = TypeAdapter(ApiConfig)


class PromptConfig(BaseModel):
    """Prompt template applied to every row.

    The task text must contain the data placeholder; the row content
    replaces its first occurrence.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    system: str = Field(min_length=1, description="System prompt")
    task: str = Field(min_length=1, description="Task template containing the placeholder")
    output: str = Field(min_length=1, description="Output format instructions")
    variables: str | None = Field(default=None, description="Optional variable block")
    examples: str | None = Field(default=None, description="Optional example block")
    placeholder: str = Field(default=DEFAULT_PLACEHOLDER, min_length=1)

    @model_validator(mode="after")
    def validate_placeholder_present(self) -> "PromptConfig":
        if self.placeholder not in self.task:
            raise ValueError(
                f"task template must contain the data placeholder {self.placeholder!r}"
            )
        return self


class ProcessingSettings(BaseModel):
    """Batch engine behaviour."""

    model_config = {"frozen": True, "extra": "forbid"}

    batch_size: int = Field(default=5, gt=0, description="Rows per batch (commit unit)")
    output_dir: Path = Field(default=Path("outputData"), description="Root of task directories")
    batch_delay_seconds: float | None = Field(
        default=None,
        ge=0,
        description="Pause between batches; defaults to api_config.retry_interval",
    )
    pause_poll_seconds: float = Field(default=1.0, gt=0, description="Pause wait poll interval")
    task_identity: Literal["stat", "content"] = Field(
        default="stat",
        description="How the data file is identified: path+size+mtime, or content hash",
    )
    skip_empty_rows: bool = Field(
        default=False,
        description="Count rows with empty selected content as skipped instead of errored",
    )
    encoding: str = Field(default="utf-8", description="Text encoding for CSV/JSON inputs")
    retention_days: int = Field(default=7, gt=0, description="Default cleanup age")


class BatchSettings(BaseModel):
    """Top-level configuration for a batch run.

    Example YAML:
        api_config:
          api_type: aliyun_agent
          api_key: sk-...
          api_url: https://dashscope.aliyuncs.com
          app_id: 0a1b2c
        prompt_config:
          system: You are a classifier.
          task: "Classify: {input_text}"
          output: '{"label": "..."}'
        processing:
          batch_size: 10
    """

    model_config = {"frozen": True, "extra": "forbid", "populate_by_name": True}

    api_config: ApiConfig = Field(
        validation_alias=AliasChoices("api_config", "apiConfig", "apiconfig"),
    )
    prompt_config: PromptConfig = Field(
        validation_alias=AliasChoices("prompt_config", "promptConfig", "promptconfig"),
    )
    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)

    @property
    def batch_delay(self) -> float:
        """Seconds to wait between batches."""
        if self.processing.batch_delay_seconds is not None:
            return self.processing.batch_delay_seconds
        return self.api_config.retry_interval

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> Self:
        """Create settings from dict with a clear error on validation failure.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        try:
            return cls.model_validate(config)
        except ValidationError as e:
            raise ConfigurationError(_format_errors(e), errors=_error_list(e)) from e


def parse_api_config(data: dict[str, Any]) -> LLMApiConfig | AgentApiConfig:
    """Validate a raw api config dict into the matching provider variant.

    Raises:
        ConfigurationError: If api_type is missing/unsupported or a
            variant-specific field is missing.
    """
    try:
        return _API_CONFIG_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise ConfigurationError(_format_errors(e), errors=_error_list(e)) from e


def parse_prompt_config(data: dict[str, Any]) -> PromptConfig:
    """Validate a raw prompt config dict."""
    try:
        return PromptConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(_format_errors(e), errors=_error_list(e)) from e


def _error_list(e: ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": ".".join(str(x) for x in err["loc"]), "msg": err["msg"]}
        for err in e.errors()
    ]


def _format_errors(e: ValidationError) -> str:
    lines = [f"{err['loc']}: {err['msg']}" for err in _error_list(e)]
    return "Configuration validation failed: " + "; ".join(lines)


def load_settings(config_path: Path) -> BatchSettings:
    """Load settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (PROMPTBATCH_*) - highest priority
    2. Config file (settings.yaml)
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: PROMPTBATCH_API_CONFIG__API_KEY for nested keys.

    Raises:
        ConfigurationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="PROMPTBATCH",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase top-level keys; filter out its internal settings
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {
        k.lower(): v
        for k, v in dynaconf_settings.as_dict().items()
        if k not in internal_keys
    }
    return BatchSettings.from_dict(raw_config)
