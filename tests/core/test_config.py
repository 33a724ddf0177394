# tests/core/test_config.py
"""Tests for configuration schema and loading."""

from pathlib import Path
from typing import Any

import pytest
from pydantic import ValidationError

SETTINGS_YAML = """
api_config:
  api_type: llm
  api_key: sk-yaml-0000
  api_url: https://api.example.com/
  model: test-model
prompt_config:
  system: You are a classifier.
  task: "Classify: {input_text}"
  output: '{"label": "..."}'
processing:
  batch_size: 3
"""


class TestApiConfig:
    """Provider config validation."""

    def test_llm_defaults(self, llm_config_dict: dict[str, Any]) -> None:
        from promptbatch.core.config import LLMApiConfig, parse_api_config

        llm_config_dict.pop("max_retries")
        llm_config_dict.pop("retry_interval")
        config = parse_api_config(llm_config_dict)
        assert isinstance(config, LLMApiConfig)
        assert config.max_retries == 5
        assert config.retry_interval == 0.5
        assert config.concurrent_limit == 10
        assert config.model_params == {}

    def test_agent_variant_selected_by_api_type(self) -> None:
        from promptbatch.core.config import AgentApiConfig, parse_api_config

        config = parse_api_config(
            {
                "api_type": "aliyun_agent",
                "api_key": "sk-agent",
                "api_url": "https://dashscope.aliyuncs.com",
                "app_id": "app123",
            }
        )
        assert isinstance(config, AgentApiConfig)
        assert config.concurrent_limit == 5

    def test_base_url_alias_accepted(self, llm_config_dict: dict[str, Any]) -> None:
        from promptbatch.core.config import parse_api_config

        llm_config_dict["base_url"] = llm_config_dict.pop("api_url")
        config = parse_api_config(llm_config_dict)
        assert config.api_url == "https://api.example.com"

    def test_unsupported_api_type_rejected(self, llm_config_dict: dict[str, Any]) -> None:
        from promptbatch.contracts.errors import ConfigurationError
        from promptbatch.core.config import parse_api_config

        llm_config_dict["api_type"] = "carrier_pigeon"
        with pytest.raises(ConfigurationError):
            parse_api_config(llm_config_dict)

    def test_llm_requires_model(self, llm_config_dict: dict[str, Any]) -> None:
        from promptbatch.contracts.errors import ConfigurationError
        from promptbatch.core.config import parse_api_config

        del llm_config_dict["model"]
        with pytest.raises(ConfigurationError) as exc_info:
            parse_api_config(llm_config_dict)
        assert any("model" in err["loc"] for err in exc_info.value.errors)

    def test_agent_requires_app_id(self) -> None:
        from promptbatch.contracts.errors import ConfigurationError
        from promptbatch.core.config import parse_api_config

        with pytest.raises(ConfigurationError):
            parse_api_config(
                {"api_type": "aliyun_agent", "api_key": "k", "api_url": "https://x"}
            )

    def test_blank_api_key_rejected(self, llm_config_dict: dict[str, Any]) -> None:
        from promptbatch.contracts.errors import ConfigurationError
        from promptbatch.core.config import parse_api_config

        llm_config_dict["api_key"] = "   "
        with pytest.raises(ConfigurationError):
            parse_api_config(llm_config_dict)

    def test_max_retries_must_be_positive(self, llm_config_dict: dict[str, Any]) -> None:
        from promptbatch.contracts.errors import ConfigurationError
        from promptbatch.core.config import parse_api_config

        llm_config_dict["max_retries"] = 0
        with pytest.raises(ConfigurationError):
            parse_api_config(llm_config_dict)

    def test_redacted_masks_key(self, llm_config_dict: dict[str, Any]) -> None:
        from promptbatch.core.config import parse_api_config

        redacted = parse_api_config(llm_config_dict).redacted()
        assert redacted["api_key"] == "sk-t...(18 chars)"
        assert "0123456789" not in str(redacted)

    def test_config_is_frozen(self, llm_config_dict: dict[str, Any]) -> None:
        from promptbatch.core.config import parse_api_config

        config = parse_api_config(llm_config_dict)
        with pytest.raises(ValidationError):
            config.model = "other"  # type: ignore[misc]


class TestMaskSecret:
    def test_unset(self) -> None:
        from promptbatch.core.config import mask_secret

        assert mask_secret(None) == "<unset>"
        assert mask_secret("") == "<unset>"

    def test_keeps_prefix_and_length(self) -> None:
        from promptbatch.core.config import mask_secret

        assert mask_secret("abcdefgh") == "abcd...(8 chars)"


class TestPromptConfig:
    """Prompt template validation."""

    def test_valid(self, prompt_config_dict: dict[str, Any]) -> None:
        from promptbatch.core.config import parse_prompt_config

        config = parse_prompt_config(prompt_config_dict)
        assert config.placeholder == "{input_text}"
        assert config.variables is None

    def test_task_without_placeholder_rejected(self, prompt_config_dict: dict[str, Any]) -> None:
        from promptbatch.contracts.errors import ConfigurationError
        from promptbatch.core.config import parse_prompt_config

        prompt_config_dict["task"] = "Summarize the text."
        with pytest.raises(ConfigurationError, match="placeholder"):
            parse_prompt_config(prompt_config_dict)

    @pytest.mark.parametrize("missing", ["system", "task", "output"])
    def test_required_sections(self, prompt_config_dict: dict[str, Any], missing: str) -> None:
        from promptbatch.contracts.errors import ConfigurationError
        from promptbatch.core.config import parse_prompt_config

        del prompt_config_dict[missing]
        with pytest.raises(ConfigurationError):
            parse_prompt_config(prompt_config_dict)


class TestBatchSettings:
    def test_batch_delay_defaults_to_retry_interval(
        self, llm_config_dict: dict[str, Any], prompt_config_dict: dict[str, Any]
    ) -> None:
        from promptbatch.core.config import BatchSettings

        settings = BatchSettings.from_dict(
            {"api_config": llm_config_dict, "prompt_config": prompt_config_dict}
        )
        assert settings.batch_delay == 0.5

    def test_explicit_batch_delay(
        self, llm_config_dict: dict[str, Any], prompt_config_dict: dict[str, Any]
    ) -> None:
        from promptbatch.core.config import BatchSettings

        settings = BatchSettings.from_dict(
            {
                "api_config": llm_config_dict,
                "prompt_config": prompt_config_dict,
                "processing": {"batch_delay_seconds": 0},
            }
        )
        assert settings.batch_delay == 0

    def test_camel_case_keys_accepted(
        self, llm_config_dict: dict[str, Any], prompt_config_dict: dict[str, Any]
    ) -> None:
        from promptbatch.core.config import BatchSettings

        settings = BatchSettings.from_dict(
            {"apiConfig": llm_config_dict, "promptConfig": prompt_config_dict}
        )
        assert settings.api_config.model == "test-model"

    def test_unknown_processing_key_rejected(
        self, llm_config_dict: dict[str, Any], prompt_config_dict: dict[str, Any]
    ) -> None:
        from promptbatch.contracts.errors import ConfigurationError
        from promptbatch.core.config import BatchSettings

        with pytest.raises(ConfigurationError):
            BatchSettings.from_dict(
                {
                    "api_config": llm_config_dict,
                    "prompt_config": prompt_config_dict,
                    "processing": {"batch_sise": 3},
                }
            )


class TestLoadSettings:
    """Test Dynaconf-based settings loading."""

    def test_load_from_yaml_file(self, tmp_path: Path) -> None:
        from promptbatch.core.config import LLMApiConfig, load_settings

        config_file = tmp_path / "settings.yaml"
        config_file.write_text(SETTINGS_YAML)

        settings = load_settings(config_file)
        assert isinstance(settings.api_config, LLMApiConfig)
        assert settings.api_config.model == "test-model"
        assert settings.prompt_config.task == "Classify: {input_text}"
        assert settings.processing.batch_size == 3

    def test_load_with_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        from promptbatch.core.config import load_settings

        config_file = tmp_path / "settings.yaml"
        config_file.write_text(SETTINGS_YAML)
        # Environment variable should override YAML
        monkeypatch.setenv("PROMPTBATCH_PROCESSING__BATCH_SIZE", "20")

        settings = load_settings(config_file)
        assert settings.processing.batch_size == 20

    def test_load_missing_file(self, tmp_path: Path) -> None:
        from promptbatch.core.config import load_settings

        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "nope.yaml")

    def test_load_validates_schema(self, tmp_path: Path) -> None:
        from promptbatch.contracts.errors import ConfigurationError
        from promptbatch.core.config import load_settings

        config_file = tmp_path / "settings.yaml"
        config_file.write_text(SETTINGS_YAML.replace("batch_size: 3", "batch_size: 0"))
        with pytest.raises(ConfigurationError):
            load_settings(config_file)
