# src/promptbatch/plugins/llm/templates.py
"""Prompt building by raw placeholder substitution.

Row content is inserted verbatim; no template language runs over it,
so braces or markup in the data are never interpreted.
"""

import hashlib
from dataclasses import dataclass

from promptbatch.core.config import PromptConfig

VARIABLES_LABEL = "Variables:"
EXAMPLES_LABEL = "Examples:"
OUTPUT_LABEL = "Respond in the following format:"


@dataclass(frozen=True)
class RenderedPrompt:
    """A rendered system/user prompt pair with hashes for log correlation."""

    system: str
    user: str
    template_hash: str
    rendered_hash: str


def _sha256(content: str) -> str:
    """Compute SHA-256 hash of string content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class PromptTemplate:
    """Prompt template bound to one PromptConfig.

    The user prompt is the task text with the first placeholder replaced
    by the row content, followed by the optional variable block, the
    optional example block and the output format, in that order.

    Example:
        template = PromptTemplate(PromptConfig(
            system="You are a classifier.",
            task="Classify: {input_text}",
            output='{"label": "..."}',
        ))
        rendered = template.render("great product")
        # rendered.user starts with "Classify: great product"
    """

    def __init__(self, config: PromptConfig) -> None:
        self._config = config
        self._template_hash = _sha256(
            "\x1f".join(
                [
                    config.system,
                    config.task,
                    config.output,
                    config.variables or "",
                    config.examples or "",
                    config.placeholder,
                ]
            )
        )

    @property
    def template_hash(self) -> str:
        return self._template_hash

    def render(self, content: str) -> RenderedPrompt:
        """Render the prompt for one row. Pure: the template is never changed."""
        cfg = self._config
        user = cfg.task.replace(cfg.placeholder, content, 1)
        if cfg.variables:
            user += f"\n\n{VARIABLES_LABEL}\n{cfg.variables}"
        if cfg.examples:
            user += f"\n\n{EXAMPLES_LABEL}\n{cfg.examples}"
        user += f"\n\n{OUTPUT_LABEL}\n{cfg.output}"
        return RenderedPrompt(
            system=cfg.system,
            user=user,
            template_hash=self._template_hash,
            rendered_hash=_sha256(user),
        )


def build_prompt(config: PromptConfig, content: str) -> RenderedPrompt:
    """Render a prompt without keeping a template object around."""
    return PromptTemplate(config).render(content)
