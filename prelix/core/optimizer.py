"""Prompt Optimizer — builds the final prompt for a target model."""

from __future__ import annotations

from functools import lru_cache

import structlog

from prelix.core.catalog import framework_for, model_display_name, parse_prompt_type
from prelix.core.errors import BackendUnavailableError
from prelix.core.prompts import OPTIMIZER_SYSTEM_PROMPT, OPTIMIZER_USER_MESSAGE
from prelix.core.selector import fill_template
from prelix.db.models import TemplateRow
from prelix.llm.client import LLMClient, get_llm_client

logger = structlog.get_logger()


class PromptOptimizer:
    def __init__(self, llm: LLMClient) -> None:
        self.llm = llm

    async def optimize(
        self,
        original_input: str,
        confirmed_understanding: str,
        prompt_type: str | None,
        target_model: str,
        template: TemplateRow | None = None,
        placeholder_values: dict[str, str] | None = None,
    ) -> str:
        """Mechanical template fill when a template and values are given, else a backend call."""
        if template is not None and placeholder_values is not None:
            logger.info("optimizer.template_fill", template_id=template.id, model=target_model)
            return fill_template(template.template_text, placeholder_values)

        system = OPTIMIZER_SYSTEM_PROMPT.format(
            original_input=original_input,
            confirmed_understanding=confirmed_understanding,
            target_model=model_display_name(target_model),
            prompt_type=parse_prompt_type(prompt_type).value,
            framework=framework_for(prompt_type),
        )
        optimized = await self.llm.complete(
            system, OPTIMIZER_USER_MESSAGE, temperature=0.3, max_tokens=500
        )
        optimized = optimized.strip()
        if not optimized:
            raise BackendUnavailableError("Backend returned an empty optimized prompt")
        logger.info("optimizer.generated", model=target_model, chars=len(optimized))
        return optimized


@lru_cache
def get_optimizer() -> PromptOptimizer:
    return PromptOptimizer(get_llm_client())
