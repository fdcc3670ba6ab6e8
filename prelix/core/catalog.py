"""Static catalogue: prompt types, their frameworks, and the selectable downstream models."""

from __future__ import annotations

from enum import Enum

from prelix.core.types import AIModel


class PromptType(str, Enum):
    RESEARCH = "Research"
    CREATIVE = "Creative"
    INSTRUCTIONAL = "Instructional"
    ANALYTICAL = "Analytical"
    PROBLEM_SOLVING = "Problem-Solving"
    AUTO = "Auto"


class ModelCategory(str, Enum):
    DEVELOPMENT = "Development & Code Execution"
    RESEARCH = "Research & Knowledge Work"
    CREATIVE = "Creative & Design"
    BUSINESS = "Business & Marketing"


PROMPT_FRAMEWORKS: dict[PromptType, str] = {
    PromptType.RESEARCH: (
        "Focus on comprehensive analysis, fact-checking, and providing well-sourced "
        "information with multiple perspectives."
    ),
    PromptType.CREATIVE: (
        "Emphasize originality, imagination, and innovative thinking. "
        "Use vivid language and creative approaches."
    ),
    PromptType.INSTRUCTIONAL: (
        "Structure content for clear learning outcomes with step-by-step guidance "
        "and practical examples."
    ),
    PromptType.ANALYTICAL: (
        "Break down complex topics systematically with logical reasoning and "
        "data-driven insights."
    ),
    PromptType.PROBLEM_SOLVING: (
        "Apply structured problem-solving methodologies like root cause analysis "
        "and solution evaluation."
    ),
    PromptType.AUTO: (
        "Adapt the approach based on the context and requirements of the specific request."
    ),
}

AVAILABLE_MODELS: list[AIModel] = [
    AIModel("lovable-dev", "Lovable.dev", "Lovable", ModelCategory.DEVELOPMENT.value),
    AIModel("cursor", "Cursor.sh", "Cursor", ModelCategory.DEVELOPMENT.value),
    AIModel("replit-ghostwriter", "Replit Ghostwriter", "Replit", ModelCategory.DEVELOPMENT.value),
    AIModel("gpt-4o", "GPT-4o", "OpenAI", ModelCategory.RESEARCH.value),
    AIModel("claude-3-5", "Claude 3.5", "Anthropic", ModelCategory.RESEARCH.value),
    AIModel("perplexity", "Perplexity", "Perplexity", ModelCategory.RESEARCH.value),
    AIModel("midjourney", "MidJourney", "MidJourney", ModelCategory.CREATIVE.value),
    AIModel("stable-diffusion", "Stable Diffusion", "Stability AI", ModelCategory.CREATIVE.value),
    AIModel("runwayml", "RunwayML", "Runway", ModelCategory.CREATIVE.value),
    AIModel("jasper", "Jasper", "Jasper", ModelCategory.BUSINESS.value),
    AIModel("copy-ai", "Copy.ai", "Copy.ai", ModelCategory.BUSINESS.value),
    AIModel("crave-ai", "Crave AI", "Crave", ModelCategory.BUSINESS.value),
    # No template category: template filtering keeps everything for these.
    AIModel("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet (Anthropic)", "Anthropic"),
    AIModel("grok-beta", "Grok (xAI)", "xAI"),
]


def parse_prompt_type(value: str | None) -> PromptType:
    """Map a free-form prompt type to the enum, defaulting to Auto."""
    if not value:
        return PromptType.AUTO
    for member in PromptType:
        if member.value.lower() == value.strip().lower():
            return member
    return PromptType.AUTO


def framework_for(prompt_type: str | None) -> str:
    return PROMPT_FRAMEWORKS[parse_prompt_type(prompt_type)]


def get_model(model_id: str) -> AIModel | None:
    return next((m for m in AVAILABLE_MODELS if m.id == model_id), None)


def model_display_name(model_id: str) -> str:
    model = get_model(model_id)
    return model.name if model else model_id
