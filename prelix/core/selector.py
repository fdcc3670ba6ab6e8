"""Template Selector — ranks templates against a request and auto-fills placeholders."""

from __future__ import annotations

import re
from functools import lru_cache

import structlog

from prelix.core.catalog import get_model
from prelix.core.templates import TemplateRepository, get_template_repository
from prelix.core.types import RankedTemplate
from prelix.db.models import TemplateRow

logger = structlog.get_logger()

EFFECTIVENESS_WEIGHT = 0.4
USAGE_WEIGHT = 0.1
KEYWORD_WEIGHT = 0.3
TAG_WEIGHT = 0.2

STYLES = ("formal", "casual", "professional", "creative", "technical")
DEFAULT_STYLE = "professional"
DEFAULT_AUDIENCE = "general audience"

_TOPIC = re.compile(r"\b(?:about|for|regarding|on)\s+([^,.!?]+)", re.IGNORECASE)
_AUDIENCE = re.compile(r"\b(?:for|to|audience)\s+([^,.!?]+)", re.IGNORECASE)


def keyword_match_count(template: TemplateRow, user_input: str) -> int:
    text = template.template_text.lower()
    words = [w for w in user_input.lower().split(" ") if len(w) > 3]
    return sum(1 for w in words if w in text)


def tag_match_count(template: TemplateRow, user_input: str) -> int:
    lowered = user_input.lower()
    return sum(1 for tag in template.tags if tag.lower() in lowered)


def score(template: TemplateRow, user_input: str) -> float:
    return (
        EFFECTIVENESS_WEIGHT * template.effectiveness_score
        + USAGE_WEIGHT * template.usage_count
        + KEYWORD_WEIGHT * keyword_match_count(template, user_input)
        + TAG_WEIGHT * tag_match_count(template, user_input)
    )


def select(
    category: str | None,
    user_input: str,
    candidates: list[TemplateRow],
) -> list[RankedTemplate]:
    """Rank active templates of ``category`` (all categories when None), best first.

    The sort is stable: equal scores keep candidate order.
    """
    pool = [
        t for t in candidates if t.is_active and (category is None or t.category == category)
    ]
    ranked = sorted(
        (RankedTemplate(template=t, score=score(t, user_input)) for t in pool),
        key=lambda r: r.score,
        reverse=True,
    )
    if ranked:
        ranked[0].best_match = True
    return ranked


def filter_by_model(selected_model: str, templates: list[TemplateRow]) -> list[TemplateRow]:
    """Keep templates in the model's category; models without one keep everything."""
    model = get_model(selected_model)
    if model is None or model.category is None:
        return list(templates)
    return [t for t in templates if t.category == model.category]


def _extract_topic(user_input: str) -> str:
    if match := _TOPIC.search(user_input):
        return match.group(1).strip()
    return " ".join(user_input.split()[:3])


def _extract_audience(user_input: str) -> str:
    if match := _AUDIENCE.search(user_input):
        return match.group(1).strip()
    return DEFAULT_AUDIENCE


def _extract_style(user_input: str) -> str:
    lowered = user_input.lower()
    return next((s for s in STYLES if s in lowered), DEFAULT_STYLE)


def _extract_length(user_input: str) -> str:
    lowered = user_input.lower()
    if "short" in lowered:
        return "brief"
    if "long" in lowered or "detailed" in lowered:
        return "comprehensive"
    return "medium"


def extract_placeholder_values(user_input: str, placeholders: list[str]) -> dict[str, str]:
    """Best-effort values for known placeholder names; unknown names get ''."""
    values: dict[str, str] = {}
    for name in placeholders:
        key = name.lower()
        if key in ("topic", "subject"):
            values[name] = _extract_topic(user_input)
        elif key == "style":
            values[name] = _extract_style(user_input)
        elif key in ("target_audience", "audience"):
            values[name] = _extract_audience(user_input)
        elif key == "length":
            values[name] = _extract_length(user_input)
        else:
            values[name] = ""
    return values


def fill_template(template_text: str, values: dict[str, str]) -> str:
    """Substitute ``{name}`` tokens case-insensitively; empty values leave the token."""
    result = template_text
    for name, value in values.items():
        if not value:
            continue
        result = re.sub(
            r"\{" + re.escape(name) + r"\}",
            lambda _m, v=value: v,
            result,
            flags=re.IGNORECASE,
        )
    return result


class TemplateSelector:
    def __init__(self, repository: TemplateRepository) -> None:
        self.repository = repository

    def filtered_templates(
        self,
        selected_model: str,
        user_input: str,
        limit: int = 5,
    ) -> list[RankedTemplate]:
        candidates = filter_by_model(selected_model, self.repository.list_active())
        ranked = select(None, user_input, candidates)[:limit]
        logger.info(
            "selector.filtered",
            model=selected_model,
            candidates=len(candidates),
            returned=len(ranked),
        )
        return ranked


@lru_cache
def get_template_selector() -> TemplateSelector:
    return TemplateSelector(get_template_repository())
