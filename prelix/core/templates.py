"""Template Repository — storage, lookup, and usage statistics for prompt templates."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any

import structlog

from prelix.core.catalog import ModelCategory
from prelix.core.errors import TemplateNotFoundError
from prelix.db.client import SupabaseClient, get_supabase_client
from prelix.db.models import TemplateRow

logger = structlog.get_logger()

TEMPLATES_TABLE = "prompt_templates"
USAGE_TABLE = "template_usage"

PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")

DEFAULT_TEMPLATES: list[dict[str, Any]] = [
    {
        "template_text": (
            "You are a senior {language} engineer. Implement {function_name} using "
            "{framework}. Explain design decisions and include tests."
        ),
        "category": ModelCategory.DEVELOPMENT.value,
        "subcategory": "Code Generation",
        "tags": ["code", "implement", "function"],
        "priority": 8,
    },
    {
        "template_text": (
            "Debug the following {language} error: {error_message}. Identify the root "
            "cause, propose a fix, and explain how to prevent it."
        ),
        "category": ModelCategory.DEVELOPMENT.value,
        "subcategory": "Debugging",
        "tags": ["debug", "error", "bug"],
        "priority": 7,
    },
    {
        "template_text": (
            "Research {topic} for a {target_audience}. Summarise the key findings, "
            "cite sources, and present multiple perspectives in a {length} report."
        ),
        "category": ModelCategory.RESEARCH.value,
        "subcategory": "Literature Review",
        "tags": ["research", "report", "sources"],
        "priority": 8,
    },
    {
        "template_text": (
            "Create a {style} {medium} about {theme} aimed at {target_audience}. "
            "Describe composition, palette, and mood."
        ),
        "category": ModelCategory.CREATIVE.value,
        "subcategory": "Visual Design",
        "tags": ["image", "design", "art"],
        "priority": 7,
    },
    {
        "template_text": (
            "Write a {style} blog post about {topic} for {target_audience}. "
            "Keep it {length} and end with a clear call to action."
        ),
        "category": ModelCategory.BUSINESS.value,
        "subcategory": "Content Marketing",
        "tags": ["blog", "marketing", "content"],
        "priority": 9,
    },
    {
        "template_text": (
            "Draft a go-to-market plan for {product} targeting {target_market}. "
            "Goal: {goal}. Budget: {budget}. Timeline: {timeline}."
        ),
        "category": ModelCategory.BUSINESS.value,
        "subcategory": "Strategy",
        "tags": ["marketing", "launch", "strategy"],
        "priority": 6,
    },
]


def extract_placeholders(template_text: str) -> list[str]:
    """Return the ``{name}`` tokens of a template, in first-seen order."""
    seen: list[str] = []
    for name in PLACEHOLDER_PATTERN.findall(template_text):
        if name not in seen:
            seen.append(name)
    return seen


class TemplateRepository:
    """Manages prompt templates — create, look up, match, and track usage."""

    def __init__(self, db: SupabaseClient) -> None:
        self.db = db

    def create_template(
        self,
        template_text: str,
        category: str,
        subcategory: str | None = None,
        tags: list[str] | None = None,
        priority: int = 5,
        placeholders: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> TemplateRow:
        """Create an active template. Placeholders default to the tokens found in the text."""
        row = self.db.insert(
            TEMPLATES_TABLE,
            {
                "template_text": template_text,
                "placeholders": placeholders
                if placeholders is not None
                else extract_placeholders(template_text),
                "category": category,
                "subcategory": subcategory,
                "tags": tags or [],
                "priority": priority,
                "usage_count": 0,
                "effectiveness_score": 0.0,
                "feedback_count": 0,
                "is_active": True,
                "metadata": metadata or {},
            },
        )
        logger.info("template.created", template_id=row["id"], category=category)
        return TemplateRow(**row)

    def get_template(self, template_id: str) -> TemplateRow:
        rows = self.db.select(TEMPLATES_TABLE, filters={"id": template_id})
        if not rows:
            raise TemplateNotFoundError(f"Template '{template_id}' not found")
        return TemplateRow(**rows[0])

    def list_active(self, category: str | None = None) -> list[TemplateRow]:
        """Active templates, best first by effectiveness then usage."""
        filters: dict[str, Any] = {"is_active": True}
        if category:
            filters["category"] = category
        rows = self.db.select(TEMPLATES_TABLE, filters=filters)
        templates = [TemplateRow(**r) for r in rows]
        return sorted(
            templates,
            key=lambda t: (t.effectiveness_score, t.usage_count),
            reverse=True,
        )

    def list_by_category(self, category: str) -> list[TemplateRow]:
        return self.list_active(category=category)

    def match_by_input(
        self,
        user_input: str,
        category: str | None = None,
        limit: int = 5,
    ) -> list[TemplateRow]:
        """Fuzzy match: active templates sharing at least one keyword or tag with the input."""
        from prelix.core.selector import keyword_match_count, tag_match_count

        matches = [
            t
            for t in self.list_active(category=category)
            if keyword_match_count(t, user_input) or tag_match_count(t, user_input)
        ]
        return matches[:limit]

    def record_usage(self, template_id: str, chat_session_id: str | None = None) -> bool:
        """Count one confirmed use of a template.

        With a session id, at most one increment happens per (session, template).
        Returns True if the counter was incremented.
        """
        self.get_template(template_id)
        if chat_session_id:
            existing = [
                r
                for r in self.db.select(USAGE_TABLE, filters={"template_id": template_id})
                if r.get("chat_session_id") == chat_session_id
            ]
            if existing:
                logger.info(
                    "template.usage_already_recorded",
                    template_id=template_id,
                    chat_session_id=chat_session_id,
                )
                return False
            self.db.insert(
                USAGE_TABLE,
                {"template_id": template_id, "chat_session_id": chat_session_id},
            )

        # Atomic server-side increment so concurrent uses add up.
        self.db.rpc("increment_template_usage", {"_template_id": template_id})
        logger.info("template.usage_recorded", template_id=template_id)
        return True

    def update_effectiveness(self, template_id: str, rating: float) -> TemplateRow:
        """Fold a feedback rating in [0, 1] into the template's running average."""
        if not 0.0 <= rating <= 1.0:
            raise ValueError("Effectiveness rating must be between 0 and 1")
        template = self.get_template(template_id)
        count = template.feedback_count
        score = (template.effectiveness_score * count + rating) / (count + 1)
        row = self.db.update(
            TEMPLATES_TABLE,
            template_id,
            {"effectiveness_score": round(score, 4), "feedback_count": count + 1},
        )
        logger.info("template.feedback", template_id=template_id, score=row["effectiveness_score"])
        return TemplateRow(**row)

    def deactivate(self, template_id: str) -> bool:
        """Soft-delete a template by clearing its activation flag."""
        try:
            self.get_template(template_id)
        except TemplateNotFoundError:
            return False
        self.db.update(TEMPLATES_TABLE, template_id, {"is_active": False})
        logger.info("template.deactivated", template_id=template_id)
        return True

    def seed_defaults(self) -> int:
        """Insert the default templates whose text is not stored yet."""
        existing = {r["template_text"] for r in self.db.select(TEMPLATES_TABLE)}
        created = 0
        for entry in DEFAULT_TEMPLATES:
            if entry["template_text"] in existing:
                continue
            self.create_template(**entry)
            created += 1
        logger.info("template.seeded", created=created)
        return created


@lru_cache
def get_template_repository() -> TemplateRepository:
    """Get cached repository instance."""
    return TemplateRepository(get_supabase_client())
