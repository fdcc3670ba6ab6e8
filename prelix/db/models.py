"""Database models / type definitions.

These mirror the Supabase tables for type safety in Python code.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class TemplateRow(BaseModel):
    """Row from the prompt_templates table."""

    id: str
    template_text: str
    placeholders: list[str] = Field(default_factory=list)
    category: str
    subcategory: str | None = None
    tags: list[str] = Field(default_factory=list)
    priority: int = 5
    usage_count: int = 0
    effectiveness_score: float = 0.0
    feedback_count: int = 0
    is_active: bool = True
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SessionRow(BaseModel):
    """Row from the chat_sessions table."""

    id: str
    user_id: str
    title: str
    created_at: datetime
    updated_at: datetime


class MessageRow(BaseModel):
    """Row from the chat_messages table."""

    id: str
    chat_session_id: str
    user_id: str
    message_type: str
    content: str
    confidence_score: int | None = None
    missing_parameters: list[str] | None = None
    clarification_stage: str | None = None
    selected_model: str | None = None
    optimized_prompt: str | None = None
    template_id: str | None = None
    template_applied: bool | None = None
    raw_input: str | None = None
    prompt_type: str | None = None
    model_response: str | None = None
    client_key: str | None = None
    created_at: datetime


class ProfileRow(BaseModel):
    """Row from the profiles table (quota columns only)."""

    id: str
    chat_interface_count: int = 0
    has_unlimited_interfaces: bool = False
