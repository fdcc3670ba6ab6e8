"""Pydantic request/response models for the API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from prelix.core.types import ClarificationStage

WorkflowAction = Literal[
    "create_session",
    "understand_input",
    "process_clarification",
    "confirm_understanding",
    "request_clarification",
    "send_message",
    "get_models",
    "get_filtered_templates",
    "preview_template",
    "optimize_prompt",
    "generate_response",
    "execute_prompt",
    "simple_conversation",
    "template_feedback",
]


# --- Workflow ---


class WorkflowRequest(BaseModel):
    """One step of the workflow, discriminated by ``action``."""

    action: WorkflowAction
    chat_session_id: str | None = None
    user_input: str | None = None
    prompt_type: str | None = None
    message: str | None = None
    selected_model: str | None = None
    template_id: str | None = None
    template_values: dict[str, str] | None = None
    rating: float | None = Field(default=None, ge=0.0, le=1.0)
    client_key: str | None = None


class StateResponse(BaseModel):
    """Clarification state of a session."""

    chat_session_id: str
    stage: ClarificationStage
    confidence: int
    missing_parameters: list[str]
    current_question: str
    understanding: str
    rounds: int
    proceed_offered: bool
    awaiting_user_clarification: bool


# --- Templates ---


class TemplateCreate(BaseModel):
    template_text: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    subcategory: str | None = None
    tags: list[str] = Field(default_factory=list)
    priority: int = Field(default=5, ge=0, le=10)
    placeholders: list[str] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class TemplateResponse(BaseModel):
    id: str
    template_text: str
    placeholders: list[str]
    category: str
    subcategory: str | None = None
    tags: list[str]
    priority: int
    usage_count: int
    effectiveness_score: float
    feedback_count: int
    is_active: bool


class TemplateMatchRequest(BaseModel):
    user_input: str = Field(..., min_length=1)
    category: str | None = None
    limit: int = Field(default=5, ge=1, le=50)


class TemplateFeedback(BaseModel):
    rating: float = Field(..., ge=0.0, le=1.0)


# --- Sessions ---


class SessionResponse(BaseModel):
    id: str
    title: str
    created_at: datetime
    updated_at: datetime


class MessageResponse(BaseModel):
    """A turn as shown to the user."""

    id: str
    message_type: str
    content: str
    confidence_score: int | None = None
    selected_model: str | None = None
    optimized_prompt: str | None = None
    template_id: str | None = None
    created_at: datetime


# --- Catalogue ---


class ModelResponse(BaseModel):
    id: str
    name: str
    provider: str
    category: str | None = None
