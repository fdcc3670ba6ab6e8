"""Prompt template endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from prelix.api.auth import get_current_user
from prelix.api.models import (
    TemplateCreate,
    TemplateFeedback,
    TemplateMatchRequest,
    TemplateResponse,
)
from prelix.core.templates import TemplateRepository, get_template_repository

router = APIRouter()


@router.get("", response_model=list[TemplateResponse])
async def list_templates(
    category: str | None = None,
    repository: TemplateRepository = Depends(get_template_repository),
) -> list[TemplateResponse]:
    """List active templates, best performing first."""
    return [TemplateResponse(**t.model_dump()) for t in repository.list_active(category)]


@router.post("", response_model=TemplateResponse, status_code=201)
async def create_template(
    data: TemplateCreate,
    user_id: str = Depends(get_current_user),
    repository: TemplateRepository = Depends(get_template_repository),
) -> TemplateResponse:
    template = repository.create_template(**data.model_dump())
    return TemplateResponse(**template.model_dump())


@router.post("/match", response_model=list[TemplateResponse])
async def match_templates(
    data: TemplateMatchRequest,
    repository: TemplateRepository = Depends(get_template_repository),
) -> list[TemplateResponse]:
    """Active templates sharing keywords or tags with the input."""
    matches = repository.match_by_input(data.user_input, data.category, data.limit)
    return [TemplateResponse(**t.model_dump()) for t in matches]


@router.get("/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: str,
    repository: TemplateRepository = Depends(get_template_repository),
) -> TemplateResponse:
    return TemplateResponse(**repository.get_template(template_id).model_dump())


@router.post("/{template_id}/feedback", response_model=TemplateResponse)
async def template_feedback(
    template_id: str,
    data: TemplateFeedback,
    user_id: str = Depends(get_current_user),
    repository: TemplateRepository = Depends(get_template_repository),
) -> TemplateResponse:
    """Fold a 0-1 rating into the template's effectiveness score."""
    template = repository.update_effectiveness(template_id, data.rating)
    return TemplateResponse(**template.model_dump())


@router.delete("/{template_id}", status_code=204)
async def deactivate_template(
    template_id: str,
    user_id: str = Depends(get_current_user),
    repository: TemplateRepository = Depends(get_template_repository),
) -> None:
    """Deactivate (soft delete) a template."""
    if not repository.deactivate(template_id):
        raise HTTPException(status_code=404, detail=f"Template '{template_id}' not found")
