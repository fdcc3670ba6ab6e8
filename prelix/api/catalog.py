"""Model catalogue endpoint."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter

from prelix.api.models import ModelResponse
from prelix.core.catalog import AVAILABLE_MODELS

router = APIRouter()


@router.get("/models", response_model=list[ModelResponse])
async def list_models() -> list[ModelResponse]:
    """Downstream models a prompt can be optimized for."""
    return [ModelResponse(**asdict(m)) for m in AVAILABLE_MODELS]
