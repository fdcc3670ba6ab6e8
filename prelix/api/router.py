"""Main API router — aggregates all endpoint modules."""

from fastapi import APIRouter

from prelix.api.catalog import router as catalog_router
from prelix.api.sessions import router as sessions_router
from prelix.api.templates import router as templates_router
from prelix.api.workflow import router as workflow_router

api_router = APIRouter()

api_router.include_router(workflow_router, tags=["workflow"])
api_router.include_router(catalog_router, tags=["models"])
api_router.include_router(templates_router, prefix="/templates", tags=["templates"])
api_router.include_router(sessions_router, prefix="/sessions", tags=["sessions"])
