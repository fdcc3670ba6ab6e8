"""FastAPI application entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from prelix.api.router import api_router
from prelix.config import get_settings
from prelix.core.errors import PrelixError
from prelix.db.client import get_supabase_client
from prelix.utils.logging import setup_logging

logger = structlog.get_logger()

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan — startup and shutdown."""
    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info("prelix.starting", port=settings.port)

    get_supabase_client()
    logger.info("prelix.supabase_connected")

    yield

    logger.info("prelix.shutdown")


app = FastAPI(
    title="Prelix",
    description="Clarify requests and optimize prompts for downstream AI models",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.exception_handler(PrelixError)
async def prelix_error_handler(request: Request, exc: PrelixError) -> JSONResponse:
    """Map domain errors to their status and a stable error code."""
    log = logger.warning if exc.status_code >= 500 else logger.info
    log("prelix.error", error_code=exc.error_code, path=request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error_code, "message": exc.message, **exc.context},
    )


@app.get("/")
async def root():
    """Service info endpoint."""
    return {"service": "prelix", "version": VERSION}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "service": "prelix", "version": VERSION}
