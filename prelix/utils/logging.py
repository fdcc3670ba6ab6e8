"""Structured logging configuration using structlog."""

from __future__ import annotations

import logging
import sys

import structlog


def setup_logging(level: str = "INFO") -> None:
    """Configure structured logging for the application."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer()
            if sys.stderr.isatty()
            else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_request_context(
    user_id: str | None = None,
    chat_session_id: str | None = None,
    action: str | None = None,
) -> None:
    """Bind per-request identifiers so every log line of the request carries them."""
    structlog.contextvars.clear_contextvars()
    context = {
        "user_id": user_id,
        "chat_session_id": chat_session_id,
        "action": action,
    }
    structlog.contextvars.bind_contextvars(**{k: v for k, v in context.items() if v})
