"""Per-session in-flight guard shared by the controller and the workflow steps."""

from __future__ import annotations

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncIterator

import structlog

from prelix.core.errors import DuplicateSubmissionError, SessionBusyError

logger = structlog.get_logger()


class SessionGuard:
    """At most one backend-bound call per key; the same content twice is a duplicate.

    Keys are session ids, or ``user:{id}`` while a session is being opened.
    State is per process.
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, str] = {}

    def is_held(self, key: str) -> bool:
        return key in self._in_flight

    @asynccontextmanager
    async def hold(self, key: str, content: str) -> AsyncIterator[None]:
        if key in self._in_flight:
            if self._in_flight[key] == content:
                logger.info("guard.duplicate", key=key)
                raise DuplicateSubmissionError("This message is already being processed")
            logger.info("guard.busy", key=key)
            raise SessionBusyError("Another request for this session is in progress")
        self._in_flight[key] = content
        try:
            yield
        finally:
            self._in_flight.pop(key, None)


@lru_cache
def get_session_guard() -> SessionGuard:
    return SessionGuard()
