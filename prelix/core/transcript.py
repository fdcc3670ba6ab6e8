"""Session Transcript Store — chat sessions and their append-only turns."""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any

import structlog

from prelix.core.errors import SessionNotFoundError
from prelix.core.types import CONTEXT_TURNS, MessageType
from prelix.db.client import SupabaseClient, get_supabase_client
from prelix.db.models import MessageRow, SessionRow

logger = structlog.get_logger()

SESSIONS_TABLE = "chat_sessions"
MESSAGES_TABLE = "chat_messages"

TITLE_LENGTH = 50
PROCESSING_PLACEHOLDER = "Prelix is processing your request..."
LEGACY_CONFIRMATION = "I think I understand. Can you confirm this is correct?"


def session_title(user_input: str) -> str:
    text = user_input.strip()
    if len(text) > TITLE_LENGTH:
        return text[:TITLE_LENGTH] + "..."
    return text


class TranscriptStore:
    """Reads and writes sessions and turns, always scoped to the owning user."""

    def __init__(self, db: SupabaseClient) -> None:
        self.db = db

    # -- sessions ---------------------------------------------------------

    def create_session(self, user_id: str, user_input: str) -> SessionRow:
        row = self.db.insert(
            SESSIONS_TABLE,
            {"user_id": user_id, "title": session_title(user_input)},
        )
        logger.info("transcript.session_created", chat_session_id=row["id"])
        return SessionRow(**row)

    def get_session(self, user_id: str, session_id: str) -> SessionRow:
        """Fetch a session owned by ``user_id``; other users' sessions look missing."""
        rows = self.db.select(SESSIONS_TABLE, filters={"id": session_id})
        if not rows or rows[0].get("user_id") != user_id:
            raise SessionNotFoundError(
                f"Chat session '{session_id}' not found", chat_session_id=session_id
            )
        return SessionRow(**rows[0])

    def list_sessions(self, user_id: str, limit: int = 50) -> list[SessionRow]:
        rows = self.db.select(
            SESSIONS_TABLE,
            filters={"user_id": user_id},
            order_by="updated_at",
            ascending=False,
            limit=limit,
        )
        return [SessionRow(**r) for r in rows]

    def delete_session(self, user_id: str, session_id: str) -> None:
        self.get_session(user_id, session_id)
        for message in self.db.select(MESSAGES_TABLE, filters={"chat_session_id": session_id}):
            self.db.delete(MESSAGES_TABLE, message["id"])
        self.db.delete(SESSIONS_TABLE, session_id)
        logger.info("transcript.session_deleted", chat_session_id=session_id)

    # -- turns ------------------------------------------------------------

    def append(
        self,
        session_id: str,
        user_id: str,
        message_type: MessageType,
        content: str,
        client_key: str | None = None,
        **fields: Any,
    ) -> MessageRow:
        """Append one turn. A turn whose ``client_key`` already exists is returned as-is."""
        if client_key:
            existing = [
                r
                for r in self.db.select(MESSAGES_TABLE, filters={"chat_session_id": session_id})
                if r.get("client_key") == client_key
            ]
            if existing:
                logger.info("transcript.duplicate_append", client_key=client_key)
                return MessageRow(**existing[0])

        data = {
            "chat_session_id": session_id,
            "user_id": user_id,
            "message_type": MessageType(message_type).value,
            "content": content,
            "client_key": client_key,
            **{k: v for k, v in fields.items() if v is not None},
        }
        row = self.db.insert(MESSAGES_TABLE, data)
        logger.debug("transcript.appended", message_type=data["message_type"])
        return MessageRow(**row)

    def has_client_key(self, session_id: str, client_key: str | None) -> bool:
        if not client_key:
            return False
        return any(m.client_key == client_key for m in self.messages(session_id))

    def messages(self, session_id: str) -> list[MessageRow]:
        rows = self.db.select(
            MESSAGES_TABLE,
            filters={"chat_session_id": session_id},
            order_by="created_at",
            ascending=True,
        )
        return [MessageRow(**r) for r in rows]

    # -- derived views ----------------------------------------------------

    @staticmethod
    def original_input(messages: list[MessageRow]) -> MessageRow | None:
        """The first ``user_input`` turn: the canonical original ask."""
        return next((m for m in messages if m.message_type == MessageType.USER_INPUT), None)

    @staticmethod
    def current_workflow(messages: list[MessageRow]) -> list[MessageRow]:
        """Turns from the latest ``user_input`` onward."""
        start = 0
        for i, m in enumerate(messages):
            if m.message_type == MessageType.USER_INPUT:
                start = i
        return messages[start:]

    @staticmethod
    def latest(messages: list[MessageRow], *types: MessageType) -> MessageRow | None:
        wanted = {t.value for t in types}
        return next((m for m in reversed(messages) if m.message_type in wanted), None)

    @staticmethod
    def context_memory(messages: list[MessageRow]) -> list[str]:
        """User-authored strings that feed clarification, in order."""
        wanted = {t.value for t in CONTEXT_TURNS}
        return [m.content for m in messages if m.message_type in wanted]

    @staticmethod
    def build_context(memory: list[str], max_chars: int) -> str:
        """Join context memory, keeping the original then the newest strings that fit."""
        if not memory:
            return ""
        original, rest = memory[0], memory[1:]
        budget = max_chars - len(original)
        kept: list[str] = []
        for text in reversed(rest):
            cost = len(text) + 1
            if cost > budget:
                break
            kept.append(text)
            budget -= cost
        return " ".join([original, *reversed(kept)])

    @staticmethod
    def transcript_text(messages: list[MessageRow]) -> str:
        return "\n".join(f"[{m.message_type}]: {m.content}" for m in messages)

    @staticmethod
    def display_content(message: MessageRow) -> str:
        """Project a stored turn to user-facing text.

        Older rows sometimes stored the raw estimator payload as content.
        """
        content = message.content.strip()
        if MessageType(message.message_type).is_user_authored or not content.startswith("{"):
            return message.content
        try:
            payload = json.loads(content)
        except json.JSONDecodeError:
            return PROCESSING_PLACEHOLDER
        if not isinstance(payload, dict):
            return PROCESSING_PLACEHOLDER
        if payload.get("clarification_question"):
            return str(payload["clarification_question"])
        if payload.get("understanding"):
            return LEGACY_CONFIRMATION
        return PROCESSING_PLACEHOLDER


@lru_cache
def get_transcript_store() -> TranscriptStore:
    """Get cached transcript store instance."""
    return TranscriptStore(get_supabase_client())
