"""Chat session read and delete endpoints."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends

from prelix.api.auth import get_current_user
from prelix.api.models import MessageResponse, SessionResponse, StateResponse
from prelix.core.controller import ClarificationController, get_controller
from prelix.core.transcript import TranscriptStore, get_transcript_store
from prelix.utils.logging import bind_request_context

router = APIRouter()


@router.get("", response_model=list[SessionResponse])
async def list_sessions(
    limit: int = 50,
    user_id: str = Depends(get_current_user),
    transcripts: TranscriptStore = Depends(get_transcript_store),
) -> list[SessionResponse]:
    """The caller's sessions, most recently updated first."""
    return [SessionResponse(**s.model_dump()) for s in transcripts.list_sessions(user_id, limit)]


@router.get("/{session_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    session_id: str,
    user_id: str = Depends(get_current_user),
    transcripts: TranscriptStore = Depends(get_transcript_store),
) -> list[MessageResponse]:
    """Turns in creation order, projected to display text."""
    bind_request_context(user_id=user_id, chat_session_id=session_id)
    transcripts.get_session(user_id, session_id)
    return [
        MessageResponse(
            **m.model_dump(exclude={"content"}),
            content=transcripts.display_content(m),
        )
        for m in transcripts.messages(session_id)
    ]


@router.get("/{session_id}/state", response_model=StateResponse)
async def get_state(
    session_id: str,
    user_id: str = Depends(get_current_user),
    controller: ClarificationController = Depends(get_controller),
) -> StateResponse:
    bind_request_context(user_id=user_id, chat_session_id=session_id)
    return StateResponse(**asdict(controller.load_state(user_id, session_id)))


@router.delete("/{session_id}", status_code=204)
async def delete_session(
    session_id: str,
    user_id: str = Depends(get_current_user),
    transcripts: TranscriptStore = Depends(get_transcript_store),
) -> None:
    """Delete a session and all of its turns."""
    bind_request_context(user_id=user_id, chat_session_id=session_id)
    transcripts.delete_session(user_id, session_id)
