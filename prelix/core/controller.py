"""Clarification Loop Controller — drives a session from raw request to confirmed intent.

State is rebuilt from the transcript on every call. The only things held in
memory are the "let me clarify" flags and the in-flight guard.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import structlog

from prelix.config import Settings, get_settings
from prelix.core.errors import (
    BackendUnavailableError,
    InvalidConfirmationError,
    WorkflowStateError,
)
from prelix.core.estimator import ConfidenceEstimator, get_estimator
from prelix.core.quota import QuotaGate, get_quota_gate
from prelix.core.transcript import TranscriptStore, get_transcript_store
from prelix.core.types import ClarificationStage, ClarificationState, MessageType
from prelix.core.workflow import PromptWorkflow, get_workflow
from prelix.db.models import MessageRow, SessionRow

logger = structlog.get_logger()

CONFIRM_EXACT = "Yes, that's exactly what I want to do."
CONFIRM_SHORT = "Yes, correct"
PROCEED_ANYWAY = "User chose to proceed with current understanding"
AFFIRMATIONS = frozenset({CONFIRM_EXACT, CONFIRM_SHORT, PROCEED_ANYWAY})

WORKFLOW_KEYWORDS = (
    "create",
    "generate",
    "write",
    "design",
    "build",
    "make",
    "develop",
    "help me with",
    "i need",
    "can you",
    "please",
    "prompt for",
    "write a prompt",
    "create a prompt",
    "generate a prompt",
)
WORKFLOW_MIN_LENGTH = 50


def requires_workflow(message: str) -> bool:
    """Does this text look like a new request rather than small talk?"""
    lowered = message.lower()
    return any(k in lowered for k in WORKFLOW_KEYWORDS) or len(message) > WORKFLOW_MIN_LENGTH


class ClarificationController:
    def __init__(
        self,
        transcripts: TranscriptStore,
        estimator: ConfidenceEstimator,
        quota: QuotaGate,
        workflow: PromptWorkflow,
        settings: Settings,
    ) -> None:
        self.transcripts = transcripts
        self.estimator = estimator
        self.quota = quota
        self.workflow = workflow
        self.settings = settings
        self.guard = workflow.guard
        self._awaiting: set[str] = set()

    # -- state ------------------------------------------------------------

    def _state_from(self, session_id: str, messages: list[MessageRow]) -> ClarificationState:
        workflow = self.transcripts.current_workflow(messages)
        estimations = [m for m in workflow if MessageType(m.message_type).is_estimation]
        state = ClarificationState(chat_session_id=session_id, rounds=len(estimations))

        if estimations:
            latest = estimations[-1]
            state.confidence = latest.confidence_score or 0
            state.missing_parameters = list(latest.missing_parameters or [])
            state.understanding = latest.model_response or ""
            if latest.message_type == MessageType.AI_UNDERSTANDING:
                state.stage = ClarificationStage.READY_FOR_CONFIRMATION
            elif latest.message_type == MessageType.AI_QUESTION:
                state.stage = ClarificationStage.QUESTIONING
            elif latest.clarification_stage == ClarificationStage.READY_FOR_CONFIRMATION.value:
                state.stage = ClarificationStage.READY_FOR_CONFIRMATION
            else:
                state.stage = ClarificationStage.QUESTIONING
            if state.stage == ClarificationStage.QUESTIONING:
                state.current_question = self.transcripts.display_content(latest)

        if any(m.message_type == MessageType.CONFIRMATION for m in workflow):
            state.stage = ClarificationStage.CONFIRMED
        elif session_id in self._awaiting:
            state.awaiting_user_clarification = True
            state.stage = ClarificationStage.QUESTIONING

        state.proceed_offered = (
            state.stage == ClarificationStage.QUESTIONING
            and state.rounds >= self.settings.max_clarification_rounds
        )
        return state

    def load_state(self, user_id: str, session_id: str) -> ClarificationState:
        self.transcripts.get_session(user_id, session_id)
        return self._state_from(session_id, self.transcripts.messages(session_id))

    # -- operations -------------------------------------------------------

    def create_session(
        self,
        user_id: str,
        user_input: str,
        prompt_type: str | None = None,
        client_key: str | None = None,
    ) -> SessionRow:
        """Open a session for the first request. The quota gate runs before any write."""
        profile = self.quota.check(user_id)
        session = self.transcripts.create_session(user_id, user_input)
        self.quota.consume(profile)
        self.transcripts.append(
            session.id,
            user_id,
            MessageType.USER_INPUT,
            user_input,
            client_key=client_key,
            prompt_type=prompt_type,
            raw_input=user_input,
        )
        return session

    async def _estimate_round(
        self,
        user_id: str,
        session_id: str,
        user_input: str | None = None,
    ) -> ClarificationState:
        """Run one estimator round; without ``user_input`` the merged context is judged."""
        messages = self.transcripts.messages(session_id)
        state = self._state_from(session_id, messages)
        cap = self.settings.max_clarification_rounds
        if state.rounds >= cap:
            logger.info("controller.round_cap_reached", rounds=state.rounds)
            return state

        workflow = self.transcripts.current_workflow(messages)
        current = self.transcripts.latest(workflow, MessageType.USER_INPUT)
        prior_context = self.transcripts.build_context(
            self.transcripts.context_memory(messages), self.settings.context_max_chars
        )
        result, _ = await self.estimator.assess(
            session_id,
            user_id,
            user_input or prior_context,
            prompt_type=current.prompt_type if current else None,
            prior_context=prior_context,
            confidence_floor=state.confidence if state.rounds else 0,
            offer_proceed=state.rounds + 1 >= cap,
        )
        logger.info(
            "controller.round",
            round=state.rounds + 1,
            confidence=result.confidence,
            ready=result.ready_for_confirmation,
        )
        return self.load_state(user_id, session_id)

    async def understand(
        self,
        user_id: str,
        session_id: str,
        user_input: str | None = None,
        prompt_type: str | None = None,
        client_key: str | None = None,
    ) -> ClarificationState:
        """Estimate the current request. A new ``user_input`` starts a continuation workflow."""
        self.transcripts.get_session(user_id, session_id)
        async with self.guard.hold(session_id, user_input or ""):
            if user_input:
                self._awaiting.discard(session_id)
                self.transcripts.append(
                    session_id,
                    user_id,
                    MessageType.USER_INPUT,
                    user_input,
                    client_key=client_key,
                    prompt_type=prompt_type,
                    raw_input=user_input,
                )
            messages = self.transcripts.messages(session_id)
            if self._state_from(session_id, messages).stage == ClarificationStage.CONFIRMED:
                raise WorkflowStateError(
                    "Understanding already confirmed", chat_session_id=session_id
                )
            workflow = self.transcripts.current_workflow(messages)
            current = self.transcripts.latest(workflow, MessageType.USER_INPUT)
            if current is None:
                raise WorkflowStateError(
                    "Session has no request to understand", chat_session_id=session_id
                )
            try:
                return await self._estimate_round(user_id, session_id, current.content)
            except BackendUnavailableError as e:
                e.context["chat_session_id"] = session_id
                raise

    async def start(
        self,
        user_id: str,
        user_input: str,
        prompt_type: str | None = None,
        client_key: str | None = None,
    ) -> tuple[SessionRow, ClarificationState]:
        """Create a session and run the first estimation.

        If the estimation fails, the raised error carries the new session id
        so the caller can retry ``understand`` instead of opening another session.
        """
        async with self.guard.hold(f"user:{user_id}", user_input):
            session = self.create_session(user_id, user_input, prompt_type, client_key)
            state = await self.understand(user_id, session.id)
        return session, state

    async def answer(
        self,
        user_id: str,
        session_id: str,
        message: str,
        client_key: str | None = None,
    ) -> ClarificationState:
        """Record a clarification answer and re-estimate with the merged context."""
        self.transcripts.get_session(user_id, session_id)
        async with self.guard.hold(session_id, message):
            state = self._state_from(session_id, self.transcripts.messages(session_id))
            if state.stage == ClarificationStage.CONFIRMED:
                raise WorkflowStateError(
                    "Understanding already confirmed", chat_session_id=session_id
                )
            self._awaiting.discard(session_id)
            self.transcripts.append(
                session_id,
                user_id,
                MessageType.CLARIFICATION_ANSWER,
                message,
                client_key=client_key,
            )
            try:
                return await self._estimate_round(user_id, session_id)
            except BackendUnavailableError as e:
                # The answer stays recorded; the next attempt re-estimates.
                self._awaiting.add(session_id)
                e.context["chat_session_id"] = session_id
                raise

    def confirm(
        self,
        user_id: str,
        session_id: str,
        affirmation: str,
        client_key: str | None = None,
    ) -> ClarificationState:
        """Accept the current understanding, whatever its confidence."""
        if affirmation not in AFFIRMATIONS:
            raise InvalidConfirmationError(
                f"Unrecognised confirmation: {affirmation!r}", chat_session_id=session_id
            )
        self.transcripts.get_session(user_id, session_id)
        if self.transcripts.has_client_key(session_id, client_key):
            return self.load_state(user_id, session_id)
        state = self._state_from(session_id, self.transcripts.messages(session_id))
        if state.stage == ClarificationStage.CONFIRMED:
            raise WorkflowStateError("Understanding already confirmed", chat_session_id=session_id)

        self._awaiting.discard(session_id)
        self.transcripts.append(
            session_id,
            user_id,
            MessageType.CONFIRMATION,
            affirmation,
            client_key=client_key,
            confidence_score=state.confidence,
            clarification_stage=ClarificationStage.CONFIRMED.value,
        )
        logger.info("controller.confirmed", confidence=state.confidence, rounds=state.rounds)
        return self.load_state(user_id, session_id)

    def request_clarification(self, user_id: str, session_id: str) -> ClarificationState:
        """The user wants to add detail before confirming."""
        state = self.load_state(user_id, session_id)
        if state.stage == ClarificationStage.CONFIRMED:
            raise WorkflowStateError("Understanding already confirmed", chat_session_id=session_id)
        self._awaiting.add(session_id)
        logger.info("controller.awaiting_clarification")
        return self.load_state(user_id, session_id)

    async def send_message(
        self,
        user_id: str,
        message: str,
        prompt_type: str | None = None,
        session_id: str | None = None,
        client_key: str | None = None,
    ) -> dict[str, Any]:
        """Route free text to the right step of the workflow."""
        if not session_id:
            session, state = await self.start(user_id, message, prompt_type, client_key)
            return {"route": "start", "chat_session_id": session.id, "state": state}

        state = self.load_state(user_id, session_id)
        if message in AFFIRMATIONS and state.stage == ClarificationStage.READY_FOR_CONFIRMATION:
            state = self.confirm(user_id, session_id, message, client_key)
            return {"route": "confirm", "chat_session_id": session_id, "state": state}
        if state.awaiting_user_clarification or state.stage == ClarificationStage.QUESTIONING:
            state = await self.answer(user_id, session_id, message, client_key)
            return {"route": "answer", "chat_session_id": session_id, "state": state}
        if requires_workflow(message):
            state = await self.understand(user_id, session_id, message, prompt_type, client_key)
            return {"route": "understand", "chat_session_id": session_id, "state": state}

        reply = await self.workflow.converse(user_id, session_id, message)
        return {"route": "conversation", "chat_session_id": session_id, **reply}


@lru_cache
def get_controller() -> ClarificationController:
    return ClarificationController(
        get_transcript_store(),
        get_estimator(),
        get_quota_gate(),
        get_workflow(),
        get_settings(),
    )
