"""Tests for the Clarification Loop Controller."""

from __future__ import annotations

import asyncio

import pytest

from prelix.core.controller import PROCEED_ANYWAY, CONFIRM_EXACT, CONFIRM_SHORT, requires_workflow
from prelix.core.errors import (
    BackendUnavailableError,
    ChatLimitReachedError,
    DuplicateSubmissionError,
    InvalidConfirmationError,
    SessionBusyError,
    SessionNotFoundError,
    WorkflowStateError,
)
from prelix.core.estimator import PROCEED_OFFER
from prelix.core.types import ClarificationStage

USER = "user-1"


def _types(mock_db):
    return [r["message_type"] for r in mock_db.rows("chat_messages")]


class TestStart:
    @pytest.mark.asyncio
    async def test_start_asks_question(self, controller, llm, mock_db, reply):
        llm.queue(reply(60, question="Who is the audience?"))
        session, state = await controller.start(USER, "Write a blog post about solar", "Creative")

        assert state.stage == ClarificationStage.QUESTIONING
        assert state.current_question == "Who is the audience?"
        assert state.rounds == 1
        assert session.title == "Write a blog post about solar"
        assert _types(mock_db) == ["user_input", "ai_question"]
        first = mock_db.rows("chat_messages")[0]
        assert first["prompt_type"] == "Creative"
        assert first["raw_input"] == "Write a blog post about solar"
        assert ("increment_chat_interface_count", {"_user_id": USER}) in mock_db.rpc_calls

    @pytest.mark.asyncio
    async def test_start_ready(self, controller, llm, reply):
        llm.queue(reply(90, understanding="A blog post on solar for homeowners."))
        _, state = await controller.start(USER, "Write a blog post about solar for homeowners")
        assert state.stage == ClarificationStage.READY_FOR_CONFIRMATION
        assert state.understanding == "A blog post on solar for homeowners."
        assert state.current_question == ""

    @pytest.mark.asyncio
    async def test_long_title_truncated(self, controller, llm, reply):
        llm.queue(reply(90))
        text = "x" * 80
        session, _ = await controller.start(USER, text)
        assert session.title == "x" * 50 + "..."


class TestQuota:
    @pytest.mark.asyncio
    async def test_limit_blocks_before_any_write(self, controller, llm, mock_db):
        mock_db.set_profile(USER, count=5)
        with pytest.raises(ChatLimitReachedError) as exc:
            await controller.start(USER, "Write a blog post")

        assert exc.value.error_code == "CHAT_LIMIT_REACHED"
        assert mock_db.rows("chat_sessions") == []
        assert mock_db.rows("chat_messages") == []
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_unlimited_user_not_counted(self, controller, llm, mock_db, reply):
        mock_db.set_profile(USER, count=12, unlimited=True)
        llm.queue(reply(90))
        await controller.start(USER, "Write a blog post")
        assert all(name != "increment_chat_interface_count" for name, _ in mock_db.rpc_calls)

    @pytest.mark.asyncio
    async def test_limited_user_counted(self, controller, llm, mock_db, reply):
        mock_db.set_profile(USER, count=3)
        llm.queue(reply(90))
        await controller.start(USER, "Write a blog post")
        assert mock_db.rows("profiles")[0]["chat_interface_count"] == 4


class TestAnswer:
    @pytest.mark.asyncio
    async def test_answer_merges_context_and_becomes_ready(self, controller, llm, mock_db, reply):
        llm.queue(reply(60, question="Who is it for?"), reply(90, understanding="Blog for homeowners"))
        session, _ = await controller.start(USER, "Write a blog post about solar")
        state = await controller.answer(USER, session.id, "Homeowners in Texas")

        assert state.stage == ClarificationStage.READY_FOR_CONFIRMATION
        assert _types(mock_db) == ["user_input", "ai_question", "clarification_answer", "ai_understanding"]
        second = llm.calls[1]["user"]
        assert "Write a blog post about solar" in second
        assert "Homeowners in Texas" in second

    @pytest.mark.asyncio
    async def test_confidence_never_drops(self, controller, llm, reply):
        llm.queue(reply(70, question="What for?"), reply(40, question="What format?"))
        session, _ = await controller.start(USER, "Write a blog post about solar")
        state = await controller.answer(USER, session.id, "Not sure really")
        assert state.confidence == 70
        assert state.stage == ClarificationStage.QUESTIONING

    @pytest.mark.asyncio
    async def test_at_most_one_question(self, controller, llm, reply):
        llm.queue(reply(50, question="What format? Who reads it? Why?"))
        _, state = await controller.start(USER, "Write something")
        assert state.current_question == "What format?"

    @pytest.mark.asyncio
    async def test_answer_after_confirm_rejected(self, controller, llm, reply):
        llm.queue(reply(90))
        session, _ = await controller.start(USER, "Write a blog post")
        controller.confirm(USER, session.id, CONFIRM_EXACT)
        with pytest.raises(WorkflowStateError):
            await controller.answer(USER, session.id, "more detail")

    @pytest.mark.asyncio
    async def test_backend_failure_keeps_answer_and_retry_dedupes(
        self, controller, llm, mock_db, reply
    ):
        llm.queue(reply(60, question="Who is it for?"), BackendUnavailableError("down"))
        session, _ = await controller.start(USER, "Write a blog post")

        with pytest.raises(BackendUnavailableError) as exc:
            await controller.answer(USER, session.id, "Homeowners", client_key="k1")
        assert exc.value.context["chat_session_id"] == session.id
        state = controller.load_state(USER, session.id)
        assert state.awaiting_user_clarification is True

        llm.queue(reply(90))
        state = await controller.answer(USER, session.id, "Homeowners", client_key="k1")
        assert state.stage == ClarificationStage.READY_FOR_CONFIRMATION
        assert _types(mock_db).count("clarification_answer") == 1


class TestCap:
    @pytest.mark.asyncio
    async def test_cap_offers_proceed_and_stops_estimating(
        self, controller, llm, mock_db, settings, reply
    ):
        settings.max_clarification_rounds = 2
        llm.queue(reply(40, question="What format?"), reply(50, question="Who reads it?"))
        session, _ = await controller.start(USER, "Write something")

        state = await controller.answer(USER, session.id, "An article")
        assert state.proceed_offered is True
        assert PROCEED_OFFER in mock_db.rows("chat_messages")[-1]["content"]

        state = await controller.answer(USER, session.id, "For my team")
        assert len(llm.calls) == 2
        assert _types(mock_db)[-1] == "clarification_answer"
        assert state.proceed_offered is True

        state = controller.confirm(USER, session.id, PROCEED_ANYWAY)
        assert state.stage == ClarificationStage.CONFIRMED


class TestConfirm:
    @pytest.mark.asyncio
    async def test_confirm_overrides_low_confidence(self, controller, llm, mock_db, reply):
        llm.queue(reply(40, question="What format?"))
        session, _ = await controller.start(USER, "Write something")
        state = controller.confirm(USER, session.id, PROCEED_ANYWAY)

        assert state.stage == ClarificationStage.CONFIRMED
        assert _types(mock_db)[-1] == "confirmation"
        assert mock_db.rows("chat_messages")[-1]["confidence_score"] == 40

    @pytest.mark.asyncio
    async def test_short_affirmation_accepted(self, controller, llm, reply):
        llm.queue(reply(90))
        session, _ = await controller.start(USER, "Write a blog post")
        assert controller.confirm(USER, session.id, CONFIRM_SHORT).stage == ClarificationStage.CONFIRMED

    @pytest.mark.asyncio
    async def test_unknown_affirmation_rejected(self, controller, llm, mock_db, reply):
        llm.queue(reply(90))
        session, _ = await controller.start(USER, "Write a blog post")
        with pytest.raises(InvalidConfirmationError):
            controller.confirm(USER, session.id, "sure why not")
        assert "confirmation" not in _types(mock_db)

    @pytest.mark.asyncio
    async def test_double_confirm(self, controller, llm, reply):
        llm.queue(reply(90))
        session, _ = await controller.start(USER, "Write a blog post")
        controller.confirm(USER, session.id, CONFIRM_EXACT)
        with pytest.raises(WorkflowStateError):
            controller.confirm(USER, session.id, CONFIRM_EXACT)

    @pytest.mark.asyncio
    async def test_confirm_retry_with_same_key(self, controller, llm, mock_db, reply):
        llm.queue(reply(90))
        session, _ = await controller.start(USER, "Write a blog post")
        controller.confirm(USER, session.id, CONFIRM_EXACT, client_key="c1")
        state = controller.confirm(USER, session.id, CONFIRM_EXACT, client_key="c1")
        assert state.stage == ClarificationStage.CONFIRMED
        assert _types(mock_db).count("confirmation") == 1

    @pytest.mark.asyncio
    async def test_understand_after_confirm(self, controller, llm, mock_db, reply):
        llm.queue(reply(90))
        session, _ = await controller.start(USER, "Write a blog post")
        controller.confirm(USER, session.id, CONFIRM_EXACT)
        calls = len(llm.calls)

        with pytest.raises(WorkflowStateError):
            await controller.understand(USER, session.id)
        assert _types(mock_db)[-1] == "confirmation"
        assert len(llm.calls) == calls

        llm.queue(reply(60, question="Which product?"))
        state = await controller.understand(USER, session.id, "Now write a launch email")
        assert state.stage == ClarificationStage.QUESTIONING


class TestRequestClarification:
    @pytest.mark.asyncio
    async def test_let_me_clarify_routes_next_message_to_answer(
        self, controller, llm, mock_db, reply
    ):
        llm.queue(reply(90), reply(95))
        session, _ = await controller.start(USER, "Write a blog post")
        state = controller.request_clarification(USER, session.id)
        assert state.awaiting_user_clarification is True
        assert state.stage == ClarificationStage.QUESTIONING

        result = await controller.send_message(USER, "ok", session_id=session.id)
        assert result["route"] == "answer"
        assert result["state"].awaiting_user_clarification is False
        assert _types(mock_db)[-2] == "clarification_answer"


class TestStartFailure:
    @pytest.mark.asyncio
    async def test_error_carries_session_and_understand_retries(self, controller, llm, mock_db, reply):
        llm.queue(BackendUnavailableError("down"))
        with pytest.raises(BackendUnavailableError) as exc:
            await controller.start(USER, "Write a blog post")

        session_id = exc.value.context["chat_session_id"]
        assert [s["id"] for s in mock_db.rows("chat_sessions")] == [session_id]
        assert controller.load_state(USER, session_id).stage == ClarificationStage.INITIAL

        llm.queue(reply(90))
        state = await controller.understand(USER, session_id)
        assert state.stage == ClarificationStage.READY_FOR_CONFIRMATION
        assert len(mock_db.rows("chat_sessions")) == 1


class TestInFlightGuard:
    @pytest.mark.asyncio
    async def test_concurrent_first_message_opens_one_session(self, controller, llm, mock_db, reply):
        llm.delay = 0.05
        llm.queue(reply(60, question="Who for?"))
        results = await asyncio.gather(
            controller.send_message(USER, "Write a blog post"),
            controller.send_message(USER, "Write a blog post"),
            return_exceptions=True,
        )

        assert sum(isinstance(r, dict) for r in results) == 1
        assert sum(isinstance(r, DuplicateSubmissionError) for r in results) == 1
        assert len(mock_db.rows("chat_sessions")) == 1
        assert _types(mock_db) == ["user_input", "ai_question"]
        increments = [c for c in mock_db.rpc_calls if c[0] == "increment_chat_interface_count"]
        assert len(increments) == 1
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_concurrent_start_with_other_text_is_busy(self, controller, llm, mock_db, reply):
        llm.delay = 0.05
        llm.queue(reply(60, question="Who for?"))
        results = await asyncio.gather(
            controller.start(USER, "Write a blog post"),
            controller.start(USER, "Design a logo"),
            return_exceptions=True,
        )

        assert isinstance(results[1], SessionBusyError)
        assert len(mock_db.rows("chat_sessions")) == 1

    @pytest.mark.asyncio
    async def test_concurrent_answers(self, controller, llm, mock_db, reply):
        llm.queue(reply(60, question="Who for?"))
        session, _ = await controller.start(USER, "Write a blog post")

        llm.delay = 0.05
        llm.queue(reply(70, question="What tone?"))
        results = await asyncio.gather(
            controller.answer(USER, session.id, "Homeowners"),
            controller.answer(USER, session.id, "Homeowners"),
            return_exceptions=True,
        )
        assert isinstance(results[1], DuplicateSubmissionError)

        llm.queue(reply(90))
        results = await asyncio.gather(
            controller.answer(USER, session.id, "For a newsletter"),
            controller.answer(USER, session.id, "Renters"),
            return_exceptions=True,
        )
        assert results[0].stage == ClarificationStage.READY_FOR_CONFIRMATION
        assert isinstance(results[1], SessionBusyError)
        assert _types(mock_db).count("clarification_answer") == 2
        assert not controller.guard.is_held(session.id)

    @pytest.mark.asyncio
    async def test_guard_released_after_failure(self, controller, llm, reply):
        llm.queue(reply(60, question="Who for?"))
        session, _ = await controller.start(USER, "Write a blog post")

        llm.queue(BackendUnavailableError("down"))
        with pytest.raises(BackendUnavailableError):
            await controller.answer(USER, session.id, "Homeowners")
        assert not controller.guard.is_held(session.id)
        assert not controller.guard.is_held(f"user:{USER}")

    def test_controller_shares_workflow_guard(self, controller, workflow):
        assert controller.guard is workflow.guard


class TestAnchor:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("extra_turns", [0, 1, 5])
    async def test_original_input_stable(self, controller, workflow, llm, transcripts, reply, extra_turns):
        original = "Write a blog post about solar panels"
        llm.queue(reply(40, question="Who is it for?"))
        llm.queue(*[reply(50, question="Anything else?") for _ in range(extra_turns)])
        session, _ = await controller.start(USER, original)
        for i in range(extra_turns):
            await controller.answer(USER, session.id, f"Detail number {i}")
        controller.confirm(USER, session.id, PROCEED_ANYWAY)

        llm.queue("OPTIMIZED PROMPT")
        await workflow.optimize_for_session(USER, session.id, "gpt-4o")

        messages = transcripts.messages(session.id)
        assert transcripts.original_input(messages).content == original
        assert f'Original user request: "{original}"' in llm.calls[-1]["system"]


class TestRouting:
    def test_requires_workflow(self):
        assert requires_workflow("Please help")
        assert requires_workflow("Can you draft an email")
        assert requires_workflow("x" * 51)
        assert not requires_workflow("thanks!")

    @pytest.mark.asyncio
    async def test_send_message_routes(self, controller, llm, mock_db, reply):
        llm.queue(reply(90))
        result = await controller.send_message(USER, "Write a blog post about solar")
        assert result["route"] == "start"
        session_id = result["chat_session_id"]

        result = await controller.send_message(USER, CONFIRM_EXACT, session_id=session_id)
        assert result["route"] == "confirm"

        llm.queue("You're welcome!")
        result = await controller.send_message(USER, "thanks!", session_id=session_id)
        assert result["route"] == "conversation"
        assert result["response"] == "You're welcome!"

        llm.queue(reply(60, question="What style?"))
        result = await controller.send_message(USER, "Now write a poem about cats", session_id=session_id)
        assert result["route"] == "understand"
        assert result["state"].stage == ClarificationStage.QUESTIONING
        assert result["state"].rounds == 1
        assert _types(mock_db).count("user_input") == 2


class TestOwnership:
    @pytest.mark.asyncio
    async def test_other_user_cannot_see_session(self, controller, llm, reply):
        llm.queue(reply(90))
        session, _ = await controller.start(USER, "Write a blog post")
        with pytest.raises(SessionNotFoundError):
            controller.load_state("user-2", session.id)
        with pytest.raises(SessionNotFoundError):
            await controller.answer("user-2", session.id, "hi")
