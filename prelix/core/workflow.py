"""Prompt workflow — the steps after confirmation: model selection, final response, execution.

Also hosts casual conversation once a workflow has finished, and the
template preview/feedback helpers used by the template picker.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import structlog

from prelix.config import Settings, get_settings
from prelix.core.catalog import model_display_name
from prelix.core.errors import WorkflowStateError
from prelix.core.guard import SessionGuard, get_session_guard
from prelix.core.optimizer import PromptOptimizer, get_optimizer
from prelix.core.prompts import CONVERSATION_SYSTEM_PROMPT
from prelix.core.selector import extract_placeholder_values, fill_template
from prelix.core.templates import TemplateRepository, get_template_repository
from prelix.core.transcript import TranscriptStore, get_transcript_store
from prelix.core.types import ESTIMATION_TURNS, MessageType
from prelix.db.models import MessageRow
from prelix.llm.client import LLMClient, get_llm_client

logger = structlog.get_logger()

CONVERSATION_FALLBACK = "I apologize, but I couldn't process your message. Please try again."


class PromptWorkflow:
    def __init__(
        self,
        transcripts: TranscriptStore,
        templates: TemplateRepository,
        optimizer: PromptOptimizer,
        llm: LLMClient,
        settings: Settings,
        guard: SessionGuard | None = None,
    ) -> None:
        self.transcripts = transcripts
        self.templates = templates
        self.optimizer = optimizer
        self.llm = llm
        self.settings = settings
        self.guard = guard or SessionGuard()

    def confirmed_understanding(self, messages: list[MessageRow]) -> str:
        """Latest estimator understanding of the current workflow, else the merged context."""
        workflow = self.transcripts.current_workflow(messages)
        latest = self.transcripts.latest(workflow, *ESTIMATION_TURNS)
        if latest and latest.model_response:
            return latest.model_response
        return self.transcripts.build_context(
            self.transcripts.context_memory(messages), self.settings.context_max_chars
        )

    async def optimize_for_session(
        self,
        user_id: str,
        session_id: str,
        selected_model: str,
        template_id: str | None = None,
        template_values: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Optimize the confirmed request for ``selected_model`` and record the selection."""
        self.transcripts.get_session(user_id, session_id)
        async with self.guard.hold(session_id, f"optimize:{selected_model}:{template_id}"):
            messages = self.transcripts.messages(session_id)
            workflow = self.transcripts.current_workflow(messages)
            if not self.transcripts.latest(workflow, MessageType.CONFIRMATION):
                raise WorkflowStateError(
                    "Confirm the understanding before selecting a model",
                    chat_session_id=session_id,
                )

            original = self.transcripts.original_input(messages)
            current = self.transcripts.latest(workflow, MessageType.USER_INPUT)
            prompt_type = current.prompt_type if current else None
            original_text = original.content if original else ""

            template = self.templates.get_template(template_id) if template_id else None
            if template is not None and template_values is None:
                template_values = extract_placeholder_values(original_text, template.placeholders)

            optimized = await self.optimizer.optimize(
                original_text,
                self.confirmed_understanding(messages),
                prompt_type,
                selected_model,
                template=template,
                placeholder_values=template_values,
            )

            model_name = model_display_name(selected_model)
            if template is not None:
                content = f'Perfect, I\'ll use the "{template.category}" template for {model_name}.'
            else:
                content = f"Perfect, I'll optimize your prompt for {model_name}."
            self.transcripts.append(
                session_id,
                user_id,
                MessageType.MODEL_SELECTION,
                content,
                selected_model=selected_model,
                optimized_prompt=optimized,
                template_id=template.id if template else None,
                template_applied=template is not None,
                prompt_type=prompt_type,
            )
            if template is not None:
                self.templates.record_usage(template.id, chat_session_id=session_id)

        logger.info(
            "workflow.optimized",
            model=selected_model,
            template_id=template.id if template else None,
        )
        return {
            "optimized_prompt": optimized,
            "selected_model": selected_model,
            "template_used": template is not None,
        }

    async def generate_response(self, user_id: str, session_id: str) -> dict[str, Any]:
        """Publish the latest optimized prompt as the workflow's answer."""
        self.transcripts.get_session(user_id, session_id)
        async with self.guard.hold(session_id, "generate_response"):
            workflow = self.transcripts.current_workflow(self.transcripts.messages(session_id))
            selection = self.transcripts.latest(workflow, MessageType.MODEL_SELECTION)
            if selection is None or not selection.optimized_prompt:
                raise WorkflowStateError(
                    "No optimized prompt to respond with", chat_session_id=session_id
                )

            category = None
            if selection.template_id:
                category = self.templates.get_template(selection.template_id).category

            self.transcripts.append(
                session_id,
                user_id,
                MessageType.AI_RESPONSE,
                selection.optimized_prompt,
                optimized_prompt=selection.optimized_prompt,
                selected_model=selection.selected_model,
                template_id=selection.template_id,
            )
        logger.info("workflow.responded", model=selection.selected_model)
        return {
            "optimized_prompt": selection.optimized_prompt,
            "selected_model": selection.selected_model,
            "template_id": selection.template_id,
            "prompt_category": category,
        }

    async def execute(self, user_id: str, session_id: str) -> dict[str, Any]:
        """Run the published prompt against the backend and store the answer."""
        self.transcripts.get_session(user_id, session_id)
        async with self.guard.hold(session_id, "execute"):
            messages = self.transcripts.messages(session_id)
            response = self.transcripts.latest(messages, MessageType.AI_RESPONSE)
            if response is None:
                raise WorkflowStateError(
                    "No optimized prompt to execute", chat_session_id=session_id
                )

            selected = response.selected_model or ""
            model = selected if "gpt" in selected else self.settings.llm_model
            output = await self.llm.complete(
                None, response.content, temperature=0.7, max_tokens=1500, model=model
            )
            self.transcripts.append(
                session_id,
                user_id,
                MessageType.EXECUTED_RESPONSE,
                output,
                model_response=output,
                selected_model=response.selected_model,
            )
        logger.info("workflow.executed", model=model)
        return {"response": output, "model": model}

    async def converse(self, user_id: str, session_id: str, message: str) -> dict[str, Any]:
        self.transcripts.get_session(user_id, session_id)
        async with self.guard.hold(session_id, message):
            history = "\n".join(
                f"{'User' if MessageType(m.message_type).is_user_authored else 'Assistant'}: "
                f"{self.transcripts.display_content(m)}"
                for m in self.transcripts.messages(session_id)
            )
            self.transcripts.append(session_id, user_id, MessageType.CONVERSATION_INPUT, message)
            reply = await self.llm.complete(
                CONVERSATION_SYSTEM_PROMPT.format(history=history, message=message),
                message,
                temperature=0.7,
                max_tokens=600,
            )
            reply = reply.strip() or CONVERSATION_FALLBACK
            self.transcripts.append(
                session_id,
                user_id,
                MessageType.CONVERSATION_RESPONSE,
                reply,
                model_response=reply,
            )
        logger.info("workflow.conversed")
        return {"response": reply}

    def preview_template(self, template_id: str, user_input: str) -> dict[str, Any]:
        template = self.templates.get_template(template_id)
        values = extract_placeholder_values(user_input, template.placeholders)
        return {
            "template_id": template.id,
            "placeholder_values": values,
            "filled_text": fill_template(template.template_text, values),
        }

    def template_feedback(self, template_id: str, rating: float) -> dict[str, Any]:
        template = self.templates.update_effectiveness(template_id, rating)
        return {
            "template_id": template.id,
            "effectiveness_score": template.effectiveness_score,
            "feedback_count": template.feedback_count,
        }


@lru_cache
def get_workflow() -> PromptWorkflow:
    return PromptWorkflow(
        get_transcript_store(),
        get_template_repository(),
        get_optimizer(),
        get_llm_client(),
        get_settings(),
        get_session_guard(),
    )
