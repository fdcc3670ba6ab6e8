"""Action-discriminated workflow endpoint.

Every step of the clarification and optimization flow goes through
``POST /workflow`` with an ``action`` field. Each action has a fixed set of
required fields, checked before anything runs.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException

from prelix.api.auth import get_current_user
from prelix.api.models import StateResponse, WorkflowRequest
from prelix.core.catalog import AVAILABLE_MODELS
from prelix.core.controller import ClarificationController, get_controller
from prelix.core.selector import TemplateSelector, get_template_selector
from prelix.core.types import ClarificationState
from prelix.core.workflow import PromptWorkflow, get_workflow
from prelix.utils.logging import bind_request_context

logger = structlog.get_logger()

router = APIRouter()

REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "create_session": ("user_input",),
    "understand_input": ("chat_session_id",),
    "process_clarification": ("chat_session_id", "message"),
    "confirm_understanding": ("chat_session_id", "message"),
    "request_clarification": ("chat_session_id",),
    "send_message": ("message",),
    "get_models": (),
    "get_filtered_templates": ("selected_model", "user_input"),
    "preview_template": ("template_id", "user_input"),
    "optimize_prompt": ("chat_session_id", "selected_model"),
    "generate_response": ("chat_session_id",),
    "execute_prompt": ("chat_session_id",),
    "simple_conversation": ("chat_session_id", "message"),
    "template_feedback": ("template_id", "rating"),
}


def missing_fields(req: WorkflowRequest) -> list[str]:
    return [
        name
        for name in REQUIRED_FIELDS[req.action]
        if getattr(req, name) is None or getattr(req, name) == ""
    ]


def _state(state: ClarificationState) -> dict[str, Any]:
    return StateResponse(**asdict(state)).model_dump(mode="json")


@router.post("/workflow")
async def run_workflow(
    req: WorkflowRequest,
    user_id: str = Depends(get_current_user),
    controller: ClarificationController = Depends(get_controller),
    workflow: PromptWorkflow = Depends(get_workflow),
    selector: TemplateSelector = Depends(get_template_selector),
) -> dict[str, Any]:
    """Run one workflow action for the caller."""
    bind_request_context(user_id=user_id, chat_session_id=req.chat_session_id, action=req.action)
    if missing := missing_fields(req):
        raise HTTPException(
            status_code=422,
            detail=f"Action '{req.action}' requires: {', '.join(missing)}",
        )
    logger.info("workflow.action")

    sid = req.chat_session_id
    if req.action == "create_session":
        session = controller.create_session(user_id, req.user_input, req.prompt_type, req.client_key)
        return {"chat_session_id": session.id, "title": session.title}

    if req.action == "understand_input":
        state = await controller.understand(
            user_id, sid, req.user_input, req.prompt_type, req.client_key
        )
        return _state(state)

    if req.action == "process_clarification":
        return _state(await controller.answer(user_id, sid, req.message, req.client_key))

    if req.action == "confirm_understanding":
        return _state(controller.confirm(user_id, sid, req.message, req.client_key))

    if req.action == "request_clarification":
        return _state(controller.request_clarification(user_id, sid))

    if req.action == "send_message":
        result = await controller.send_message(
            user_id, req.message, req.prompt_type, sid, req.client_key
        )
        if "state" in result:
            result["state"] = _state(result["state"])
        return result

    if req.action == "get_models":
        return {"models": [asdict(m) for m in AVAILABLE_MODELS]}

    if req.action == "get_filtered_templates":
        ranked = selector.filtered_templates(req.selected_model, req.user_input)
        return {
            "templates": [
                {
                    **r.template.model_dump(mode="json"),
                    "score": r.score,
                    "best_match": r.best_match,
                }
                for r in ranked
            ]
        }

    if req.action == "preview_template":
        return workflow.preview_template(req.template_id, req.user_input)

    if req.action == "optimize_prompt":
        return await workflow.optimize_for_session(
            user_id, sid, req.selected_model, req.template_id, req.template_values
        )

    if req.action == "generate_response":
        return await workflow.generate_response(user_id, sid)

    if req.action == "execute_prompt":
        return await workflow.execute(user_id, sid)

    if req.action == "simple_conversation":
        return await workflow.converse(user_id, sid, req.message)

    # template_feedback
    return workflow.template_feedback(req.template_id, req.rating)
