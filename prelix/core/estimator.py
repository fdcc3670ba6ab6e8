"""Confidence Estimator — judges whether a request carries its essential parameters."""

from __future__ import annotations

from dataclasses import replace
from functools import lru_cache

import structlog

from prelix.core.catalog import framework_for, parse_prompt_type
from prelix.core.prompts import (
    ESTIMATOR_SYSTEM_PROMPT,
    ESTIMATOR_USER_MESSAGE,
    SCORING_POLICY,
    confirmation_prompt,
)
from prelix.core.transcript import TranscriptStore, get_transcript_store
from prelix.core.types import ClarificationStage, EstimationResult, MessageType
from prelix.db.models import MessageRow
from prelix.llm.client import LLMClient, get_llm_client
from prelix.llm.parsing import parse_estimation

logger = structlog.get_logger()

PROCEED_OFFER = (
    "If you'd rather not add more detail, you can proceed with my current understanding."
)


class ConfidenceEstimator:
    def __init__(self, llm: LLMClient, transcripts: TranscriptStore) -> None:
        self.llm = llm
        self.transcripts = transcripts

    async def estimate(
        self,
        user_input: str,
        prompt_type: str | None = None,
        prior_context: str = "",
        conversation_transcript: str = "",
    ) -> EstimationResult:
        """One backend call, parsed and normalised. Transport errors propagate."""
        system = ESTIMATOR_SYSTEM_PROMPT.format(
            framework=framework_for(prompt_type),
            prior_context=prior_context,
            transcript=conversation_transcript,
            scoring_policy=SCORING_POLICY,
        )
        user = ESTIMATOR_USER_MESSAGE.format(
            user_input=user_input,
            prompt_type=parse_prompt_type(prompt_type).value,
        )
        raw = await self.llm.complete(
            system,
            user,
            temperature=0.3,
            max_tokens=800,
            json_mode=self.llm.json_mode,
        )
        result = parse_estimation(raw)
        logger.info(
            "estimator.estimated",
            confidence=result.confidence,
            ready=result.ready_for_confirmation,
            salvaged=result.salvaged,
        )
        return result

    async def assess(
        self,
        session_id: str,
        user_id: str,
        user_input: str,
        prompt_type: str | None = None,
        prior_context: str = "",
        confidence_floor: int = 0,
        offer_proceed: bool = False,
    ) -> tuple[EstimationResult, MessageRow]:
        """Estimate and persist exactly one turn for the result.

        ``confidence_floor`` carries the previous round's confidence;
        ``offer_proceed`` marks the last round before the cap.
        """
        transcript = self.transcripts.transcript_text(self.transcripts.messages(session_id))
        result = await self.estimate(user_input, prompt_type, prior_context, transcript)
        result = result.with_floor(confidence_floor)

        if result.ready_for_confirmation:
            understanding = result.understanding or prior_context or user_input
            result = replace(result, understanding=understanding)
            message = self.transcripts.append(
                session_id,
                user_id,
                MessageType.AI_UNDERSTANDING,
                confirmation_prompt(understanding),
                confidence_score=result.confidence,
                missing_parameters=[],
                clarification_stage=ClarificationStage.READY_FOR_CONFIRMATION.value,
                model_response=understanding,
                prompt_type=prompt_type,
            )
        else:
            question = result.clarification_question or ""
            if offer_proceed:
                question = f"{question}\n\n{PROCEED_OFFER}"
            message = self.transcripts.append(
                session_id,
                user_id,
                MessageType.AI_QUESTION,
                question,
                confidence_score=result.confidence,
                missing_parameters=result.missing_parameters,
                clarification_stage=ClarificationStage.QUESTIONING.value,
                model_response=result.understanding or None,
                prompt_type=prompt_type,
            )
        return result, message


@lru_cache
def get_estimator() -> ConfidenceEstimator:
    return ConfidenceEstimator(get_llm_client(), get_transcript_store())
