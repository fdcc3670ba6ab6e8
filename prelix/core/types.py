"""Domain types shared by the workflow components."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

from prelix.db.models import TemplateRow

READY_THRESHOLD = 85


class MessageType(str, Enum):
    """Kinds of persisted turns. Closed set; rows are matched exhaustively on it."""

    USER_INPUT = "user_input"
    CLARIFICATION_ANSWER = "clarification_answer"
    CONFIRMATION = "confirmation"
    AI_UNDERSTANDING = "ai_understanding"
    AI_QUESTION = "ai_question"
    AI_CLARIFICATION_RESPONSE = "ai_clarification_response"
    MODEL_SELECTION = "model_selection"
    AI_RESPONSE = "ai_response"
    EXECUTED_RESPONSE = "executed_response"
    CONVERSATION_INPUT = "conversation_input"
    CONVERSATION_RESPONSE = "conversation_response"

    @property
    def is_user_authored(self) -> bool:
        return self in USER_AUTHORED

    @property
    def is_estimation(self) -> bool:
        return self in ESTIMATION_TURNS


# Strings that feed the clarification context memory.
CONTEXT_TURNS = frozenset(
    {MessageType.USER_INPUT, MessageType.CLARIFICATION_ANSWER, MessageType.CONFIRMATION}
)
USER_AUTHORED = CONTEXT_TURNS | {MessageType.CONVERSATION_INPUT}
ESTIMATION_TURNS = frozenset(
    {
        MessageType.AI_UNDERSTANDING,
        MessageType.AI_QUESTION,
        MessageType.AI_CLARIFICATION_RESPONSE,
    }
)


class ClarificationStage(str, Enum):
    INITIAL = "initial"
    QUESTIONING = "questioning"
    READY_FOR_CONFIRMATION = "ready_for_confirmation"
    CONFIRMED = "confirmed"


@dataclass
class EstimationResult:
    """Structured completeness judgment for a request."""

    understanding: str
    confidence: int
    missing_parameters: list[str] = field(default_factory=list)
    clarification_question: str | None = None
    ready_for_confirmation: bool = False
    salvaged: bool = False

    def with_floor(self, floor: int) -> EstimationResult:
        """Raise confidence to at least ``floor``, recomputing readiness."""
        if self.confidence >= floor:
            return self
        confidence = min(max(floor, 0), 100)
        ready = confidence >= READY_THRESHOLD
        return replace(
            self,
            confidence=confidence,
            ready_for_confirmation=ready,
            clarification_question=None if ready else self.clarification_question,
            missing_parameters=[] if ready else self.missing_parameters,
        )


@dataclass
class ClarificationState:
    """Per-session clarification state, rebuilt from the transcript."""

    chat_session_id: str
    stage: ClarificationStage = ClarificationStage.INITIAL
    confidence: int = 0
    missing_parameters: list[str] = field(default_factory=list)
    current_question: str = ""
    understanding: str = ""
    rounds: int = 0
    proceed_offered: bool = False
    awaiting_user_clarification: bool = False


@dataclass
class RankedTemplate:
    template: TemplateRow
    score: float
    best_match: bool = False


@dataclass
class AIModel:
    id: str
    name: str
    provider: str
    category: str | None = None
