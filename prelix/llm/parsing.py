"""Turn raw estimator output into a normalised EstimationResult.

The backend is asked for JSON but is not trusted to return it. Parsing goes
strict JSON first, then pattern salvage of single fields, then a fixed
generic question.
"""

from __future__ import annotations

import json
import re
from typing import Any

import structlog

from prelix.core.errors import MalformedResponseError
from prelix.core.types import READY_THRESHOLD, EstimationResult

logger = structlog.get_logger()

GENERIC_QUESTION = (
    "I need more information to help you effectively. "
    "Could you provide more details about what you're looking for?"
)
FALLBACK_CONFIDENCE = 50
FALLBACK_MISSING = ["More details needed"]

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_QUESTION_FIELD = re.compile(r'"clarification_question"\s*:\s*"([^"]+)"')
_UNDERSTANDING_FIELD = re.compile(r'"understanding"\s*:\s*"([^"]+)"')

# Non-essential parameters never count as missing.
_NON_ESSENTIAL = re.compile(r"\b(?:tone|style|length|minor formatting)\b", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    return _FENCE.sub("", text.strip())


def extract_json(text: str) -> dict[str, Any]:
    """Parse the first JSON object in ``text``; raise MalformedResponseError otherwise."""
    cleaned = strip_code_fences(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        match = re.search(r"\{[\s\S]*\}", cleaned)
        if not match:
            raise MalformedResponseError("No JSON object in backend output")
        try:
            data = json.loads(match.group())
        except json.JSONDecodeError as e:
            raise MalformedResponseError("Backend output is not valid JSON") from e
    if not isinstance(data, dict):
        raise MalformedResponseError("Backend output is not a JSON object")
    return data


def first_question(text: str) -> str:
    """Cut a compound question down to its first sentence ending in ``?``."""
    text = text.strip()
    idx = text.find("?")
    if idx == -1:
        return text
    return text[: idx + 1].strip()


def _clamp(value: Any) -> int:
    try:
        confidence = int(round(float(value)))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, confidence))


def _essential_only(items: Any) -> list[str]:
    if not isinstance(items, list):
        return []
    kept = []
    for item in items:
        text = str(item).strip()
        if not text:
            continue
        if _NON_ESSENTIAL.search(text):
            continue
        kept.append(text)
    return kept


def normalise(data: dict[str, Any]) -> EstimationResult:
    """Enforce the result contract on a parsed payload."""
    confidence = _clamp(data.get("confidence"))
    understanding = str(data.get("understanding") or "").strip()
    ready = confidence >= READY_THRESHOLD

    if ready:
        return EstimationResult(
            understanding=understanding,
            confidence=confidence,
            ready_for_confirmation=True,
        )

    raw_question = data.get("clarification_question")
    question = first_question(str(raw_question)) if raw_question else ""
    return EstimationResult(
        understanding=understanding,
        confidence=confidence,
        missing_parameters=_essential_only(data.get("missing_parameters")),
        clarification_question=question or GENERIC_QUESTION,
        ready_for_confirmation=False,
    )


def fallback_result() -> EstimationResult:
    return EstimationResult(
        understanding="",
        confidence=FALLBACK_CONFIDENCE,
        missing_parameters=list(FALLBACK_MISSING),
        clarification_question=GENERIC_QUESTION,
        salvaged=True,
    )


def salvage(text: str) -> EstimationResult:
    """Recover a question or understanding fragment from unparseable output."""
    result = fallback_result()
    if match := _QUESTION_FIELD.search(text):
        result.clarification_question = first_question(match.group(1))
        logger.info("parsing.salvaged", field="clarification_question")
    elif match := _UNDERSTANDING_FIELD.search(text):
        result.understanding = match.group(1)
        logger.info("parsing.salvaged", field="understanding")
    else:
        logger.info("parsing.fallback")
    return result


def parse_estimation(text: str) -> EstimationResult:
    """Never raises: malformed output degrades to salvage or the generic question."""
    try:
        return normalise(extract_json(text))
    except MalformedResponseError as e:
        logger.warning("parsing.malformed", error=e.message, preview=text[:120])
        return salvage(text)
