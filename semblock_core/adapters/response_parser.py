#!/usr/bin/env python3
"""
Parsing of model completions into LLMAnalysisResult.

Models are asked for ``{"matches", "confidence", "explanation"}`` JSON but
do not always comply: some emit a ``<think>`` preamble, some wrap the
object in markdown fences, some escape quotes incorrectly. The helpers
here clean those cases up.
"""

import json
import logging
import re
from typing import Any, Optional

from ..exceptions import MalformedResponseError
from .base import LLMAnalysisResult

logger = logging.getLogger(__name__)

THINK_END_TAG = "</think>"

_MATCHES_RE = re.compile(r'"matches"\s*:\s*(true|false)', re.IGNORECASE)
_CONFIDENCE_RE = re.compile(r'"confidence"\s*:\s*([0-9.]+)')

PARTIAL_EXPLANATION = "Partial result - explanation unavailable due to malformed JSON"
EMPTY_RESPONSE_EXPLANATION = "Empty response due to token limit"


def empty_response_result() -> LLMAnalysisResult:
    return LLMAnalysisResult(matches=False, confidence=0.0, explanation=EMPTY_RESPONSE_EXPLANATION)


def clamp_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if confidence != confidence:  # NaN
        return 0.0
    return max(0.0, min(1.0, confidence))


def strip_think_preamble(content: str) -> str:
    """Drop reasoning emitted before the JSON, e.g. ``<think>...</think>{...}``"""
    index = content.find(THINK_END_TAG)
    if index == -1:
        return content
    logger.debug("Stripped thinking tags from model response")
    return content[index + len(THINK_END_TAG):].strip()


def strip_code_fences(content: str) -> str:
    """Remove a surrounding ```json ... ``` block"""
    cleaned = content.strip()
    if cleaned.startswith("```") and cleaned.endswith("```") and "\n" in cleaned:
        cleaned = "\n".join(cleaned.split("\n")[1:-1])
    return cleaned.strip()


def repair_json_content(content: str) -> str:
    """Strip fences and fix ``\\'`` escapes, which are invalid in JSON"""
    return strip_code_fences(content).replace("\\'", "'").strip()


def parse_analysis_json(content: str) -> LLMAnalysisResult:
    """
    Parse a strict JSON analysis object.

    Raises:
        MalformedResponseError: content is not JSON or lacks a boolean ``matches``
    """
    try:
        data = json.loads(content)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedResponseError(f"Could not parse analysis JSON: {e}", content) from e

    if not isinstance(data, dict) or not isinstance(data.get("matches"), bool):
        raise MalformedResponseError("Analysis JSON has no boolean 'matches' field", content)

    explanation = data.get("explanation")
    return LLMAnalysisResult(
        matches=data["matches"],
        confidence=clamp_confidence(data.get("confidence", 0.0)),
        explanation=explanation if isinstance(explanation, str) else "",
    )


def extract_partial_result(content: str) -> Optional[LLMAnalysisResult]:
    """Recover matches/confidence from malformed JSON with regexes"""
    matches = _MATCHES_RE.search(content)
    if not matches:
        return None
    confidence = _CONFIDENCE_RE.search(content)
    return LLMAnalysisResult(
        matches=matches.group(1).lower() == "true",
        confidence=clamp_confidence(confidence.group(1)) if confidence else 0.5,
        explanation=PARTIAL_EXPLANATION,
        had_json_error=True,
    )


def extract_message_content(data: Any, provider: str) -> str:
    """Pull ``choices[0].message.content`` out of a chat completion payload"""
    try:
        message = data["choices"][0]["message"]
    except (KeyError, IndexError, TypeError):
        raise MalformedResponseError(f"Invalid {provider} chat response format", json.dumps(data)[:500]) from None
    if not isinstance(message, dict):
        raise MalformedResponseError(f"Invalid {provider} chat response format")
    return message.get("content") or ""


def extract_embedding(data: Any, provider: str) -> list:
    """Pull ``data[0].embedding`` out of an embeddings payload"""
    try:
        embedding = data["data"][0]["embedding"]
    except (KeyError, IndexError, TypeError):
        raise MalformedResponseError(f"Invalid {provider} embedding response format") from None
    if not isinstance(embedding, list):
        raise MalformedResponseError(f"Invalid {provider} embedding response format")
    return [float(v) for v in embedding]
