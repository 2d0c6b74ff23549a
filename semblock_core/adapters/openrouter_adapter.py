#!/usr/bin/env python3
"""
OpenRouter adapter - federated router over many hosted models.

Requests enforce a strict JSON schema and ask for usage accounting.
Routed models still occasionally return fenced or slightly broken JSON,
so responses go through a repair step and, failing that, a regex
extraction of the essential fields.
"""

import logging
from typing import Any, List, Optional

from ..config import Config
from ..exceptions import MalformedResponseError, MissingCredentialError
from ..models import LLMProvider
from .base import BaseLLMAdapter, ImageAnalysisOptions, LLMAnalysisResult, TokenUsage
from .prompts import (
    ANALYSIS_RESPONSE_SCHEMA,
    IMAGE_ANALYSIS_SYSTEM_PROMPT,
    TEXT_ANALYSIS_SYSTEM_PROMPT,
    create_image_analysis_user_prompt,
    create_text_analysis_user_prompt,
)
from .response_parser import (
    empty_response_result,
    extract_message_content,
    extract_partial_result,
    parse_analysis_json,
    repair_json_content,
)

logger = logging.getLogger(__name__)


def parse_usage(data: Any) -> Optional[TokenUsage]:
    usage = data.get("usage") if isinstance(data, dict) else None
    if not isinstance(usage, dict):
        return None
    cost = usage.get("cost")
    return TokenUsage(
        prompt_tokens=int(usage.get("prompt_tokens") or 0),
        completion_tokens=int(usage.get("completion_tokens") or 0),
        total_tokens=int(usage.get("total_tokens") or 0),
        cost=float(cost) if cost is not None else None,
    )


def parse_llm_response(content: str) -> LLMAnalysisResult:
    """
    Parse a completion, repairing common JSON defects.

    Raises:
        MalformedResponseError: neither the JSON nor the regex fallback
            yields a ``matches`` value
    """
    cleaned = repair_json_content(content)
    try:
        return parse_analysis_json(cleaned)
    except MalformedResponseError as parse_error:
        logger.error(f"Failed to parse JSON response: {parse_error}")
        logger.error(f"Raw content: {content}")
        extracted = extract_partial_result(cleaned)
        if extracted is not None:
            logger.warning("Extracted partial result from malformed JSON")
            return extracted
        raise MalformedResponseError(
            f"Failed to parse LLM response as JSON: {parse_error}", content
        ) from parse_error


class OpenRouterAdapter(BaseLLMAdapter):
    provider = LLMProvider.OPENROUTER

    def __init__(self, api_key: str = "", app_config: Optional[Config] = None):
        super().__init__(app_config)
        self.api_key = api_key
        self.base_url = self.config.openrouter_url.rstrip("/")

    def ensure_api_key(self) -> None:
        if not self.api_key:
            raise MissingCredentialError(
                "openrouter",
                "OpenRouter API key not configured. Add your key in settings.",
            )

    async def get_embedding(self, text: str, model: str) -> List[float]:
        raise self.unsupported("embeddings", "OpenAI or LM Studio")

    async def _chat(self, messages: list, model: str, schema_name: str, max_tokens: int) -> LLMAnalysisResult:
        payload = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": schema_name,
                    "strict": True,
                    "schema": ANALYSIS_RESPONSE_SCHEMA,
                },
            },
            "usage": {"include": True},
        }
        data = await self._post_json(
            f"{self.base_url}/chat/completions",
            payload,
            {"Authorization": f"Bearer {self.api_key}"},
        )
        content = extract_message_content(data, "OpenRouter")
        if not content.strip():
            logger.warning("Empty response (likely hit token limit)")
            return empty_response_result()

        logger.debug(f"OpenRouter chat success: {content}")
        result = parse_llm_response(content)
        result.usage = parse_usage(data)
        if result.usage and result.usage.cost is not None:
            logger.debug(f"💰 OpenRouter usage: {result.usage.total_tokens} tokens, ${result.usage.cost:.6f}")
        return result

    async def analyze_with_prompt(self, text: str, criteria: str, model: str) -> LLMAnalysisResult:
        self.ensure_api_key()
        user_prompt = create_text_analysis_user_prompt(criteria, self.truncate_text(text))
        return await self._chat(
            [
                {"role": "system", "content": TEXT_ANALYSIS_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            model,
            "content_analysis",
            self.config.max_completion_tokens,
        )

    async def analyze_image(
        self,
        image_base64: str,
        criteria: str,
        model: str,
        options: Optional[ImageAnalysisOptions] = None,
    ) -> LLMAnalysisResult:
        self.ensure_api_key()
        options = options or ImageAnalysisOptions()
        return await self._chat(
            [
                {"role": "system", "content": IMAGE_ANALYSIS_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": create_image_analysis_user_prompt(criteria)},
                        {
                            "type": "image_url",
                            "image_url": {
                                "url": f"data:image/png;base64,{image_base64}",
                                "detail": options.detail,
                            },
                        },
                    ],
                },
            ],
            model,
            "image_analysis",
            options.max_tokens or self.config.max_completion_tokens,
        )
