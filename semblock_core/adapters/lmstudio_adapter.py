#!/usr/bin/env python3
"""
LM Studio adapter - local OpenAI-compatible server.

LM Studio loads models just-in-time and unloads them after a TTL, so the
first request after idle can fail with ``model_not_found``. Such calls
are retried once after a fixed delay.
"""

import asyncio
import logging
from typing import List, Optional

import aiohttp

from ..config import Config
from ..models import LLMProvider
from ..retry import execute_with_retry, is_model_loading_error
from .base import BaseLLMAdapter, ImageAnalysisOptions, LLMAnalysisResult
from .prompts import TEXT_ANALYSIS_SYSTEM_PROMPT, create_text_analysis_user_prompt
from .response_parser import (
    empty_response_result,
    extract_embedding,
    extract_message_content,
    parse_analysis_json,
    strip_think_preamble,
)

logger = logging.getLogger(__name__)


class LMStudioAdapter(BaseLLMAdapter):
    provider = LLMProvider.LMSTUDIO

    def __init__(self, app_config: Optional[Config] = None, base_url: Optional[str] = None):
        super().__init__(app_config)
        self.base_url = (base_url or self.config.lmstudio_url).rstrip("/")

    async def _with_jit_retry(self, func, *args):
        return await execute_with_retry(
            func,
            *args,
            max_attempts=2,
            delay=self.config.lmstudio_retry_delay,
            should_retry=is_model_loading_error,
        )

    async def get_embedding(self, text: str, model: str) -> List[float]:
        return await self._with_jit_retry(self._fetch_embedding, self.truncate_text(text), model)

    async def _fetch_embedding(self, text: str, model: str) -> List[float]:
        logger.debug(f"LM Studio embedding call for: {text[:50]!r}")
        data = await self._post_json(f"{self.base_url}/v1/embeddings", {"model": model, "input": text})
        return extract_embedding(data, "LM Studio")

    async def analyze_with_prompt(self, text: str, criteria: str, model: str) -> LLMAnalysisResult:
        return await self._with_jit_retry(self._fetch_chat_analysis, self.truncate_text(text), criteria, model)

    async def _fetch_chat_analysis(self, text: str, criteria: str, model: str) -> LLMAnalysisResult:
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": TEXT_ANALYSIS_SYSTEM_PROMPT},
                {"role": "user", "content": create_text_analysis_user_prompt(criteria, text)},
            ],
            "max_completion_tokens": self.config.max_completion_tokens,
        }
        data = await self._post_json(f"{self.base_url}/v1/chat/completions", payload)
        content = extract_message_content(data, "LM Studio")
        if not content.strip():
            logger.warning("Empty response (likely hit token limit)")
            return empty_response_result()
        logger.debug(f"LM Studio chat success: {content}")
        return parse_analysis_json(strip_think_preamble(content))

    async def analyze_image(
        self,
        image_base64: str,
        criteria: str,
        model: str,
        options: Optional[ImageAnalysisOptions] = None,
    ) -> LLMAnalysisResult:
        raise self.unsupported("vision analysis", "OpenAI or OpenRouter")

    async def check_health(self) -> bool:
        """True when the server answers on /v1/models"""
        try:
            status = await self._get_status(f"{self.base_url}/v1/models")
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            logger.debug(f"LM Studio health check failed: {e}")
            return False
        return status == 200
