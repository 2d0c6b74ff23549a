#!/usr/bin/env python3
"""OpenAI adapter - embeddings, text analysis and vision over the public API"""

import logging
from typing import List, Optional

from ..config import Config
from ..exceptions import MissingCredentialError
from ..models import LLMProvider
from .base import BaseLLMAdapter, ImageAnalysisOptions, LLMAnalysisResult
from .prompts import (
    IMAGE_ANALYSIS_SYSTEM_PROMPT,
    TEXT_ANALYSIS_SYSTEM_PROMPT,
    create_image_analysis_user_prompt,
    create_text_analysis_user_prompt,
)
from .response_parser import (
    empty_response_result,
    extract_embedding,
    extract_message_content,
    parse_analysis_json,
)

logger = logging.getLogger(__name__)


class OpenAIAdapter(BaseLLMAdapter):
    provider = LLMProvider.OPENAI

    def __init__(self, api_key: str = "", app_config: Optional[Config] = None):
        super().__init__(app_config)
        self.api_key = api_key
        self.base_url = self.config.openai_url.rstrip("/")

    def ensure_api_key(self) -> None:
        if not self.api_key:
            raise MissingCredentialError(
                "openai",
                "OpenAI API key not configured. Add your key in settings.",
            )

    @property
    def _headers(self):
        return {"Authorization": f"Bearer {self.api_key}"}

    async def get_embedding(self, text: str, model: str) -> List[float]:
        self.ensure_api_key()
        logger.debug(f"OpenAI embedding call for: {text[:50]!r}")
        data = await self._post_json(
            f"{self.base_url}/embeddings",
            {"model": model, "input": self.truncate_text(text)},
            self._headers,
        )
        return extract_embedding(data, "OpenAI")

    async def _chat(self, messages: list, model: str) -> LLMAnalysisResult:
        payload = {
            "model": model,
            "messages": messages,
            "max_completion_tokens": self.config.max_completion_tokens,
        }
        data = await self._post_json(f"{self.base_url}/chat/completions", payload, self._headers)
        content = extract_message_content(data, "OpenAI")
        if not content.strip():
            logger.warning("Empty response (likely hit token limit)")
            return empty_response_result()
        logger.debug(f"OpenAI chat success: {content}")
        return parse_analysis_json(content)

    async def analyze_with_prompt(self, text: str, criteria: str, model: str) -> LLMAnalysisResult:
        self.ensure_api_key()
        user_prompt = create_text_analysis_user_prompt(criteria, self.truncate_text(text))
        return await self._chat(
            [
                {"role": "system", "content": TEXT_ANALYSIS_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            model,
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
        user_prompt = create_image_analysis_user_prompt(criteria)
        logger.debug(f"OpenAI vision call: {user_prompt[:100]!r} (detail={options.detail})")
        return await self._chat(
            [
                {"role": "system", "content": IMAGE_ANALYSIS_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": user_prompt},
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
        )
