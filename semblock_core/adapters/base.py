#!/usr/bin/env python3
"""
Base adapter - the capability contract every backend implements.

    get_embedding(text, model)                    -> List[float]
    analyze_with_prompt(text, criteria, model)    -> LLMAnalysisResult
    analyze_image(image, criteria, model, opts)   -> LLMAnalysisResult

Adapters that cannot serve a capability raise UnsupportedOperationError
naming a provider that can.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from ..config import Config, config as default_config
from ..exceptions import BackendError, MalformedResponseError, UnsupportedOperationError
from ..models import LLMProvider, PROVIDER_DISPLAY_NAMES

logger = logging.getLogger(__name__)


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost: Optional[float] = None


@dataclass
class LLMAnalysisResult:
    matches: bool
    confidence: float
    explanation: str = ""
    usage: Optional[TokenUsage] = None
    had_json_error: bool = False


@dataclass
class ImageAnalysisOptions:
    detail: str = "auto"
    max_tokens: Optional[int] = None


class BaseLLMAdapter:
    """Common plumbing for backend adapters"""

    provider: LLMProvider

    def __init__(self, app_config: Optional[Config] = None):
        self.config = app_config or default_config

    @property
    def display_name(self) -> str:
        return PROVIDER_DISPLAY_NAMES[self.provider]

    async def get_embedding(self, text: str, model: str) -> List[float]:
        raise NotImplementedError

    async def analyze_with_prompt(self, text: str, criteria: str, model: str) -> LLMAnalysisResult:
        raise NotImplementedError

    async def analyze_image(
        self,
        image_base64: str,
        criteria: str,
        model: str,
        options: Optional[ImageAnalysisOptions] = None,
    ) -> LLMAnalysisResult:
        raise NotImplementedError

    def unsupported(self, capability: str, alternative: str) -> UnsupportedOperationError:
        return UnsupportedOperationError(
            f"{self.display_name} does not support {capability}. Use {alternative} instead.",
            alternative=alternative,
        )

    def truncate_text(self, text: str) -> str:
        limit = self.config.max_text_length
        if len(text) <= limit:
            return text
        return text[:limit] + "..."

    async def _post_json(self, url: str, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> Any:
        """POST a JSON payload and return the decoded JSON response"""
        request_headers = {"Content-Type": "application/json"}
        request_headers.update(headers or {})

        timeout = aiohttp.ClientTimeout(total=self.config.llm_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(url, headers=request_headers, json=payload) as resp:
                if resp.status != 200:
                    error_text = await resp.text()
                    logger.error(f"{self.display_name} API error {resp.status}: {error_text[:300]}")
                    raise BackendError(self.display_name, resp.status, error_text)
                body = await resp.text()
        try:
            return json.loads(body)
        except json.JSONDecodeError:
            logger.error(f"{self.display_name} returned a non-JSON body: {body[:300]}")
            raise MalformedResponseError(f"{self.display_name} returned a non-JSON response", body)

    async def _get_status(self, url: str, timeout_seconds: float = 5.0) -> int:
        timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url) as resp:
                return resp.status
