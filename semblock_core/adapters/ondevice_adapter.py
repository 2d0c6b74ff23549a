#!/usr/bin/env python3
"""
On-device adapter - session-based local model runtime.

The runtime is injected and must provide:

    await runtime.availability()      -> "available" | "after-download" | "downloading" | "no"
    await runtime.params()            -> {"default_temperature": ..., "default_top_k": ...}
    await runtime.create(**options)   -> session

    await session.prompt(text, response_constraint=schema) -> str
    await session.append(messages)
    session.destroy()

A fresh session is created per call and always destroyed afterwards.
Vision sessions interfere with each other when concurrent, so image
analysis is serialized.
"""

import asyncio
import base64
import inspect
import logging
import re
from typing import Any, Dict, List, Optional, Protocol

from ..config import Config
from ..exceptions import ModelNotReadyError, ProviderError
from ..models import LLMProvider
from .base import BaseLLMAdapter, ImageAnalysisOptions, LLMAnalysisResult
from .prompts import (
    IMAGE_ANALYSIS_SYSTEM_PROMPT,
    TEXT_ANALYSIS_SYSTEM_PROMPT,
    create_image_analysis_user_prompt,
    create_text_analysis_user_prompt,
)
from .response_parser import parse_analysis_json

logger = logging.getLogger(__name__)

AVAILABLE = "available"
AFTER_DOWNLOAD = "after-download"
DOWNLOADING = "downloading"
UNAVAILABLE = "no"

RESPONSE_CONSTRAINT = {
    "type": "object",
    "properties": {
        "matches": {"type": "boolean"},
        "confidence": {"type": "number"},
        "explanation": {"type": "string"},
    },
    "required": ["matches", "confidence", "explanation"],
}

RUNTIME_MISSING_MESSAGE = (
    "On-device model runtime not available. "
    "Configure a runtime or choose a different provider."
)
DEVICE_UNSUPPORTED_MESSAGE = (
    "On-device model is not available on this device. "
    "Check hardware requirements: 22GB free space, 4GB+ VRAM or 16GB+ RAM."
)
VISION_UNSUPPORTED_MESSAGE = (
    "On-device vision support is not available. "
    "Use OpenAI or OpenRouter for vision analysis instead."
)

_DATA_URL_PREFIX = re.compile(r"^data:image/\w+;base64,")


class OnDeviceSession(Protocol):
    async def prompt(self, text: str, response_constraint: Optional[Dict[str, Any]] = None) -> str: ...

    async def append(self, messages: List[Dict[str, Any]]) -> None: ...

    def destroy(self) -> None: ...


class OnDeviceRuntime(Protocol):
    async def availability(self) -> str: ...

    async def params(self) -> Dict[str, Any]: ...

    async def create(self, **options) -> OnDeviceSession: ...


def availability_error(state: str, vision: bool = False) -> ModelNotReadyError:
    model_type = "On-device vision model" if vision else "On-device model"
    if state == AFTER_DOWNLOAD:
        return ModelNotReadyError(
            state,
            f"{model_type} needs to be downloaded before use. "
            "Model will download on first analysis (~22GB, 10-30 minutes).",
        )
    if state == DOWNLOADING:
        return ModelNotReadyError(
            state, f"{model_type} is currently downloading. Please wait for download to complete."
        )
    if vision:
        return ModelNotReadyError(state, VISION_UNSUPPORTED_MESSAGE)
    if state == UNAVAILABLE:
        return ModelNotReadyError(state, DEVICE_UNSUPPORTED_MESSAGE)
    return ModelNotReadyError(
        state, f'On-device model is not ready. Current state: "{state}". Expected state: "available".'
    )


class OnDeviceAdapter(BaseLLMAdapter):
    provider = LLMProvider.ONDEVICE

    def __init__(self, runtime: Optional[OnDeviceRuntime] = None, app_config: Optional[Config] = None):
        super().__init__(app_config)
        self.runtime = runtime
        self.session_params: Optional[Dict[str, Any]] = None
        self._vision_lock = asyncio.Lock()

    def _get_runtime(self) -> OnDeviceRuntime:
        if self.runtime is None:
            raise ModelNotReadyError(UNAVAILABLE, RUNTIME_MISSING_MESSAGE)
        return self.runtime

    async def check_availability(self) -> str:
        if self.runtime is None:
            return UNAVAILABLE
        try:
            state = await self.runtime.availability()
        except Exception as e:
            logger.error(f"Failed to check on-device availability: {e}")
            return UNAVAILABLE
        logger.info(f"✓ On-device model availability: {state}")
        return state

    async def _ensure_session_params(self) -> Dict[str, Any]:
        if self.session_params is None:
            try:
                self.session_params = await self._get_runtime().params()
            except ModelNotReadyError:
                raise
            except Exception as e:
                raise ProviderError(f"Failed to fetch on-device model parameters: {e}") from e
            logger.info(
                f"Model parameters: temp={self.session_params.get('default_temperature')}, "
                f"topK={self.session_params.get('default_top_k')}"
            )
        return self.session_params

    async def _create_session(self, **extra) -> OnDeviceSession:
        params = await self._ensure_session_params()
        return await self._get_runtime().create(
            temperature=params.get("default_temperature"),
            top_k=params.get("default_top_k"),
            expected_outputs=[{"type": "text", "languages": ["en"]}],
            **extra,
        )

    @staticmethod
    async def _destroy(session: OnDeviceSession) -> None:
        outcome = session.destroy()
        if inspect.isawaitable(outcome):
            await outcome

    async def get_embedding(self, text: str, model: str) -> List[float]:
        raise self.unsupported("embeddings", "OpenAI or LM Studio")

    async def analyze_with_prompt(self, text: str, criteria: str, model: str) -> LLMAnalysisResult:
        state = await self.check_availability()
        if state != AVAILABLE:
            raise availability_error(state)

        user_prompt = create_text_analysis_user_prompt(criteria, self.truncate_text(text))
        session = await self._create_session()
        try:
            logger.debug(f"On-device analysis: {user_prompt[:100]!r}")
            response = await session.prompt(
                f"{TEXT_ANALYSIS_SYSTEM_PROMPT}\n\n{user_prompt}",
                response_constraint=RESPONSE_CONSTRAINT,
            )
            logger.info(f"On-device response: {response}")
            return parse_analysis_json(response)
        finally:
            await self._destroy(session)

    async def analyze_image(
        self,
        image_base64: str,
        criteria: str,
        model: str,
        options: Optional[ImageAnalysisOptions] = None,
    ) -> LLMAnalysisResult:
        async with self._vision_lock:
            return await self._analyze_image_locked(image_base64, criteria)

    async def _analyze_image_locked(self, image_base64: str, criteria: str) -> LLMAnalysisResult:
        state = await self.check_availability()
        if state != AVAILABLE:
            raise availability_error(state, vision=True)

        image_bytes = base64.b64decode(_DATA_URL_PREFIX.sub("", image_base64))
        user_prompt = create_image_analysis_user_prompt(criteria)

        session = await self._create_session(
            expected_inputs=[{"type": "image"}, {"type": "text", "languages": ["en"]}],
        )
        try:
            await session.append([
                {"role": "system", "content": IMAGE_ANALYSIS_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "value": user_prompt},
                        {"type": "image", "value": image_bytes},
                    ],
                },
            ])
            response = await session.prompt(
                "Provide your analysis in JSON format.",
                response_constraint=RESPONSE_CONSTRAINT,
            )
            logger.info(f"On-device vision response: {response}")
            return parse_analysis_json(response)
        finally:
            await self._destroy(session)
