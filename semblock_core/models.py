#!/usr/bin/env python3
"""
Model registry - providers and the models known per analysis slot.

Model identifiers are composites of the form ``provider:modelName``:

    lmstudio:text-embedding-qwen3-embedding-0.6b
    openai:gpt-5-nano
    openrouter:google/gemini-2.5-flash
    ondevice:gemini-nano
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .exceptions import UnknownProviderError


class LLMProvider(str, Enum):
    ONDEVICE = "ondevice"
    LMSTUDIO = "lmstudio"
    OPENAI = "openai"
    OPENROUTER = "openrouter"


class ModelSlot(str, Enum):
    EMBEDDING = "embedding"
    PROMPT = "prompt"
    VISION = "vision"


# Providers that need an API key before any call is made
PROVIDER_KEY_FIELDS = {
    LLMProvider.OPENAI: "openai_api_key",
    LLMProvider.OPENROUTER: "openrouter_api_key",
}

PROVIDER_DISPLAY_NAMES = {
    LLMProvider.ONDEVICE: "On-device",
    LLMProvider.LMSTUDIO: "LM Studio",
    LLMProvider.OPENAI: "OpenAI",
    LLMProvider.OPENROUTER: "OpenRouter",
}


@dataclass(frozen=True)
class ModelOption:
    id: str
    provider: LLMProvider
    name: str
    display_name: str
    slot: Optional[ModelSlot] = None


def _m(provider: LLMProvider, name: str, display: str, slot: ModelSlot) -> ModelOption:
    return ModelOption(
        id=f"{provider.value}:{name}",
        provider=provider,
        name=name,
        display_name=display,
        slot=slot,
    )


EMBEDDING_MODELS: List[ModelOption] = [
    _m(LLMProvider.LMSTUDIO, "text-embedding-qwen3-embedding-0.6b", "Qwen3 Embedding 0.6B (LM Studio)", ModelSlot.EMBEDDING),
    _m(LLMProvider.OPENAI, "text-embedding-3-large", "text-embedding-3-large (OpenAI)", ModelSlot.EMBEDDING),
]

PROMPT_MODELS: List[ModelOption] = [
    _m(LLMProvider.ONDEVICE, "gemini-nano", "Gemini Nano (on-device)", ModelSlot.PROMPT),
    _m(LLMProvider.OPENAI, "gpt-5-nano", "GPT-5 nano (OpenAI)", ModelSlot.PROMPT),
    _m(LLMProvider.LMSTUDIO, "google/gemma-3n-e4b", "Gemma 3n E4B (LM Studio)", ModelSlot.PROMPT),
    _m(LLMProvider.OPENROUTER, "openai/gpt-5-nano", "GPT-5 nano (OpenRouter)", ModelSlot.PROMPT),
    _m(LLMProvider.OPENROUTER, "google/gemini-2.5-flash-lite", "Gemini 2.5 Flash Lite (OpenRouter)", ModelSlot.PROMPT),
    _m(LLMProvider.OPENROUTER, "anthropic/claude-3-haiku", "Claude 3 Haiku (OpenRouter)", ModelSlot.PROMPT),
]

VISION_MODELS: List[ModelOption] = [
    _m(LLMProvider.ONDEVICE, "gemini-nano-vision", "Gemini Nano (on-device)", ModelSlot.VISION),
    _m(LLMProvider.OPENAI, "gpt-5-mini", "GPT-5 mini (OpenAI)", ModelSlot.VISION),
    _m(LLMProvider.OPENROUTER, "openai/gpt-5-mini", "GPT-5 mini (OpenRouter)", ModelSlot.VISION),
    _m(LLMProvider.OPENROUTER, "google/gemini-2.5-flash", "Gemini 2.5 Flash (OpenRouter)", ModelSlot.VISION),
]

ALL_MODELS: List[ModelOption] = EMBEDDING_MODELS + PROMPT_MODELS + VISION_MODELS

MODELS_BY_SLOT: Dict[ModelSlot, List[ModelOption]] = {
    ModelSlot.EMBEDDING: EMBEDDING_MODELS,
    ModelSlot.PROMPT: PROMPT_MODELS,
    ModelSlot.VISION: VISION_MODELS,
}

DEFAULT_EMBEDDING_MODEL = "lmstudio:text-embedding-qwen3-embedding-0.6b"
DEFAULT_PROMPT_MODEL = "openai:gpt-5-nano"
DEFAULT_VISION_MODEL = "openai:gpt-5-mini"


def parse_provider(value: str) -> LLMProvider:
    """Resolve a provider name, raising UnknownProviderError for anything else"""
    try:
        return LLMProvider(value)
    except ValueError:
        raise UnknownProviderError(value) from None


def get_model_info(model_id: str) -> ModelOption:
    """
    Look up a model by its ``provider:name`` id.

    Ids outside the registry still resolve when the provider part is known,
    so users can point a slot at any model their backend serves.
    """
    for model in ALL_MODELS:
        if model.id == model_id:
            return model

    provider_part, sep, name = model_id.partition(":")
    if not sep or not name:
        raise UnknownProviderError(model_id)
    provider = parse_provider(provider_part)
    return ModelOption(id=model_id, provider=provider, name=name, display_name=name)


def get_models_for_slot(slot: ModelSlot) -> List[ModelOption]:
    return list(MODELS_BY_SLOT[slot])
