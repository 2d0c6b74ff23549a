"""
Provider adapters - one class per backend behind a common contract.
"""
from .base import BaseLLMAdapter, ImageAnalysisOptions, LLMAnalysisResult, TokenUsage
from .openai_adapter import OpenAIAdapter
from .lmstudio_adapter import LMStudioAdapter
from .ondevice_adapter import OnDeviceAdapter, OnDeviceRuntime, OnDeviceSession
from .openrouter_adapter import OpenRouterAdapter

__all__ = [
    "BaseLLMAdapter",
    "ImageAnalysisOptions",
    "LLMAnalysisResult",
    "TokenUsage",
    "OpenAIAdapter",
    "LMStudioAdapter",
    "OnDeviceAdapter",
    "OnDeviceRuntime",
    "OnDeviceSession",
    "OpenRouterAdapter",
]
