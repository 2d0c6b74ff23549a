"""
semblock_core package: semantic content rules evaluated by LLM backends

Usage:
    from semblock_core import BackgroundManager, MemoryStorage

    manager = BackgroundManager.create(MemoryStorage())
    await manager.init()
    await manager.handle({"action": "addRule", "rule_string": "p:contains-meaning-prompt('ad')"})
"""
from .config import Config, config
from .exceptions import SemblockError
from .models import LLMProvider, ModelSlot, get_model_info
from .settings import Settings, SettingsManager
from .storage import JsonFileStorage, MemoryStorage, Storage
from .cache_manager import CacheManager
from .llm_service import AnalysisResult, LLMService, ServiceContext
from .streaming import AnalyzableElement, QueueChannel, StreamingAnalyzer
from .background import BackgroundManager

__all__ = [
    "Config",
    "config",
    "SemblockError",
    "LLMProvider",
    "ModelSlot",
    "get_model_info",
    "Settings",
    "SettingsManager",
    "Storage",
    "JsonFileStorage",
    "MemoryStorage",
    "CacheManager",
    "AnalysisResult",
    "LLMService",
    "ServiceContext",
    "AnalyzableElement",
    "QueueChannel",
    "StreamingAnalyzer",
    "BackgroundManager",
]
