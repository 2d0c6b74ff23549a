#!/usr/bin/env python3
"""
BackgroundManager - wires services together and answers requests.

Requests are plain dicts with an ``action`` key; responses are dicts with
``success`` plus action-specific fields. Streaming analysis goes through
``handle_streaming_message`` and a Channel instead.
"""

import logging
from typing import Any, Dict, Optional

from .adapters import ImageAnalysisOptions, OnDeviceRuntime
from .config import Config
from .error_handler import create_error_response
from .exceptions import SemblockError
from .llm_service import CacheInfo, LLMService, ServiceContext
from .rules import RuleService, RuleType, validate_rule
from .settings import KEY_FIELDS, MODEL_FIELDS, THRESHOLD_FIELDS
from .storage import Storage
from .streaming import Channel, StreamingAnalyzer

logger = logging.getLogger(__name__)


class BackgroundManager:

    def __init__(self, context: ServiceContext):
        self.context = context
        self.llm_service = LLMService(context)
        self.rule_service = RuleService(context.settings_manager)
        self.analyzer = StreamingAnalyzer(self.llm_service, self.rule_service)

        self._handlers = {
            "getBlockingStatus": self.handle_get_blocking_status,
            "getSettings": self.handle_get_settings,
            "updateSettings": self.handle_update_settings,
            "clearCache": self.handle_clear_cache,
            "addRule": self.handle_add_rule,
            "removeRule": self.handle_remove_rule,
            "getRules": self.handle_get_rules,
            "toggleRule": self.handle_toggle_rule,
            "clearRules": self.handle_clear_rules,
            "validateRule": self.handle_validate_rule,
            "getThresholds": self.handle_get_thresholds,
            "setEmbeddingThreshold": self.handle_set_embedding_threshold,
            "setPromptThreshold": self.handle_set_prompt_threshold,
            "setVisionThreshold": self.handle_set_vision_threshold,
            "analyzeImage": self.handle_analyze_image,
            "setBenchmarkEnabled": self.handle_set_benchmark_enabled,
            "getBenchmarkData": self.handle_get_benchmark_data,
            "clearBenchmarkData": self.handle_clear_benchmark_data,
        }

    @classmethod
    def create(
        cls,
        storage: Storage,
        ondevice_runtime: Optional[OnDeviceRuntime] = None,
        app_config: Optional[Config] = None,
    ) -> "BackgroundManager":
        return cls(ServiceContext.create(storage, ondevice_runtime, app_config))

    async def init(self) -> None:
        await self.llm_service.init()
        await self.rule_service.initialize()
        if self.llm_service.current_settings.debug_logging:
            logging.getLogger("semblock_core").setLevel(logging.DEBUG)
        logger.info("Services initialized successfully")

    async def shutdown(self) -> None:
        logger.info("Shutting down, saving cache...")
        await self.llm_service.force_save()

    async def handle(self, message: Dict[str, Any]) -> Dict[str, Any]:
        handler = self._handlers.get(message.get("action"))
        if handler is None:
            return {"success": False, "error": f"Unknown action: {message.get('action')}"}
        try:
            return await handler(message)
        except SemblockError as e:
            logger.error(f"Error handling {message.get('action')}: {e}")
            return create_error_response(e, message.get("action", ""))

    async def handle_streaming_message(self, message: Dict[str, Any], channel: Channel) -> None:
        await self.analyzer.handle_message(message, channel)

    async def handle_get_blocking_status(self, message):
        settings = await self.context.settings_manager.get_settings()
        return {"success": True, "blocking_enabled": settings.blocking_enabled}

    async def handle_get_settings(self, message):
        settings = await self.context.settings_manager.get_settings()
        return {"success": True, "settings": settings.to_dict()}

    async def handle_update_settings(self, message):
        updates = message.get("updates") or {}
        current = await self.context.settings_manager.get_settings()

        models_changed = any(
            updates.get(name) and updates[name] != getattr(current, name)
            for name in MODEL_FIELDS
        )
        keys_changed = any(
            name in updates and updates[name] != getattr(current, name)
            for name in KEY_FIELDS
        )
        thresholds_changed = any(
            name in updates and updates[name] != getattr(current, name)
            for name in THRESHOLD_FIELDS
        )

        await self.context.settings_manager.save_settings(updates)

        if models_changed:
            logger.info("Model change detected, clearing cache...")
            await self.llm_service.clear_cache()
            await self.llm_service.reload_settings()
        elif keys_changed or thresholds_changed:
            logger.info("API key or threshold change detected, reloading settings...")
            await self.llm_service.reload_settings()
        return {"success": True}

    async def handle_clear_cache(self, message):
        await self.llm_service.clear_cache()
        return {"success": True}

    async def handle_add_rule(self, message):
        rule = await self.rule_service.add_rule(message.get("rule_string", ""))
        return {
            "success": rule is not None,
            "rule": rule.to_dict() if rule else None,
            "error": None if rule else "Failed to parse rule",
        }

    async def handle_remove_rule(self, message):
        return {"success": await self.rule_service.remove_rule(message.get("rule_id", ""))}

    async def handle_get_rules(self, message):
        return {"success": True, "rules": [r.to_dict() for r in self.rule_service.get_rules()]}

    async def handle_toggle_rule(self, message):
        toggled = await self.rule_service.toggle_rule(message.get("rule_id", ""), bool(message.get("enabled")))
        return {"success": toggled}

    async def handle_clear_rules(self, message):
        await self.rule_service.clear_rules()
        return {"success": True}

    async def handle_validate_rule(self, message):
        return {"success": True, "valid": validate_rule(message.get("rule_string", ""))}

    async def handle_get_thresholds(self, message):
        return {
            "success": True,
            "embedding": self.llm_service.embedding_threshold,
            "prompt": self.llm_service.prompt_threshold,
            "vision": self.llm_service.vision_threshold,
        }

    async def _set_threshold(self, rule_type: RuleType, message):
        await self.llm_service.set_threshold(rule_type, message.get("threshold"))
        return {"success": True}

    async def handle_set_embedding_threshold(self, message):
        return await self._set_threshold(RuleType.EMBEDDING, message)

    async def handle_set_prompt_threshold(self, message):
        return await self._set_threshold(RuleType.PROMPT, message)

    async def handle_set_vision_threshold(self, message):
        return await self._set_threshold(RuleType.VISION, message)

    async def handle_analyze_image(self, message):
        image, criteria = message.get("image"), message.get("criteria")
        if not image or not criteria:
            return {"success": False, "error": "image and criteria are required"}
        result = await self.llm_service.analyze_by_image(
            image,
            criteria,
            CacheInfo(message.get("inner_text", ""), message.get("groundTruth", message.get("ground_truth"))),
            ImageAnalysisOptions(detail=message.get("detail", "auto")),
        )
        return {"success": True, "result": result.to_dict()}

    async def handle_set_benchmark_enabled(self, message):
        await self.llm_service.benchmark.set_enabled(bool(message.get("enabled")))
        return {"success": True, "enabled": self.llm_service.benchmark.is_enabled()}

    async def handle_get_benchmark_data(self, message):
        return {"success": True, "data": self.llm_service.benchmark.get_data()}

    async def handle_clear_benchmark_data(self, message):
        await self.llm_service.benchmark.clear()
        return {"success": True}
