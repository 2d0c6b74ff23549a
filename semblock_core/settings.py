#!/usr/bin/env python3
"""
User settings - models per slot, thresholds, API keys and stored rules.

Usage:
    manager = SettingsManager(storage)
    settings = await manager.get_settings()
    await manager.save_settings({"prompt_threshold": 0.8})
"""

import logging
from dataclasses import dataclass, field, asdict, fields
from typing import Any, Dict, List, Optional

from .config import Config, config as default_config
from .exceptions import SettingsValidationError, SemblockError
from .models import (
    DEFAULT_EMBEDDING_MODEL,
    DEFAULT_PROMPT_MODEL,
    DEFAULT_VISION_MODEL,
    get_model_info,
)
from .storage import Storage

logger = logging.getLogger(__name__)

SETTINGS_KEY = "settings"

DEFAULT_EMBEDDING_THRESHOLD = 0.32
DEFAULT_PROMPT_THRESHOLD = 0.7
DEFAULT_VISION_THRESHOLD = 0.7

THRESHOLD_FIELDS = ("embedding_threshold", "prompt_threshold", "vision_threshold")
MODEL_FIELDS = ("embedding_model", "prompt_model", "vision_model")
KEY_FIELDS = ("openai_api_key", "openrouter_api_key")


@dataclass
class StoredRule:
    rule_string: str
    enabled: bool = True


@dataclass
class Settings:
    openai_api_key: str = ""
    openrouter_api_key: str = ""
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    prompt_model: str = DEFAULT_PROMPT_MODEL
    vision_model: str = DEFAULT_VISION_MODEL
    embedding_threshold: float = DEFAULT_EMBEDDING_THRESHOLD
    prompt_threshold: float = DEFAULT_PROMPT_THRESHOLD
    vision_threshold: float = DEFAULT_VISION_THRESHOLD
    blocking_enabled: bool = True
    save_screenshots_to_downloads: bool = False
    debug_logging: bool = False
    ad_block_rules: List[StoredRule] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def copy(self) -> "Settings":
        return parse_settings(self.to_dict())


def parse_settings(data: Any, strict: bool = True) -> Settings:
    """
    Build and validate a Settings object from a plain dict.

    With strict=False unknown keys are dropped instead of rejected, so
    settings written by an older or newer version still load.

    Raises:
        SettingsValidationError: unknown keys (strict only), wrong types,
            bad model ids or thresholds outside [0, 1]
    """
    if not isinstance(data, dict):
        raise SettingsValidationError("Settings must be an object")

    known = {f.name for f in fields(Settings)}
    unknown = set(data) - known
    if unknown and strict:
        raise SettingsValidationError(f"Unknown settings keys: {', '.join(sorted(unknown))}")
    if unknown:
        logger.warning(f"Ignoring unknown settings keys: {', '.join(sorted(unknown))}")

    values = {k: v for k, v in data.items() if k in known}

    for name in KEY_FIELDS + MODEL_FIELDS:
        if name in values and not isinstance(values[name], str):
            raise SettingsValidationError(f"{name} must be a string")

    for name in MODEL_FIELDS:
        if name in values:
            try:
                get_model_info(values[name])
            except SemblockError as e:
                raise SettingsValidationError(f"{name}: {e}") from e

    for name in THRESHOLD_FIELDS:
        if name in values:
            value = values[name]
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise SettingsValidationError(f"{name} must be a number")
            if not 0.0 <= float(value) <= 1.0:
                raise SettingsValidationError(f"{name} must be between 0 and 1")
            values[name] = float(value)

    for name in ("blocking_enabled", "save_screenshots_to_downloads", "debug_logging"):
        if name in values and not isinstance(values[name], bool):
            raise SettingsValidationError(f"{name} must be a boolean")

    if "ad_block_rules" in values:
        raw_rules = values["ad_block_rules"]
        if not isinstance(raw_rules, list):
            raise SettingsValidationError("ad_block_rules must be a list")
        rules = []
        for item in raw_rules:
            if isinstance(item, StoredRule):
                rules.append(item)
            elif isinstance(item, dict) and isinstance(item.get("rule_string"), str):
                rules.append(StoredRule(item["rule_string"], bool(item.get("enabled", True))))
            else:
                raise SettingsValidationError(f"Invalid stored rule: {item!r}")
        values["ad_block_rules"] = rules

    return Settings(**values)


class SettingsManager:
    """Loads and persists Settings through a Storage backend"""

    def __init__(self, storage: Storage, app_config: Optional[Config] = None):
        self.storage = storage
        self.config = app_config or default_config

    def default_settings(self) -> Settings:
        return Settings(
            openai_api_key=self.config.openai_api_key,
            openrouter_api_key=self.config.openrouter_api_key,
        )

    async def get_settings(self) -> Settings:
        """
        Load settings. Missing or invalid stored settings fall back to the
        defaults, which are written back to storage.
        """
        raw = await self.storage.get(SETTINGS_KEY)
        if raw is None:
            settings = self.default_settings()
            await self.storage.set({SETTINGS_KEY: settings.to_dict()})
            return settings

        try:
            return parse_settings(raw, strict=False)
        except SettingsValidationError as e:
            logger.warning(f"⚠️ Stored settings are invalid, restoring defaults: {e}")
            settings = self.default_settings()
            await self.storage.set({SETTINGS_KEY: settings.to_dict()})
            return settings

    async def save_settings(self, updates: Dict[str, Any]) -> Settings:
        """Merge updates into the current settings, validate, then persist"""
        current = await self.get_settings()
        merged = current.to_dict()
        merged.update(updates)
        settings = parse_settings(merged)
        await self.storage.set({SETTINGS_KEY: settings.to_dict()})
        return settings
