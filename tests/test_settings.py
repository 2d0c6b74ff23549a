"""Tests for settings loading, validation and the model registry."""

import pytest

from semblock_core.exceptions import SettingsValidationError, UnknownProviderError
from semblock_core.models import LLMProvider, get_model_info
from semblock_core.settings import SETTINGS_KEY, Settings, SettingsManager, parse_settings
from semblock_core.storage import JsonFileStorage


class TestParseSettings:

    def test_defaults(self):
        settings = parse_settings({})
        assert settings == Settings()
        assert settings.embedding_model == "lmstudio:text-embedding-qwen3-embedding-0.6b"
        assert settings.prompt_model == "openai:gpt-5-nano"
        assert settings.vision_model == "openai:gpt-5-mini"
        assert settings.embedding_threshold == 0.32
        assert settings.prompt_threshold == 0.7
        assert settings.vision_threshold == 0.7
        assert settings.blocking_enabled is True

    @pytest.mark.parametrize("data", [
        {"prompt_threshold": 1.5},
        {"prompt_threshold": "high"},
        {"prompt_model": "nonsense:gpt"},
        {"blocking_enabled": "yes"},
        {"unknown_key": 1},
        {"ad_block_rules": [42]},
        "not a dict",
    ])
    def test_invalid(self, data):
        with pytest.raises(SettingsValidationError):
            parse_settings(data)

    def test_stored_rules_parsed(self):
        settings = parse_settings({"ad_block_rules": [{"rule_string": "x", "enabled": False}]})
        assert settings.ad_block_rules[0].rule_string == "x"
        assert settings.ad_block_rules[0].enabled is False


class TestSettingsManager:

    @pytest.mark.asyncio
    async def test_missing_settings_written_back(self, storage, test_config):
        manager = SettingsManager(storage, test_config)
        settings = await manager.get_settings()
        assert settings == Settings()
        assert storage.data[SETTINGS_KEY]["prompt_model"] == "openai:gpt-5-nano"

    @pytest.mark.asyncio
    async def test_invalid_settings_fall_back_to_defaults(self, storage, test_config):
        """Corrupt stored settings are replaced by defaults."""
        storage.data[SETTINGS_KEY] = {"prompt_threshold": 7}
        manager = SettingsManager(storage, test_config)
        settings = await manager.get_settings()
        assert settings.prompt_threshold == 0.7
        assert storage.data[SETTINGS_KEY]["prompt_threshold"] == 0.7

    @pytest.mark.asyncio
    async def test_unknown_stored_keys_ignored(self, storage, test_config):
        """A leftover key in stored settings does not wipe keys and rules."""
        storage.data[SETTINGS_KEY] = {
            "openai_api_key": "sk-user",
            "legacy_flag": True,
            "ad_block_rules": [{"rule_string": "p:contains-meaning-prompt('ads')", "enabled": True}],
        }
        manager = SettingsManager(storage, test_config)
        settings = await manager.get_settings()

        assert settings.openai_api_key == "sk-user"
        assert [r.rule_string for r in settings.ad_block_rules] == ["p:contains-meaning-prompt('ads')"]
        assert storage.data[SETTINGS_KEY]["openai_api_key"] == "sk-user"

    @pytest.mark.asyncio
    async def test_save_rejects_unknown_keys(self, storage, test_config):
        manager = SettingsManager(storage, test_config)
        with pytest.raises(SettingsValidationError, match="legacy_flag"):
            await manager.save_settings({"legacy_flag": True})

    @pytest.mark.asyncio
    async def test_save_merges_and_validates(self, storage, test_config):
        manager = SettingsManager(storage, test_config)
        await manager.save_settings({"openai_api_key": "sk-test"})
        settings = await manager.save_settings({"prompt_threshold": 0.8})
        assert settings.openai_api_key == "sk-test"
        assert settings.prompt_threshold == 0.8

        with pytest.raises(SettingsValidationError):
            await manager.save_settings({"prompt_threshold": -1})
        assert (await manager.get_settings()).prompt_threshold == 0.8

    @pytest.mark.asyncio
    async def test_json_file_storage(self, tmp_path, test_config):
        path = tmp_path / "nested" / "storage.json"
        manager = SettingsManager(JsonFileStorage(path), test_config)
        await manager.save_settings({"debug_logging": True})

        reloaded = SettingsManager(JsonFileStorage(path), test_config)
        assert (await reloaded.get_settings()).debug_logging is True


class TestModelRegistry:

    def test_known_model(self):
        info = get_model_info("openai:gpt-5-nano")
        assert info.provider == LLMProvider.OPENAI
        assert info.name == "gpt-5-nano"

    def test_router_model_name_keeps_slash(self):
        info = get_model_info("openrouter:google/gemini-2.5-flash")
        assert info.provider == LLMProvider.OPENROUTER
        assert info.name == "google/gemini-2.5-flash"

    def test_unregistered_model_with_known_provider(self):
        info = get_model_info("lmstudio:my-local-model")
        assert info.provider == LLMProvider.LMSTUDIO
        assert info.name == "my-local-model"

    def test_unknown_provider(self):
        with pytest.raises(UnknownProviderError):
            get_model_info("acme:model")
