"""Tests for RuleService persistence."""

import pytest

from semblock_core.settings import SETTINGS_KEY, SettingsManager
from semblock_core.rules import RuleService


@pytest.fixture
def service(storage, test_config):
    return RuleService(SettingsManager(storage, test_config))


class TestRuleService:

    @pytest.mark.asyncio
    async def test_add_rule_persists(self, service, storage):
        """Added rules are stored as rule_string/enabled pairs."""
        rule = await service.add_rule("p:contains-meaning-prompt('ad')")
        assert rule is not None
        assert storage.data[SETTINGS_KEY]["ad_block_rules"] == [
            {"rule_string": "p:contains-meaning-prompt('ad')", "enabled": True}
        ]

    @pytest.mark.asyncio
    async def test_add_invalid_rule_returns_none(self, service):
        assert await service.add_rule("not a rule") is None
        assert service.get_rules() == []

    @pytest.mark.asyncio
    async def test_toggle_and_reload(self, service, storage, test_config):
        """Enabled state survives a reload from storage."""
        rule = await service.add_rule("p:contains-meaning-prompt('ad')")
        assert await service.toggle_rule(rule.id, False) is True

        fresh = RuleService(SettingsManager(storage, test_config))
        await fresh.initialize()
        rules = fresh.get_rules()
        assert len(rules) == 1
        assert rules[0].enabled is False
        assert rules[0].prompt == "ad"

    @pytest.mark.asyncio
    async def test_remove_rule(self, service):
        rule = await service.add_rule("p:contains-meaning-prompt('ad')")
        assert await service.remove_rule(rule.id) is True
        assert await service.remove_rule(rule.id) is False
        assert service.get_rules() == []

    @pytest.mark.asyncio
    async def test_unparseable_stored_rule_skipped(self, storage, test_config):
        storage.data[SETTINGS_KEY] = {
            "ad_block_rules": [
                {"rule_string": "broken", "enabled": True},
                {"rule_string": "p:contains-meaning-embedding('ok')", "enabled": True},
            ]
        }
        service = RuleService(SettingsManager(storage, test_config))
        await service.initialize()
        assert [r.contains_text for r in service.get_rules()] == ["ok"]

    @pytest.mark.asyncio
    async def test_clear_rules(self, service):
        await service.add_rule("p:contains-meaning-prompt('a')")
        await service.clear_rules()
        assert service.get_rules() == []

    def test_get_rules_returns_copy(self, service):
        service.get_rules().append("x")
        assert service.get_rules() == []
