#!/usr/bin/env python3
"""RuleService - the user's rule collection, persisted through settings"""

import logging
from typing import List, Optional

from ..exceptions import RuleParseError
from ..settings import SettingsManager
from .models import Rule
from .parser import generate_rule_id, parse_rule

logger = logging.getLogger(__name__)


class RuleService:

    def __init__(self, settings_manager: SettingsManager):
        self.settings_manager = settings_manager
        self.rules: List[Rule] = []

    async def initialize(self) -> None:
        await self.load_rules_from_storage()

    async def load_rules_from_storage(self) -> None:
        settings = await self.settings_manager.get_settings()
        rules = []
        for stored in settings.ad_block_rules:
            try:
                rule = parse_rule(stored.rule_string)
            except RuleParseError as e:
                logger.warning(f"Skipping stored rule {stored.rule_string!r}: {e}")
                continue
            rule.enabled = stored.enabled
            rules.append(rule)
        self.rules = rules
        logger.info(f"📋 Loaded {len(rules)} rules from storage")

    async def save_rules_to_storage(self) -> None:
        await self.settings_manager.save_settings(
            {"ad_block_rules": [r.to_stored() for r in self.rules]}
        )

    async def add_rule(self, rule_string: str) -> Optional[Rule]:
        try:
            rule = parse_rule(rule_string)
        except RuleParseError as e:
            logger.error(f"Failed to add rule: {e}")
            return None
        self.rules.append(rule)
        await self.save_rules_to_storage()
        return rule

    async def remove_rule(self, rule_id: str) -> bool:
        remaining = [r for r in self.rules if r.id != rule_id]
        if len(remaining) == len(self.rules):
            return False
        self.rules = remaining
        await self.save_rules_to_storage()
        return True

    async def toggle_rule(self, rule_id: str, enabled: bool) -> bool:
        for rule in self.rules:
            if rule.id == rule_id:
                rule.enabled = enabled
                await self.save_rules_to_storage()
                return True
        return False

    def get_rules(self) -> List[Rule]:
        return list(self.rules)

    async def clear_rules(self) -> None:
        self.rules = []
        await self.save_rules_to_storage()

    def generate_rule_id(self) -> str:
        return generate_rule_id()
