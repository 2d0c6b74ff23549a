#!/usr/bin/env python3
"""Rule types produced by the rule parser"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List


class RuleType(str, Enum):
    EMBEDDING = "embedding"
    PROMPT = "prompt"
    VISION = "vision"


@dataclass
class Rule:
    """Common fields of every rule variant"""
    id: str
    selector: str
    rule_string: str
    domains: List[str] = field(default_factory=list)
    enabled: bool = True

    type: RuleType = field(init=False)

    @property
    def payload(self) -> str:
        """Text the rule is evaluated against"""
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "selector": self.selector,
            "enabled": self.enabled,
            "rule_string": self.rule_string,
            "domains": list(self.domains),
            "payload": self.payload,
        }

    def to_stored(self) -> Dict[str, Any]:
        return {"rule_string": self.rule_string, "enabled": self.enabled}


@dataclass
class EmbeddingRule(Rule):
    contains_text: str = ""

    def __post_init__(self):
        self.type = RuleType.EMBEDDING

    @property
    def payload(self) -> str:
        return self.contains_text


@dataclass
class PromptRule(Rule):
    prompt: str = ""

    def __post_init__(self):
        self.type = RuleType.PROMPT

    @property
    def payload(self) -> str:
        return self.prompt


@dataclass
class VisionRule(Rule):
    criteria: str = ""

    def __post_init__(self):
        self.type = RuleType.VISION

    @property
    def payload(self) -> str:
        return self.criteria
