"""
Rule model, DSL parser, domain matching and the rule collection service.
"""
from .models import Rule, RuleType, EmbeddingRule, PromptRule, VisionRule
from .parser import (
    DOMAIN_SEPARATOR,
    ParsedRuleComponents,
    parse_rule,
    parse_rule_components,
    parse_domains,
    is_valid_domain,
    validate_domains,
    validate_rule,
    generate_rule_id,
)
from .domain_matcher import (
    matches_domain_pattern,
    should_rule_apply,
    parse_url,
    filter_rules_by_url,
)
from .service import RuleService

__all__ = [
    "Rule",
    "RuleType",
    "EmbeddingRule",
    "PromptRule",
    "VisionRule",
    "DOMAIN_SEPARATOR",
    "ParsedRuleComponents",
    "parse_rule",
    "parse_rule_components",
    "parse_domains",
    "is_valid_domain",
    "validate_domains",
    "validate_rule",
    "generate_rule_id",
    "matches_domain_pattern",
    "should_rule_apply",
    "parse_url",
    "filter_rules_by_url",
    "RuleService",
]
