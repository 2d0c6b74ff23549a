#!/usr/bin/env python3
"""
Rule DSL parser.

Grammar:

    [domain1,domain2#?#]selector:contains-meaning-KIND('text')

KIND is one of ``embedding``, ``prompt`` or ``vision``. Text may be
quoted with single or double quotes. Examples:

    div.post:contains-meaning-embedding('crypto giveaway')
    example.com,*.news.org#?#article:contains-meaning-prompt("is this clickbait?")
"""

import logging
import re
import secrets
import string
from dataclasses import dataclass, field
from typing import List

from ..exceptions import InvalidDomainError, InvalidFormatError, RuleParseError
from .models import EmbeddingRule, PromptRule, Rule, RuleType, VisionRule

logger = logging.getLogger(__name__)

DOMAIN_SEPARATOR = "#?#"

RULE_PATTERN = re.compile(
    r"^(.+?):contains-meaning-(embedding|prompt|vision)\(['\"](.+?)['\"]?\)$"
)

_FORBIDDEN_DOMAIN_CHARS = re.compile(r"[#?\s]")
_ID_ALPHABET = string.ascii_letters + string.digits + "_-"


@dataclass
class ParsedRuleComponents:
    rule_part: str
    domains: List[str] = field(default_factory=list)


def generate_rule_id() -> str:
    return "rule-" + "".join(secrets.choice(_ID_ALPHABET) for _ in range(21))


def parse_domains(domain_part: str) -> List[str]:
    """Split a comma-separated domain list, trimming and dropping empties"""
    return [d.strip() for d in domain_part.split(",") if d.strip()]


def is_valid_domain(domain: str) -> bool:
    if domain == "localhost" or domain.startswith("file://"):
        return True

    # Path patterns such as "example.com/forum" or "/r/news"
    if "/" in domain:
        return not _FORBIDDEN_DOMAIN_CHARS.search(domain)

    if _FORBIDDEN_DOMAIN_CHARS.search(domain):
        return False
    if "." not in domain or domain == "*":
        return False
    if domain.startswith(".") and not domain.startswith("*"):
        return False
    if domain.endswith(".") and not domain.endswith("*"):
        return False
    return True


def validate_domains(domains: List[str]) -> None:
    for domain in domains:
        if not is_valid_domain(domain):
            raise InvalidDomainError(domain)


def parse_rule_components(rule_string: str) -> ParsedRuleComponents:
    """Split the optional domain prefix from the rule body"""
    if DOMAIN_SEPARATOR in rule_string:
        domain_part, rule_part = rule_string.split(DOMAIN_SEPARATOR, 1)
        domains = parse_domains(domain_part)
        validate_domains(domains)
        return ParsedRuleComponents(rule_part=rule_part, domains=domains)
    return ParsedRuleComponents(rule_part=rule_string)


def parse_rule(rule_string: str) -> Rule:
    """
    Parse a DSL statement into one of the Rule variants.

    Raises:
        InvalidDomainError: a token of the domain prefix is malformed
        InvalidFormatError: the rule body matches none of the grammars
    """
    components = parse_rule_components(rule_string)
    match = RULE_PATTERN.match(components.rule_part.strip())
    if not match:
        raise InvalidFormatError(f"Invalid rule format: {rule_string}")

    selector = match.group(1).strip()
    kind = RuleType(match.group(2))
    text = match.group(3).strip()

    common = dict(
        id=generate_rule_id(),
        selector=selector,
        rule_string=rule_string,
        domains=components.domains,
    )
    if kind == RuleType.EMBEDDING:
        return EmbeddingRule(contains_text=text, **common)
    if kind == RuleType.PROMPT:
        return PromptRule(prompt=text, **common)
    return VisionRule(criteria=text, **common)


def validate_rule(rule_string: str) -> bool:
    try:
        parse_rule(rule_string)
        return True
    except RuleParseError as e:
        logger.debug(f"Rule rejected: {e}")
        return False
