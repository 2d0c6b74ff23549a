#!/usr/bin/env python3
"""
Domain matching - decides which rules apply to a page URL.

Patterns:
    example.com         exact hostname
    *.example.com       any subdomain (not the bare domain)
    /r/news             path fragment
    example.com/forum*  path wildcard
"""

import logging
import re
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urlparse

from .models import Rule

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMES = ("http", "https", "file")


def _wildcard_to_regex(pattern: str, anchored: bool) -> "re.Pattern":
    body = ".*".join(re.escape(part) for part in pattern.split("*"))
    if anchored:
        body = f"^{body}$"
    return re.compile(body, re.IGNORECASE)


def matches_domain_pattern(pattern: str, hostname: str, pathname: str) -> bool:
    if pattern.lower() == hostname.lower():
        return True

    if "/" in pattern:
        if pattern in pathname:
            return True
        return bool(_wildcard_to_regex(pattern, anchored=False).search(pathname))

    if "*" not in pattern:
        return False
    return bool(_wildcard_to_regex(pattern, anchored=True).match(hostname))


def should_rule_apply(rule: Rule, hostname: str, pathname: str) -> bool:
    if not rule.domains:
        return True
    return any(matches_domain_pattern(d, hostname, pathname) for d in rule.domains)


def parse_url(url: str) -> Optional[Tuple[str, str]]:
    """Return (hostname, pathname) for http/https/file URLs, else None"""
    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError:
        return None
    if parsed.scheme not in SUPPORTED_SCHEMES:
        return None
    return hostname or "", parsed.path or "/"


def is_web_url(url: str) -> bool:
    return url.lower().startswith(tuple(f"{scheme}://" for scheme in SUPPORTED_SCHEMES))


def filter_rules_by_url(rules: Iterable[Rule], url: str) -> List[Rule]:
    """
    Enabled rules that apply to the given page URL.

    System pages (chrome://, about:, extension pages) get no rules at all.
    A web URL that cannot be parsed keeps only rules without domains.
    """
    if not is_web_url(url):
        logger.debug(f"Ignoring non-web URL {url!r}")
        return []

    enabled = [r for r in rules if r.enabled]
    location = parse_url(url)
    if location is None:
        logger.debug(f"Invalid URL {url!r}, keeping global rules only")
        return [r for r in enabled if not r.domains]

    hostname, pathname = location
    return [r for r in enabled if should_rule_apply(r, hostname, pathname)]
