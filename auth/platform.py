"""
auth/platform.py -- Client platform classification.

resolve_platform(headers) -> Platform is a pure function. Evidence order,
first match wins:

  1. X-Platform header, if its value is a recognised tag (case-insensitive).
  2. User-Agent heuristics from PLATFORM_RULES, in order.
  3. Platform.WEB.

The heuristics are data, not control flow: adding a client signature means
appending a PlatformRule. Android rules come first, so a descriptor that
mentions both Android and an iOS token classifies as Android.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from auth.models import Platform

PLATFORM_HEADER = "x-platform"
USER_AGENT_HEADER = "user-agent"


@dataclass(frozen=True)
class PlatformRule:
    name: str
    matches: Callable[[str], bool]
    platform: Platform


def _contains(*needles: str) -> Callable[[str], bool]:
    return lambda ua: any(n in ua for n in needles)


def _pattern(regex: str) -> Callable[[str], bool]:
    compiled = re.compile(regex, re.IGNORECASE)
    return lambda ua: compiled.search(ua) is not None


# okhttp is the stock HTTP client of native Android apps; CFNetwork/Darwin and
# Alamofire identify native iOS networking stacks.
PLATFORM_RULES: tuple[PlatformRule, ...] = (
    PlatformRule("android", _contains("android", "okhttp"), Platform.ANDROID),
    PlatformRule("ios", _pattern(r"iphone|ipad|ipod|\bios\b|cfnetwork|alamofire"), Platform.IOS),
)


def header_value(headers: Mapping[str, str], name: str) -> str:
    # Starlette Headers are case-insensitive already; plain dicts in tests are not.
    value = headers.get(name)
    if value is None:
        for key, candidate in headers.items():
            if key.lower() == name:
                return candidate or ""
        return ""
    return value


def platform_from_user_agent(user_agent: str, rules: tuple[PlatformRule, ...] = PLATFORM_RULES) -> Platform:
    """Classify a User-Agent string. Empty or unknown descriptors are web."""
    ua = (user_agent or "").lower()
    if ua:
        for rule in rules:
            if rule.matches(ua):
                return rule.platform
    return Platform.WEB


def resolve_platform(headers: Mapping[str, str], rules: tuple[PlatformRule, ...] = PLATFORM_RULES) -> Platform:
    """Derive the client platform from request headers. Total and side-effect free."""
    hint = header_value(headers, PLATFORM_HEADER).strip().lower()
    if hint:
        try:
            return Platform(hint)
        except ValueError:
            pass  # unrecognised hint falls through to the heuristics
    return platform_from_user_agent(header_value(headers, USER_AGENT_HEADER), rules)
