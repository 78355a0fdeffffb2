"""
api/limiter.py -- Tiered request-rate governors.

Three independent fixed-window tiers, selected by the route's declared
sensitivity (never by inspecting the request):

  login     10 / 15 minutes  keyed by client address  (credential guessing surface)
  critical  30 / minute      keyed by token subject (or "anonymous") + client address
  general   50 / minute      keyed by client address  (everything else)

The counters live in the slowapi Limiter's storage (memory:// by default) and
are hit through its `limits` fixed-window strategy, whose increment-and-compare
runs under a per-key lock. Two concurrent requests cannot both see "under the
ceiling" for the same slot.

Counters are process-local. Several server instances each enforce their own
ceiling; pointing RATE_LIMIT_STORAGE_URI at a shared store (redis://...) is
the fix for multi-instance deployments.

Every tier counts before the session validator runs, so unauthenticated and
forged-token floods are throttled too. The critical tier reads the token
subject by signature check alone (TokenIssuer.verify); it never loads the
account or stamps the last session.

A rejection is a fixed RateLimited (429). No Retry-After is computed and no
other component's state is read or written.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum

from fastapi import Request
from limits import parse
from slowapi import Limiter
from slowapi.util import get_remote_address

from auth.errors import AuthError, RateLimited
from auth.policy import COOKIE_NAME
from auth.session import extract_bearer_token

logger = logging.getLogger("inspectgate.ratelimit")


class Tier(str, Enum):
    LOGIN = "login"
    CRITICAL = "critical"
    GENERAL = "general"


DEFAULT_TIER_LIMITS: dict[Tier, str] = {
    Tier.LOGIN: "10/15 minutes",
    Tier.CRITICAL: "30/minute",
    Tier.GENERAL: "50/minute",
}

_MESSAGES = {
    Tier.LOGIN: "Too many sign-in attempts. Try again in 15 minutes.",
    Tier.CRITICAL: "Too many requests to critical resources. Try again in 1 minute.",
    Tier.GENERAL: "Too many requests. Try again in 1 minute.",
}


class TieredRateLimiter:
    """One fixed-window counter space per tier.

    Usage:
        limiter = TieredRateLimiter({"login": "10/15 minutes"})
        limiter.check(Tier.LOGIN, "203.0.113.7")   # raises RateLimited past the ceiling
    """

    def __init__(self, tier_limits: Mapping[str, str] | None = None, storage_uri: str = "memory://") -> None:
        specs = dict(DEFAULT_TIER_LIMITS)
        for name, spec in (tier_limits or {}).items():
            specs[Tier(name)] = spec
        self._items = {tier: parse(spec) for tier, spec in specs.items()}
        self._limiter = Limiter(key_func=get_remote_address, storage_uri=storage_uri, strategy="fixed-window")

    def hit(self, tier: Tier, key: str) -> bool:
        """Count one request for (tier, key). Returns False once the ceiling is passed."""
        return self._limiter.limiter.hit(self._items[tier], tier.value, key)

    def check(self, tier: Tier, key: str) -> None:
        if not self.hit(tier, key):
            logger.warning("Rate limit exceeded (tier=%s, key=%s)", tier.value, key)
            raise RateLimited(_MESSAGES[tier])

    def reset(self) -> None:
        self._limiter.reset()


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------


def _origin(request: Request) -> str:
    return get_remote_address(request) or "unknown"


def limit_login(request: Request) -> None:
    request.app.state.rate_limiter.check(Tier.LOGIN, _origin(request))


def limit_general(request: Request) -> None:
    request.app.state.rate_limiter.check(Tier.GENERAL, _origin(request))


def critical_identity(request: Request) -> str:
    """Return the verified token subject, or "anonymous" when there is none.

    Cookie first, then bearer, as the session validator does. Nothing here
    touches the account directory.
    """
    state = request.app.state
    token = request.cookies.get(COOKIE_NAME) or extract_bearer_token(request.headers.get("authorization", ""))
    config = state.auth_config
    if not token or not config.token_min_length <= len(token) <= config.token_max_length:
        return "anonymous"
    try:
        return str(state.token_issuer.verify(token).account_id)
    except AuthError:
        return "anonymous"


def limit_critical(request: Request) -> None:
    """Critical routes are keyed on the token subject (or "anonymous") plus the client address."""
    request.app.state.rate_limiter.check(Tier.CRITICAL, f"{critical_identity(request)}_{_origin(request)}")
