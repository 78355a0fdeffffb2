"""Unit tests for api/limiter.py -- tiered fixed-window governors.

Covers:
- The Nth request in a window passes, the N+1th is RateLimited
- A new window admits requests again
- Tiers and keys are independent counter spaces
- Concurrent hits never admit more than the ceiling
- reset() clears every counter
"""

import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from api.limiter import DEFAULT_TIER_LIMITS, Tier, TieredRateLimiter
from auth.errors import RateLimited


class TestCeilings:
    def test_defaults(self) -> None:
        assert DEFAULT_TIER_LIMITS[Tier.LOGIN] == "10/15 minutes"
        assert DEFAULT_TIER_LIMITS[Tier.CRITICAL] == "30/minute"
        assert DEFAULT_TIER_LIMITS[Tier.GENERAL] == "50/minute"

    def test_login_eleventh_attempt_rejected(self) -> None:
        limiter = TieredRateLimiter()
        for _ in range(10):
            limiter.check(Tier.LOGIN, "203.0.113.7")
        with pytest.raises(RateLimited) as exc_info:
            limiter.check(Tier.LOGIN, "203.0.113.7")
        assert exc_info.value.status_code == 429
        assert "15 minutes" in exc_info.value.message

    def test_override_from_config(self) -> None:
        limiter = TieredRateLimiter({"general": "2/minute"})
        assert limiter.hit(Tier.GENERAL, "k")
        assert limiter.hit(Tier.GENERAL, "k")
        assert not limiter.hit(Tier.GENERAL, "k")

    def test_unknown_tier_name_rejected(self) -> None:
        with pytest.raises(ValueError):
            TieredRateLimiter({"bulk": "5/minute"})


class TestIsolation:
    def test_keys_are_independent(self) -> None:
        limiter = TieredRateLimiter({"login": "1/minute"})
        limiter.check(Tier.LOGIN, "10.0.0.1")
        limiter.check(Tier.LOGIN, "10.0.0.2")
        with pytest.raises(RateLimited):
            limiter.check(Tier.LOGIN, "10.0.0.1")

    def test_tiers_are_independent(self) -> None:
        limiter = TieredRateLimiter({"login": "1/minute", "general": "1/minute", "critical": "1/minute"})
        for tier in Tier:
            limiter.check(tier, "10.0.0.1")
        with pytest.raises(RateLimited):
            limiter.check(Tier.GENERAL, "10.0.0.1")

    def test_reset(self) -> None:
        limiter = TieredRateLimiter({"login": "1/minute"})
        limiter.check(Tier.LOGIN, "k")
        limiter.reset()
        limiter.check(Tier.LOGIN, "k")


class TestWindow:
    def test_new_window_admits_again(self) -> None:
        limiter = TieredRateLimiter({"general": "2/second"})
        assert limiter.hit(Tier.GENERAL, "k")
        assert limiter.hit(Tier.GENERAL, "k")
        assert not limiter.hit(Tier.GENERAL, "k")
        time.sleep(1.1)
        assert limiter.hit(Tier.GENERAL, "k")


class TestConcurrency:
    def test_exactly_ceiling_admitted(self) -> None:
        limiter = TieredRateLimiter({"critical": "30/minute"})
        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda _: limiter.hit(Tier.CRITICAL, "7_10.0.0.1"), range(100)))
        assert results.count(True) == 30
