"""
auth/policy.py -- Role policies and the process-wide auth configuration value.

AuthConfig is built once at startup (AuthConfig.from_settings) and passed by
reference into TokenIssuer, SessionValidator and the cookie helpers. Tests
build their own AuthConfig with an injected secret; nothing in auth/ reaches
for global settings at request time.

Rotating secret_key invalidates every outstanding token. There is no key
versioning.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from auth.models import Role
from core.config import split_csv

if TYPE_CHECKING:
    from core.config import Settings

ALGORITHM = "HS256"
COOKIE_NAME = "auth_token"


@dataclass(frozen=True)
class RolePolicy:
    """Per-role session policy.

    token_lifetime: seconds; also the cookie max-age.
    requires_device: accounts must carry a device binding (and must not when False).
    mobile_only: sign-in from the web channel is refused.
    allowed_origins: empty means the Origin check is disabled for the role.
    """

    token_lifetime: int
    requires_device: bool
    mobile_only: bool
    allowed_origins: frozenset[str] = frozenset()

    def origin_allowed(self, origin: str | None) -> bool:
        if not origin or not self.allowed_origins:
            return True
        return origin in self.allowed_origins


@dataclass(frozen=True)
class AuthConfig:
    secret_key: str
    policies: dict[Role, RolePolicy]
    algorithm: str = ALGORITHM
    secure_cookies: bool = True
    debug: bool = False
    token_min_length: int = 100
    token_max_length: int = 2000
    rate_limits: dict[str, str] = field(default_factory=dict)

    def policy_for(self, role: Role) -> RolePolicy:
        return self.policies[role]

    @property
    def cors_origins(self) -> list[str]:
        origins: set[str] = set()
        for policy in self.policies.values():
            origins.update(policy.allowed_origins)
        return sorted(origins)

    @classmethod
    def from_settings(cls, settings: Settings) -> AuthConfig:
        policies = {
            Role.ADMIN: RolePolicy(
                token_lifetime=settings.admin_token_expire_seconds,
                requires_device=False,
                mobile_only=False,
                allowed_origins=frozenset(split_csv(settings.admin_allowed_origins)),
            ),
            Role.INSPECTOR: RolePolicy(
                token_lifetime=settings.inspector_token_expire_seconds,
                requires_device=True,
                mobile_only=True,
                allowed_origins=frozenset(split_csv(settings.inspector_allowed_origins)),
            ),
        }
        return cls(
            secret_key=settings.secret_key,
            policies=policies,
            secure_cookies=bool(settings.secure_cookies),
            debug=settings.debug,
            token_min_length=settings.token_min_length,
            token_max_length=settings.token_max_length,
            rate_limits={
                "login": settings.login_rate_limit,
                "critical": settings.critical_rate_limit,
                "general": settings.general_rate_limit,
            },
        )
