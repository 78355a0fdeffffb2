"""
auth/models.py -- Domain types for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and the
session pipeline do the work; these types only own shape.

Role and Platform are closed str enums. Anything that takes a role name from
outside (JSON bodies, the CLI, token claims) converts through Role(...) and
therefore rejects unknown names with ValueError instead of silently matching
nothing.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    """Closed set of account roles.

    INSPECTOR is the restricted field role: bound to exactly one physical
    device and allowed to authenticate from a mobile channel only.
    """

    ADMIN = "admin"
    INSPECTOR = "inspector"


class Platform(str, Enum):
    WEB = "web"
    ANDROID = "android"
    IOS = "ios"

    @property
    def is_mobile(self) -> bool:
        return self is not Platform.WEB


MOBILE_PLATFORMS = frozenset({Platform.ANDROID, Platform.IOS})


@dataclass(frozen=True)
class DeviceBinding:
    """A persisted (device identifier, platform) pair. Immutable once set.

    Comparison against a presented device is exact string equality on
    device_id; the platform tag is informational.
    """

    device_id: str
    platform: Platform


@dataclass
class Account:
    """An identity as seen by the auth core.

    roles is ordered: roles[0] is the primary role and selects the token
    lifetime. An empty tuple means "not loaded", never "no roles" -- the role
    gate reloads from the directory before deciding.

    hashed_password never leaves the auth package: response models copy the
    public fields explicitly.
    """

    username: str
    email: str
    id: int | None = None
    hashed_password: str | None = None
    is_active: bool = True
    roles: tuple[Role, ...] = ()
    device: DeviceBinding | None = None
    created_at: str | None = None
    last_login: str | None = None
    last_login_ip: str | None = None
    last_login_device: str | None = None

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    @property
    def primary_role(self) -> Role | None:
        return self.roles[0] if self.roles else None

    @property
    def is_restricted(self) -> bool:
        return Role.INSPECTOR in self.roles


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of a session token.

    Wire names are the registered JWT claims where one exists:
    sub (identity), iat (issuedAt), exp (expiresAt).
    """

    account_id: int
    roles: tuple[Role, ...]
    platform: Platform
    issued_at: int
    expires_at: int


@dataclass(frozen=True)
class IssuedToken:
    """A freshly minted token plus the lifetime the cookie/body must advertise."""

    token: str
    expires_in: int
    claims: TokenClaims


@dataclass(frozen=True)
class AuthContext:
    """Typed per-request identity produced by the session validator.

    Threaded through FastAPI dependencies instead of being stitched onto the
    request object.
    """

    account: Account
    platform: Platform
    roles: frozenset[Role] = field(default_factory=frozenset)
