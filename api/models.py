"""
API request and response models for the inspection gateway REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are kept
separate from the dataclasses in auth/models.py, which own the internal
domain representation. Route handlers map between the two, copying public
fields explicitly so the password hash can never leak into a response.
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.device import DeviceDescriptor
from auth.models import Account, Platform, Role

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

USERNAME_PATTERN = r"^[A-Za-z0-9_]{3,20}$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
_PASSWORD_RULES = (
    (re.compile(r"[a-z]"), "a lowercase letter"),
    (re.compile(r"[A-Z]"), "an uppercase letter"),
    (re.compile(r"\d"), "a number"),
    (re.compile(r"[@$!%*?&]"), "a special character (@$!%*?&)"),
)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class SignInRequest(BaseModel):
    """Request body for POST /api/auth/signin.

    deviceInfo is required for inspectors and forbidden for admins; the
    auth core enforces both directions after the credentials check.
    """

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=20)
    password: str = Field(min_length=1, max_length=72)
    device_info: Optional[DeviceDescriptor] = Field(default=None, alias="deviceInfo")


class SignInResponse(BaseModel):
    """Body of a successful sign-in.

    access_token / token_type / expires_in are populated only for mobile
    clients. Web clients receive the token as a cookie and the route dumps
    this model with exclude_none so the keys are absent.
    """

    id: int
    username: str
    email: str
    roles: list[Role]
    requires_device_info: bool
    platform: Platform
    access_token: Optional[str] = None
    token_type: Optional[str] = None
    expires_in: Optional[int] = None


class DeviceResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    device_id: str
    platform: Platform


class AccountResponse(BaseModel):
    """Public view of an account. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    roles: list[Role]
    is_active: bool
    device: Optional[DeviceResponse] = None
    created_at: Optional[str] = None
    last_login: Optional[str] = None
    last_login_ip: Optional[str] = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            username=account.username,
            email=account.email,
            roles=list(account.roles),
            is_active=account.is_active,
            device=(
                DeviceResponse(device_id=account.device.device_id, platform=account.device.platform)
                if account.device
                else None
            ),
            created_at=account.created_at,
            last_login=account.last_login,
            last_login_ip=account.last_login_ip,
        )


class MeResponse(BaseModel):
    """Response for GET /api/auth/me -- the caller's own identity."""

    model_config = ConfigDict(frozen=True)

    account: AccountResponse
    platform: Platform


# ---------------------------------------------------------------------------
# Account provisioning
# ---------------------------------------------------------------------------


class AccountCreate(BaseModel):
    """Request body for POST /api/users (admin only)."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    username: str = Field(pattern=USERNAME_PATTERN)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=8, max_length=72)
    roles: list[Role] = Field(min_length=1, max_length=2)
    device_info: Optional[DeviceDescriptor] = Field(default=None, alias="deviceInfo")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("password")
    @classmethod
    def password_complexity(cls, value: str) -> str:
        missing = [label for pattern, label in _PASSWORD_RULES if not pattern.search(value)]
        if missing:
            raise ValueError("password must contain " + ", ".join(missing))
        return value


class DashboardResponse(BaseModel):
    """Minimal role-gated payload used by the dashboard routes."""

    model_config = ConfigDict(frozen=True)

    message: str
    username: str
    roles: list[Role]
    platform: Platform
