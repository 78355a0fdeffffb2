"""
auth/errors.py -- Rejection taxonomy for the auth core.

Every failure the core can produce is an AuthError subclass carrying the HTTP
status, a stable machine-readable code and a human message. Nothing in auth/
builds HTTP responses: api/main.py registers one exception handler that turns
any AuthError into the standard error envelope.

All of these are terminal for the current request. None is retried by the
server. RateLimited is the only one a client may reasonably retry, after the
window passes.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every auth-core rejection."""

    status_code: int = 403
    code: str = "forbidden"
    message: str = "Access denied."

    def __init__(self, message: str | None = None, *, detail: str | None = None) -> None:
        self.message = message or self.message
        self.detail = detail
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Session / token
# ---------------------------------------------------------------------------


class AuthenticationRequired(AuthError):
    status_code = 403
    code = "authentication_required"
    message = "Authentication required."


class AccountNotFound(AuthenticationRequired):
    """The token names an account the directory no longer has."""

    status_code = 401
    code = "user_not_found"
    message = "User not found."


class TokenMalformed(AuthError):
    status_code = 401
    code = "token_malformed"
    message = "Malformed token."


class TokenInvalid(AuthError):
    status_code = 401
    code = "token_invalid"
    message = "Invalid token."


class TokenExpired(AuthError):
    status_code = 401
    code = "token_expired"
    message = "Token expired."


class PlatformMismatch(AuthError):
    status_code = 403
    code = "platform_mismatch"
    message = "Token was not issued for this platform."


class UserInactive(AuthError):
    status_code = 401
    code = "user_inactive"
    message = "User is inactive."


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class CredentialError(AuthError):
    """NotFound and BadSecret share one public code so usernames cannot be enumerated."""

    status_code = 401
    code = "bad_credentials"
    message = "Invalid username or password."


class NotFound(CredentialError):
    pass


class BadSecret(CredentialError):
    pass


class Inactive(UserInactive):
    pass


# ---------------------------------------------------------------------------
# Device binding
# ---------------------------------------------------------------------------


class DeviceInfoRequired(AuthError):
    status_code = 400
    code = "device_info_required"
    message = "Device information is required for this account."


class DeviceInfoMalformed(AuthError):
    status_code = 400
    code = "device_info_malformed"
    message = "Device information header is malformed."


class DeviceInfoNotAllowed(AuthError):
    status_code = 400
    code = "device_info_not_allowed"
    message = "Administrators must not supply device information."


class DeviceMismatch(AuthError):
    status_code = 403
    code = "device_mismatch"
    message = "Device is not authorized for this account."


# ---------------------------------------------------------------------------
# Authorization / governance
# ---------------------------------------------------------------------------


class InsufficientRole(AuthError):
    status_code = 403
    code = "insufficient_role"
    message = "Insufficient role for this resource."


class OriginNotAllowed(AuthError):
    status_code = 403
    code = "origin_not_allowed"
    message = "Origin is not allowed for this account."


class RateLimited(AuthError):
    status_code = 429
    code = "rate_limited"
    message = "Too many requests."


class UpstreamFailure(AuthError):
    """The account directory could not be reached. Detail is shown only in debug mode."""

    status_code = 500
    code = "upstream_failure"
    message = "An unexpected error occurred."
