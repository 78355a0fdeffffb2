"""
auth/tokens.py -- JWT issuance/verification, password hashing, cookie helpers.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry sub (account id), roles, platform,
       iat and exp. The lifetime comes from the account's primary role policy;
       there is no per-account override. The signing key comes from the
       AuthConfig handed to TokenIssuer at startup.

       Expiry is checked here against an injectable clock rather than inside
       jose, so the accept/reject boundary is exact and testable: a token is
       valid while now < exp.

  Passwords: bcrypt used directly (no passlib wrapper). _DUMMY_HASH lets
       credential checks run bcrypt even for unknown usernames so response
       time does not reveal which usernames exist.

  Cookies: auth_token, httpOnly, SameSite=Strict, path "/", Secure per
       AuthConfig.secure_cookies, max_age = token lifetime. Cleared with the
       same flags.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

import bcrypt
from jose import JWTError, jwt

from auth.errors import InsufficientRole, TokenExpired, TokenInvalid
from auth.models import Account, IssuedToken, Platform, Role, TokenClaims
from auth.policy import COOKIE_NAME, AuthConfig

logger = logging.getLogger("inspectgate.auth")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt truncates at 72 bytes; the API layer caps password length well
    below that.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    bcrypt.checkpw compares in constant time. A corrupt stored hash is a
    failed match, not a server error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at import so the first unknown-username attempt costs the same
# as every later one.
_DUMMY_HASH: str = hash_password("inspectgate_timing_dummy")


# ---------------------------------------------------------------------------
# JWT issue / verify
# ---------------------------------------------------------------------------


class TokenIssuer:
    """Mints and verifies signed session tokens.

    Usage:
        issuer = TokenIssuer(AuthConfig.from_settings(get_settings()))
        issued = issuer.issue(account, Platform.ANDROID)
        claims = issuer.verify(issued.token)
    """

    def __init__(self, config: AuthConfig, clock: Clock = utcnow) -> None:
        self._config = config
        self._clock = clock

    def lifetime_for(self, account: Account) -> int:
        role = account.primary_role
        if role is None:
            raise InsufficientRole("Account has no role assigned.")
        return self._config.policy_for(role).token_lifetime

    def issue(self, account: Account, platform: Platform) -> IssuedToken:
        """Sign a token for account on platform, with the primary role's lifetime."""
        if account.id is None:
            raise ValueError("Cannot issue a token for an unsaved account.")
        lifetime = self.lifetime_for(account)
        issued_at = int(self._clock().timestamp())
        claims = TokenClaims(
            account_id=account.id,
            roles=tuple(account.roles),
            platform=platform,
            issued_at=issued_at,
            expires_at=issued_at + lifetime,
        )
        payload = {
            "sub": str(claims.account_id),
            "roles": [r.value for r in claims.roles],
            "platform": claims.platform.value,
            "iat": claims.issued_at,
            "exp": claims.expires_at,
        }
        token = jwt.encode(payload, self._config.secret_key, algorithm=self._config.algorithm)
        logger.debug("Issued token for account %s (platform=%s, ttl=%ds)", account.id, platform.value, lifetime)
        return IssuedToken(token=token, expires_in=lifetime, claims=claims)

    def verify(self, token: str) -> TokenClaims:
        """Verify signature and expiry and return the typed claims.

        Raises TokenInvalid for any signature, parse or claim-shape failure and
        TokenExpired once now >= exp.
        """
        try:
            payload = jwt.decode(
                token,
                self._config.secret_key,
                algorithms=[self._config.algorithm],
                options={"verify_exp": False, "verify_iat": False},
            )
        except JWTError as exc:
            raise TokenInvalid() from exc

        try:
            claims = TokenClaims(
                account_id=int(payload["sub"]),
                roles=tuple(Role(r) for r in payload["roles"]),
                platform=Platform(payload["platform"]),
                issued_at=int(payload["iat"]),
                expires_at=int(payload["exp"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenInvalid() from exc

        if self._clock().timestamp() >= claims.expires_at:
            raise TokenExpired()
        return claims


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, max_age: int, config: AuthConfig) -> None:
    """Write the token as the web-channel session cookie."""
    response.set_cookie(
        COOKIE_NAME,
        value=token,
        max_age=max_age,
        path="/",
        httponly=True,
        samesite="strict",
        secure=config.secure_cookies,
    )


def clear_auth_cookie(response, config: AuthConfig) -> None:
    """Expire the session cookie with the same flags it was set with."""
    response.delete_cookie(
        COOKIE_NAME,
        path="/",
        httponly=True,
        samesite="strict",
        secure=config.secure_cookies,
    )
