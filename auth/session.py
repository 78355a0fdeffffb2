"""
auth/session.py -- The inbound-request gate.

SessionValidator.authenticate() walks a fixed sequence of states and either
returns an AuthContext or raises an AuthError. Any state can reject; nothing
defaults to allow.

  NO_TOKEN            cookie "auth_token" first (web), else Authorization: Bearer (mobile)
  TOKEN_LOCATED       length band check before any crypto
  SIGNATURE_VERIFIED  jose signature + exp against the injected clock
  PLATFORM_MATCHED    platform resolved from THIS request == token's platform claim
  ACCOUNT_LOADED      directory read by the token's sub; must exist and be active
  LIVE_CHECKS_PASSED  device binding (inspectors only) and last-session stamp

The last-session write is advisory telemetry: its failure is logged and the
request proceeds. A failed directory *read* is UpstreamFailure (500), never a
pass.

The validator is pure apart from that write and the single directory read; it
keeps no state between requests, so no locking is needed.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError

from auth.device import DEVICE_HEADER, check_request
from auth.errors import (
    AccountNotFound,
    AuthenticationRequired,
    AuthError,
    PlatformMismatch,
    TokenMalformed,
    UpstreamFailure,
    UserInactive,
)
from auth.models import AuthContext
from auth.platform import USER_AGENT_HEADER, header_value, resolve_platform
from auth.policy import COOKIE_NAME, AuthConfig
from auth.store import AccountDirectory
from auth.tokens import TokenIssuer

logger = logging.getLogger("inspectgate.session")


class SessionState(str, Enum):
    NO_TOKEN = "no_token"
    TOKEN_LOCATED = "token_located"
    SIGNATURE_VERIFIED = "signature_verified"
    PLATFORM_MATCHED = "platform_matched"
    ACCOUNT_LOADED = "account_loaded"
    LIVE_CHECKS_PASSED = "live_checks_passed"


class Channel(str, Enum):
    COOKIE = "cookie"
    BEARER = "bearer"


@dataclass(frozen=True)
class RequestEvidence:
    """The parts of an HTTP request the gate is allowed to look at."""

    headers: Mapping[str, str] = field(default_factory=dict)
    cookies: Mapping[str, str] = field(default_factory=dict)
    client_ip: str | None = None

    @classmethod
    def from_request(cls, request) -> RequestEvidence:
        return cls(
            headers=request.headers,
            cookies=request.cookies,
            client_ip=request.client.host if request.client else None,
        )


def extract_bearer_token(authorization: str) -> str:
    """Return the token from an 'Authorization: Bearer <token>' value, or ''."""
    parts = (authorization or "").strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1].strip()


class SessionValidator:
    def __init__(self, config: AuthConfig, issuer: TokenIssuer, directory: AccountDirectory) -> None:
        self._config = config
        self._issuer = issuer
        self._directory = directory

    def locate_token(self, evidence: RequestEvidence) -> tuple[str, Channel] | None:
        cookie = evidence.cookies.get(COOKIE_NAME)
        if cookie:
            return cookie, Channel.COOKIE
        bearer = extract_bearer_token(header_value(evidence.headers, "authorization"))
        if bearer:
            return bearer, Channel.BEARER
        return None

    def authenticate(self, evidence: RequestEvidence) -> AuthContext:
        """Run the full gate. Returns the typed context or raises AuthError."""
        state = SessionState.NO_TOKEN
        try:
            located = self.locate_token(evidence)
            if located is None:
                raise AuthenticationRequired()
            token, channel = located
            state = SessionState.TOKEN_LOCATED

            if not self._config.token_min_length <= len(token) <= self._config.token_max_length:
                raise TokenMalformed()

            claims = self._issuer.verify(token)
            state = SessionState.SIGNATURE_VERIFIED

            platform = resolve_platform(evidence.headers)
            if platform is not claims.platform:
                raise PlatformMismatch(
                    detail=f"token platform {claims.platform.value}, request platform {platform.value}"
                )
            state = SessionState.PLATFORM_MATCHED

            try:
                account = self._directory.get_by_id(claims.account_id)
            except SQLAlchemyError as exc:
                raise UpstreamFailure(detail=str(exc)) from exc
            if account is None:
                raise AccountNotFound()
            if not account.is_active:
                raise UserInactive()
            state = SessionState.ACCOUNT_LOADED

            check_request(account, header_value(evidence.headers, DEVICE_HEADER) or None)
            state = SessionState.LIVE_CHECKS_PASSED
        except AuthError as exc:
            logger.info("Session rejected at %s: %s", state.value, exc.code)
            raise

        self._record_session(account.id, evidence)
        logger.debug("Session accepted for account %s via %s (%s)", account.id, channel.value, platform.value)
        return AuthContext(account=account, platform=platform, roles=frozenset(account.roles))

    def _record_session(self, account_id: int, evidence: RequestEvidence) -> None:
        try:
            self._directory.record_session(
                account_id,
                evidence.client_ip,
                header_value(evidence.headers, USER_AGENT_HEADER) or None,
            )
        except SQLAlchemyError:
            logger.warning("Could not record last session for account %s", account_id, exc_info=True)
