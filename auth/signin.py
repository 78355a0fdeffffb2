"""
auth/signin.py -- Sign-in orchestration.

  credentials -> device binding -> platform -> channel/origin policy -> token

On a request that already resolves to android or ios, the platform named in
the device descriptor (if any) is the one the token is bound to.

Delivery (cookie vs. body) is the route's job; this module decides *whether*
the caller gets a token and for which platform.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from auth.credentials import validate_credentials
from auth.device import DeviceDescriptor, check_sign_in
from auth.errors import InsufficientRole, OriginNotAllowed, PlatformMismatch
from auth.models import Account, IssuedToken, Platform
from auth.platform import USER_AGENT_HEADER, header_value, resolve_platform
from auth.policy import AuthConfig
from auth.session import RequestEvidence
from auth.store import AccountDirectory
from auth.tokens import TokenIssuer

logger = logging.getLogger("inspectgate.auth")


@dataclass(frozen=True)
class SignInResult:
    account: Account
    platform: Platform
    issued: IssuedToken


def sign_in(
    directory: AccountDirectory,
    issuer: TokenIssuer,
    config: AuthConfig,
    username: str,
    password: str,
    device: DeviceDescriptor | None,
    evidence: RequestEvidence,
) -> SignInResult:
    """Authenticate a sign-in request and mint its token. Raises AuthError on rejection."""
    account = validate_credentials(directory, username, password)

    role = account.primary_role
    if role is None:
        raise InsufficientRole("Account has no role assigned.")
    policy = config.policy_for(role)

    check_sign_in(account, device)

    platform = resolve_platform(evidence.headers)
    # descriptor platform wins once the request is known to be mobile
    if platform.is_mobile and device is not None and device.platform is not None:
        platform = device.platform
    if policy.mobile_only and not platform.is_mobile:
        raise PlatformMismatch("This account can only sign in from the mobile application.")

    origin = header_value(evidence.headers, "origin") or None
    if not policy.origin_allowed(origin):
        raise OriginNotAllowed(detail=origin)

    issued = issuer.issue(account, platform)

    try:
        directory.record_session(account.id, evidence.client_ip, header_value(evidence.headers, USER_AGENT_HEADER) or None)
    except SQLAlchemyError:
        logger.warning("Could not record last session for account %s", account.id, exc_info=True)

    logger.info("Account %s signed in (role=%s, platform=%s)", account.id, role.value, platform.value)
    return SignInResult(account=account, platform=platform, issued=issued)
