"""
api/routes/auth.py -- Sign-in, sign-out and identity endpoints.

Routes:
  POST /api/auth/signin   -- password (+ device) sign-in; login tier
  POST /api/auth/signout  -- clears the cookie on web, acknowledges on mobile
  GET  /api/auth/me       -- the caller's identity (requires a session)

Dual-channel delivery:
  web      token only in the auth_token cookie; body carries no token
  android  token in the body (access_token + expires_in); no cookie
  ios      same as android

Sign-out has no server-side effect on mobile: tokens stay valid until they
expire. There is no revocation list.

Sign-in and sign-out responses carry Cache-Control: no-store.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limit_general, limit_login
from api.models import AccountResponse, MeResponse, MessageResponse, SignInRequest, SignInResponse
from auth.dependencies import get_auth_context
from auth.models import AuthContext, Role
from auth.platform import resolve_platform
from auth.session import RequestEvidence
from auth.signin import sign_in
from auth.tokens import clear_auth_cookie, set_auth_cookie

router = APIRouter()


@router.post("/auth/signin", response_model=SignInResponse, dependencies=[Depends(limit_login)])
def signin(request: Request, body: SignInRequest) -> JSONResponse:
    """Authenticate and deliver a token on the channel matching the client platform."""
    state = request.app.state
    result = sign_in(
        state.account_store,
        state.token_issuer,
        state.auth_config,
        body.username,
        body.password,
        body.device_info,
        RequestEvidence.from_request(request),
    )
    account = result.account
    payload = SignInResponse(
        id=account.id,
        username=account.username,
        email=account.email,
        roles=list(account.roles),
        requires_device_info=account.has_role(Role.INSPECTOR),
        platform=result.platform,
    )

    if result.platform.is_mobile:
        payload.access_token = result.issued.token
        payload.token_type = "bearer"  # noqa: S105 -- OAuth token type, not a password
        payload.expires_in = result.issued.expires_in
        resp = JSONResponse(status_code=200, content=payload.model_dump(mode="json"))
    else:
        resp = JSONResponse(status_code=200, content=payload.model_dump(mode="json", exclude_none=True))
        set_auth_cookie(resp, result.issued.token, result.issued.expires_in, state.auth_config)

    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/signout", response_model=MessageResponse, dependencies=[Depends(limit_general)])
def signout(request: Request) -> JSONResponse:
    """End the session on this client.

    Public: clearing a cookie needs no prior auth, and a mobile client that
    lost its token must still be able to call this.
    """
    resp = JSONResponse(content=MessageResponse(message="Signed out.").model_dump())
    if not resolve_platform(request.headers).is_mobile:
        clear_auth_cookie(resp, request.app.state.auth_config)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/me", response_model=MeResponse, dependencies=[Depends(limit_general)])
def me(ctx: AuthContext = Depends(get_auth_context)) -> MeResponse:
    """Return the authenticated caller's profile."""
    return MeResponse(account=AccountResponse.from_account(ctx.account), platform=ctx.platform)
