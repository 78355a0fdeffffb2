"""
api/routes/users.py -- Administrative account provisioning.

Routes (admin only, critical tier):
  POST  /api/users                   -- create an account (device binding for inspectors)
  GET   /api/users                   -- list accounts
  PATCH /api/users/{id}/activate     -- re-enable an account
  PATCH /api/users/{id}/deactivate   -- disable an account (not your own)

This is the only place device bindings are created over HTTP. The store
re-checks the role/device invariant and uniqueness of username, email and
device id.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from api.limiter import limit_critical
from api.models import AccountCreate, AccountResponse
from auth.dependencies import require_admin
from auth.models import Account, AuthContext, DeviceBinding
from auth.store import AccountStore, DuplicateAccount
from auth.tokens import hash_password

router = APIRouter(dependencies=[Depends(limit_critical)])


@router.post("/users", response_model=AccountResponse, status_code=201)
def create_account(
    request: Request,
    body: AccountCreate,
    ctx: AuthContext = Depends(require_admin),
) -> AccountResponse:
    """Provision an account. Inspectors must come with deviceInfo including a platform."""
    store: AccountStore = request.app.state.account_store

    device = None
    if body.device_info is not None:
        if body.device_info.platform is None:
            raise HTTPException(
                status_code=400,
                detail={"code": "invalid_device", "message": "deviceInfo.platform must be 'android' or 'ios'."},
            )
        device = DeviceBinding(device_id=body.device_info.device_id, platform=body.device_info.platform)

    account = Account(
        username=body.username,
        email=body.email,
        hashed_password=hash_password(body.password),
        roles=tuple(dict.fromkeys(body.roles)),
        device=device,
    )
    try:
        account_id = store.create_account(account)
    except DuplicateAccount as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": str(exc), "detail": exc.field},
        ) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_account", "message": str(exc)},
        ) from exc

    return _to_response(store.get_by_id(account_id))


@router.get("/users", response_model=list[AccountResponse])
def list_accounts(request: Request, ctx: AuthContext = Depends(require_admin)) -> list[AccountResponse]:
    store: AccountStore = request.app.state.account_store
    return [AccountResponse.from_account(a) for a in store.list_accounts()]


@router.patch("/users/{account_id}/activate", response_model=AccountResponse)
def activate_account(request: Request, account_id: int, ctx: AuthContext = Depends(require_admin)) -> AccountResponse:
    return _set_active(request, account_id, True)


@router.patch("/users/{account_id}/deactivate", response_model=AccountResponse)
def deactivate_account(
    request: Request, account_id: int, ctx: AuthContext = Depends(require_admin)
) -> AccountResponse:
    """Disable an account. Its outstanding tokens fail at the next request (UserInactive)."""
    if account_id == ctx.account.id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_deactivation", "message": "You cannot deactivate your own account."},
        )
    return _set_active(request, account_id, False)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _set_active(request: Request, account_id: int, active: bool) -> AccountResponse:
    store: AccountStore = request.app.state.account_store
    if not store.set_active(account_id, active):
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "User not found."})
    return _to_response(store.get_by_id(account_id))


def _to_response(account: Account | None) -> AccountResponse:
    if account is None:
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "User not found after write."},
        )
    return AccountResponse.from_account(account)
