"""
api/routes/dashboard.py -- Role-gated landing endpoints, one per role predicate.

  GET /api/dashboard/admin      admin
  GET /api/dashboard/inspector  inspector
  GET /api/dashboard/shared     admin or inspector
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.limiter import limit_general
from api.models import DashboardResponse
from auth.dependencies import require_admin, require_admin_or_inspector, require_inspector
from auth.models import AuthContext

router = APIRouter(prefix="/dashboard", dependencies=[Depends(limit_general)])


def _payload(message: str, ctx: AuthContext) -> DashboardResponse:
    return DashboardResponse(
        message=message,
        username=ctx.account.username,
        roles=sorted(ctx.roles, key=lambda r: r.value),
        platform=ctx.platform,
    )


@router.get("/admin", response_model=DashboardResponse)
def admin_dashboard(ctx: AuthContext = Depends(require_admin)) -> DashboardResponse:
    return _payload("Administrator dashboard", ctx)


@router.get("/inspector", response_model=DashboardResponse)
def inspector_dashboard(ctx: AuthContext = Depends(require_inspector)) -> DashboardResponse:
    return _payload("Inspector dashboard", ctx)


@router.get("/shared", response_model=DashboardResponse)
def shared_dashboard(ctx: AuthContext = Depends(require_admin_or_inspector)) -> DashboardResponse:
    return _payload("Shared content for administrators and inspectors", ctx)
