"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

get_auth_context() runs the SessionValidator against the current request and
returns a typed AuthContext. require(predicate) wraps it with the role gate.
Both raise AuthError subclasses; api/main.py renders them.

FastAPI caches a dependency per request, so a route that declares several
role-gated parameters still validates the session once.

The validator and directory are built at startup and live on app.state; this
module never reads configuration itself.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.models import AuthContext
from auth.roles import ADMIN_ONLY, ADMIN_OR_INSPECTOR, INSPECTOR_ONLY, RolePredicate, authorize
from auth.session import RequestEvidence, SessionValidator


def get_auth_context(request: Request) -> AuthContext:
    """Require a valid session. Use as a FastAPI dependency:

    @router.get("/protected")
    def route(ctx: AuthContext = Depends(get_auth_context)): ...
    """
    validator: SessionValidator = request.app.state.session_validator
    return validator.authenticate(RequestEvidence.from_request(request))


def require(predicate: RolePredicate):
    """Build a dependency that admits only sessions whose roles satisfy predicate."""

    def dependency(request: Request, ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        return authorize(ctx, predicate, request.app.state.account_store)

    dependency.__name__ = f"require_{predicate.describe().replace(' ', '_')}"
    return dependency


require_admin = require(ADMIN_ONLY)
require_inspector = require(INSPECTOR_ONLY)
require_admin_or_inspector = require(ADMIN_OR_INSPECTOR)
