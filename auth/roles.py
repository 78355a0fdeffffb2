"""
auth/roles.py -- Role predicates and the authorization decision.

A RolePredicate is a closed "has any of these roles" test over Role values.
Building one from an unknown role name raises ValueError at import time of
the route module, not at request time.

authorize() never treats an empty role set as "no roles": it reloads from the
directory first and only then decides.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from sqlalchemy.exc import SQLAlchemyError

from auth.errors import InsufficientRole, UpstreamFailure
from auth.models import AuthContext, Role
from auth.store import AccountDirectory

logger = logging.getLogger("inspectgate.auth")


@dataclass(frozen=True)
class RolePredicate:
    any_of: frozenset[Role]

    def __post_init__(self) -> None:
        if not self.any_of:
            raise ValueError("A role predicate needs at least one role.")
        object.__setattr__(self, "any_of", frozenset(Role(r) for r in self.any_of))

    def __call__(self, roles) -> bool:
        return not self.any_of.isdisjoint(roles)

    def describe(self) -> str:
        return " or ".join(sorted(r.value for r in self.any_of))


def has_role(role: Role | str) -> RolePredicate:
    return RolePredicate(frozenset({Role(role)}))


def has_any_role(*roles: Role | str) -> RolePredicate:
    return RolePredicate(frozenset(Role(r) for r in roles))


def authorize(ctx: AuthContext, predicate: RolePredicate, directory: AccountDirectory) -> AuthContext:
    """Return ctx (with roles loaded) if it satisfies predicate, else raise InsufficientRole."""
    if not ctx.roles:
        try:
            roles = frozenset(directory.load_roles(ctx.account.id))
        except SQLAlchemyError as exc:
            raise UpstreamFailure(detail=str(exc)) from exc
        ctx = replace(ctx, roles=roles)

    if not predicate(ctx.roles):
        logger.info("Account %s lacks role %s", ctx.account.id, predicate.describe())
        raise InsufficientRole(f"Requires role: {predicate.describe()}.")
    return ctx


ADMIN_ONLY = has_role(Role.ADMIN)
INSPECTOR_ONLY = has_role(Role.INSPECTOR)
ADMIN_OR_INSPECTOR = has_any_role(Role.ADMIN, Role.INSPECTOR)
