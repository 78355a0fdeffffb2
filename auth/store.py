"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_account is the mapper. Route, session and CLI code never touch SQL.

The auth core consumes this store only through the AccountDirectory protocol
(lookups, role load and the last-session write). Provisioning helpers
(create_account, set_active, list_accounts) belong to the administrative
surface and enforce the role/device invariant at mutation time.

Security:
  All queries use bound parameters. No f-strings in SQL.
  hashed_password is mapped onto Account but never serialized by the API.

Schema:
  accounts       -- identity, contact, secret hash, active flag, device binding,
                    last-session metadata.
  account_roles  -- (account_id, role, position). position 0 is the primary role.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine

from auth.device import check_binding_invariant
from auth.models import Account, DeviceBinding, Platform, Role

logger = logging.getLogger("inspectgate.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(20), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("device_id", String(255), unique=True),  # NULL for admins
    Column("device_platform", String(10)),  # "android" | "ios"
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
    Column("last_login_ip", String(45)),
    Column("last_login_device", Text),
)

_account_roles = Table(
    "account_roles",
    _metadata,
    Column("account_id", Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
    Column("role", String(20), nullable=False),
    Column("position", Integer, nullable=False),
    UniqueConstraint("account_id", "role"),
)


class AccountDirectory(Protocol):
    """What the auth core needs from an account store."""

    def get_by_username(self, username: str) -> Account | None: ...

    def get_by_id(self, account_id: int) -> Account | None: ...

    def load_roles(self, account_id: int) -> tuple[Role, ...]: ...

    def record_session(self, account_id: int, ip: str | None, client: str | None) -> None: ...


class DuplicateAccount(ValueError):
    """Username, email or device identifier already taken."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"The {field} is already in use.")


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block on the last-session writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities.

    Usage:
        store = AccountStore("sqlite:///inspectgate.db")
        store.create_account(Account(username="root", email="root@example.org",
                                     hashed_password=hash_password("s3cret!Pass"),
                                     roles=(Role.ADMIN,)))
        account = store.get_by_username("root")
        store.close()
    """

    def __init__(self, db_url: str = "sqlite:///inspectgate.db") -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Directory contract
    # ------------------------------------------------------------------

    def get_by_username(self, username: str) -> Account | None:
        """Exact, case-sensitive username lookup with roles loaded."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.username == username)).fetchone()
            if row is None:
                return None
            return _row_to_account(row, self._roles(conn, row.id))

    def get_by_id(self, account_id: int) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
            if row is None:
                return None
            return _row_to_account(row, self._roles(conn, row.id))

    def load_roles(self, account_id: int) -> tuple[Role, ...]:
        with self.engine.connect() as conn:
            return self._roles(conn, account_id)

    def record_session(self, account_id: int, ip: str | None, client: str | None) -> None:
        """Stamp last-session metadata. Last write wins; no ordering is promised."""
        with self.engine.connect() as conn:
            conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(last_login=_now_iso(), last_login_ip=ip, last_login_device=client)
            )
            conn.commit()

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    def has_accounts(self) -> bool:
        with self.engine.connect() as conn:
            count = conn.execute(select(func.count()).select_from(_accounts)).scalar()
        return (count or 0) > 0

    def create_account(self, account: Account) -> int:
        """Insert an account with its ordered roles and return the new id.

        Raises ValueError if the role/device invariant does not hold and
        DuplicateAccount if username, email or device id is taken.
        """
        if not account.roles:
            raise ValueError("An account needs at least one role.")
        if not account.hashed_password:
            raise ValueError("An account needs a password hash.")
        check_binding_invariant(account.roles, account.device)

        with self.engine.connect() as conn:
            checks = [
                ("username", _accounts.c.username == account.username),
                ("email", _accounts.c.email == account.email),
            ]
            if account.device is not None:
                checks.append(("device", _accounts.c.device_id == account.device.device_id))
            for field, clause in checks:
                if conn.execute(select(_accounts.c.id).where(clause)).first() is not None:
                    raise DuplicateAccount(field)

            result = conn.execute(
                _accounts.insert().values(
                    username=account.username,
                    email=account.email,
                    hashed_password=account.hashed_password,
                    is_active=1 if account.is_active else 0,
                    device_id=account.device.device_id if account.device else None,
                    device_platform=account.device.platform.value if account.device else None,
                    created_at=_now_iso(),
                )
            )
            account_id = result.inserted_primary_key[0]
            conn.execute(
                _account_roles.insert(),
                [
                    {"account_id": account_id, "role": role.value, "position": position}
                    for position, role in enumerate(dict.fromkeys(account.roles))
                ],
            )
            conn.commit()
        logger.info("Provisioned account %s (roles=%s)", account.username, ",".join(r.value for r in account.roles))
        return account_id

    def list_accounts(self) -> list[Account]:
        """Return all accounts ordered by username."""
        with self.engine.connect() as conn:
            rows = conn.execute(_accounts.select().order_by(_accounts.c.username)).fetchall()
            return [_row_to_account(r, self._roles(conn, r.id)) for r in rows]

    def set_active(self, account_id: int, active: bool) -> bool:
        """Activate or deactivate an account. Returns False if it does not exist."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update().where(_accounts.c.id == account_id).values(is_active=1 if active else 0)
            )
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _roles(conn, account_id: int) -> tuple[Role, ...]:
        rows = conn.execute(
            select(_account_roles.c.role)
            .where(_account_roles.c.account_id == account_id)
            .order_by(_account_roles.c.position)
        ).fetchall()
        return tuple(Role(r.role) for r in rows)


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row, roles: tuple[Role, ...]) -> Account:
    device = None
    if row.device_id:
        device = DeviceBinding(device_id=row.device_id, platform=Platform(row.device_platform))
    return Account(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        is_active=bool(row.is_active),
        roles=roles,
        device=device,
        created_at=row.created_at,
        last_login=row.last_login,
        last_login_ip=row.last_login_ip,
        last_login_device=row.last_login_device,
    )
