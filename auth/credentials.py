"""
auth/credentials.py -- Username/password verification against the account directory.

validate_credentials() always runs bcrypt exactly once, against the stored
hash or against _DUMMY_HASH for unknown usernames, so the response time does
not reveal which usernames exist. Failure order: NotFound, Inactive, BadSecret.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from auth.errors import BadSecret, Inactive, NotFound, UpstreamFailure
from auth.models import Account
from auth.store import AccountDirectory
from auth.tokens import _DUMMY_HASH, verify_password

logger = logging.getLogger("inspectgate.auth")


def validate_credentials(directory: AccountDirectory, username: str, password: str) -> Account:
    """Return the account for a valid username/password pair.

    Raises NotFound, Inactive or BadSecret. NotFound and BadSecret render the
    same public error. A directory read failure is UpstreamFailure.
    """
    try:
        account = directory.get_by_username(username)
    except SQLAlchemyError as exc:
        raise UpstreamFailure(detail=str(exc)) from exc
    if account is None or not account.hashed_password:
        # Equalize timing -- do NOT return before running bcrypt
        verify_password(password, _DUMMY_HASH)
        logger.info("Sign-in rejected: unknown username")
        raise NotFound()

    password_ok = verify_password(password, account.hashed_password)
    if not account.is_active:
        logger.info("Sign-in rejected: account %s inactive", account.id)
        raise Inactive()
    if not password_ok:
        logger.info("Sign-in rejected: bad password for account %s", account.id)
        raise BadSecret()
    return account
