"""Unit tests for auth/session.py -- the inbound-request gate.

Each rejection state is exercised with plain RequestEvidence values and a
FakeClock, without the HTTP stack:

  NO_TOKEN -> TOKEN_LOCATED -> SIGNATURE_VERIFIED -> PLATFORM_MATCHED
  -> ACCOUNT_LOADED -> LIVE_CHECKS_PASSED

Also covers cookie-over-bearer precedence, the best-effort last-session
write and the fail-closed directory read.
"""

import json

import pytest
from sqlalchemy.exc import OperationalError

from auth.errors import (
    AccountNotFound,
    AuthenticationRequired,
    DeviceInfoRequired,
    DeviceMismatch,
    PlatformMismatch,
    TokenExpired,
    TokenInvalid,
    TokenMalformed,
    UpstreamFailure,
    UserInactive,
)
from auth.models import Account, Platform, Role
from auth.session import Channel, RequestEvidence, SessionValidator, extract_bearer_token
from auth.tokens import TokenIssuer
from tests.conftest import ANDROID_HEADERS, WEB_HEADERS, FakeClock

DEVICE_OK = json.dumps({"deviceId": "DEV-123", "platform": "android"})


class FlakyDirectory:
    """Delegates to a real store, failing the chosen operations."""

    def __init__(self, store, fail_reads: bool = False, fail_writes: bool = False) -> None:
        self._store = store
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes

    def get_by_username(self, username):
        return self._store.get_by_username(username)

    def get_by_id(self, account_id):
        if self.fail_reads:
            raise OperationalError("SELECT", {}, Exception("database is locked"))
        return self._store.get_by_id(account_id)

    def load_roles(self, account_id):
        return self._store.load_roles(account_id)

    def record_session(self, account_id, ip, client):
        if self.fail_writes:
            raise OperationalError("UPDATE", {}, Exception("disk I/O error"))
        self._store.record_session(account_id, ip, client)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def issuer(auth_config, clock) -> TokenIssuer:
    return TokenIssuer(auth_config, clock=clock)


@pytest.fixture
def validator(auth_config, issuer, seeded) -> SessionValidator:
    store, _ids = seeded
    return SessionValidator(auth_config, issuer, store)


def _token(seeded, issuer, name: str, platform: Platform) -> str:
    store, ids = seeded
    return issuer.issue(store.get_by_id(ids[name]), platform).token


def _mobile(token: str, device: str | None = DEVICE_OK, **headers) -> RequestEvidence:
    h = {**ANDROID_HEADERS, "Authorization": f"Bearer {token}", **headers}
    if device is not None:
        h["X-Device-Info"] = device
    return RequestEvidence(headers=h, client_ip="198.51.100.4")


def _web(token: str) -> RequestEvidence:
    return RequestEvidence(headers=dict(WEB_HEADERS), cookies={"auth_token": token}, client_ip="203.0.113.9")


class TestBearerExtraction:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("Bearer abc.def.ghi", "abc.def.ghi"),
            ("bearer   abc", "abc"),
            ("Basic dXNlcjpwYXNz", ""),
            ("Bearer", ""),
            ("", ""),
        ],
    )
    def test_extract(self, value, expected) -> None:
        assert extract_bearer_token(value) == expected


class TestAccepted:
    def test_inspector_bearer(self, validator, seeded, issuer) -> None:
        store, ids = seeded
        ctx = validator.authenticate(_mobile(_token(seeded, issuer, "insp01", Platform.ANDROID)))
        assert ctx.account.id == ids["insp01"]
        assert ctx.platform is Platform.ANDROID
        assert ctx.roles == frozenset({Role.INSPECTOR})

    def test_admin_cookie(self, validator, seeded, issuer) -> None:
        _store, ids = seeded
        ctx = validator.authenticate(_web(_token(seeded, issuer, "root", Platform.WEB)))
        assert ctx.account.id == ids["root"]
        assert ctx.platform is Platform.WEB

    def test_records_last_session(self, validator, seeded, issuer) -> None:
        store, ids = seeded
        validator.authenticate(_web(_token(seeded, issuer, "root", Platform.WEB)))
        account = store.get_by_id(ids["root"])
        assert account.last_login is not None
        assert account.last_login_ip == "203.0.113.9"
        assert "Mozilla" in account.last_login_device

    def test_cookie_wins_over_bearer(self, validator, seeded, issuer) -> None:
        token = _token(seeded, issuer, "root", Platform.WEB)
        evidence = RequestEvidence(
            headers={**WEB_HEADERS, "Authorization": "Bearer " + "x" * 150},
            cookies={"auth_token": token},
        )
        assert validator.locate_token(evidence) == (token, Channel.COOKIE)
        assert validator.authenticate(evidence).account.username == "root"

    def test_write_failure_does_not_reject(self, auth_config, issuer, seeded) -> None:
        store, ids = seeded
        validator = SessionValidator(auth_config, issuer, FlakyDirectory(store, fail_writes=True))
        ctx = validator.authenticate(_web(_token(seeded, issuer, "root", Platform.WEB)))
        assert ctx.account.id == ids["root"]


class TestRejections:
    def test_no_token(self, validator) -> None:
        with pytest.raises(AuthenticationRequired) as exc_info:
            validator.authenticate(RequestEvidence(headers=dict(WEB_HEADERS)))
        assert exc_info.value.status_code == 403

    @pytest.mark.parametrize("length", [50, 99, 2001])
    def test_length_band(self, validator, length) -> None:
        with pytest.raises(TokenMalformed):
            validator.authenticate(RequestEvidence(headers={"Authorization": "Bearer " + "a" * length}))

    def test_bad_signature(self, validator) -> None:
        with pytest.raises(TokenInvalid):
            validator.authenticate(RequestEvidence(headers={"Authorization": "Bearer " + "a" * 150}))

    def test_expired(self, validator, seeded, issuer, clock) -> None:
        token = _token(seeded, issuer, "insp01", Platform.ANDROID)
        clock.advance(7200)
        with pytest.raises(TokenExpired):
            validator.authenticate(_mobile(token))

    def test_platform_mismatch(self, validator, seeded, issuer) -> None:
        token = _token(seeded, issuer, "insp01", Platform.ANDROID)
        with pytest.raises(PlatformMismatch):
            validator.authenticate(_mobile(token, **{"X-Platform": "ios"}))

    def test_web_token_replayed_from_mobile(self, validator, seeded, issuer) -> None:
        token = _token(seeded, issuer, "root", Platform.WEB)
        with pytest.raises(PlatformMismatch):
            validator.authenticate(_mobile(token, device=None))

    def test_account_gone(self, validator, issuer) -> None:
        ghost = Account(id=999, username="gone", email="gone@example.org", roles=(Role.ADMIN,))
        with pytest.raises(AccountNotFound) as exc_info:
            validator.authenticate(_web(issuer.issue(ghost, Platform.WEB).token))
        assert exc_info.value.status_code == 401

    def test_inactive(self, validator, seeded, issuer) -> None:
        with pytest.raises(UserInactive):
            validator.authenticate(_web(_token(seeded, issuer, "ghost", Platform.WEB)))

    def test_deactivated_after_issue(self, validator, seeded, issuer) -> None:
        store, ids = seeded
        token = _token(seeded, issuer, "insp01", Platform.ANDROID)
        store.set_active(ids["insp01"], False)
        with pytest.raises(UserInactive):
            validator.authenticate(_mobile(token))

    def test_inspector_without_device_header(self, validator, seeded, issuer) -> None:
        with pytest.raises(DeviceInfoRequired):
            validator.authenticate(_mobile(_token(seeded, issuer, "insp01", Platform.ANDROID), device=None))

    def test_inspector_wrong_device_header(self, validator, seeded, issuer) -> None:
        token = _token(seeded, issuer, "insp01", Platform.ANDROID)
        with pytest.raises(DeviceMismatch):
            validator.authenticate(_mobile(token, device=json.dumps({"deviceId": "DEV-999"})))

    def test_directory_read_failure(self, auth_config, issuer, seeded) -> None:
        store, _ids = seeded
        token = _token(seeded, issuer, "root", Platform.WEB)
        validator = SessionValidator(auth_config, issuer, FlakyDirectory(store, fail_reads=True))
        with pytest.raises(UpstreamFailure) as exc_info:
            validator.authenticate(_web(token))
        assert exc_info.value.status_code == 500
