"""Unit tests for auth/credentials.py -- username/password verification.

Key properties:
- Unknown username, inactive account and wrong password are distinct
  internal outcomes but NotFound and BadSecret share one public code
- bcrypt runs exactly once per attempt, including for unknown usernames
- An inactive account is reported as inactive even with the right password
"""

import pytest
from sqlalchemy.exc import OperationalError

import auth.credentials as credentials_module
from auth.credentials import validate_credentials
from auth.errors import BadSecret, CredentialError, Inactive, NotFound, UpstreamFailure, UserInactive
from auth.models import Role
from tests.conftest import GHOST_PASSWORD, INSP_PASSWORD, ROOT_PASSWORD


class TestValidateCredentials:
    def test_valid_admin(self, seeded) -> None:
        store, ids = seeded
        account = validate_credentials(store, "root", ROOT_PASSWORD)
        assert account.id == ids["root"]
        assert account.roles == (Role.ADMIN,)

    def test_valid_inspector_loads_binding(self, seeded) -> None:
        store, _ids = seeded
        account = validate_credentials(store, "insp01", INSP_PASSWORD)
        assert account.device is not None
        assert account.device.device_id == "DEV-123"

    def test_unknown_username(self, seeded) -> None:
        store, _ids = seeded
        with pytest.raises(NotFound):
            validate_credentials(store, "nobody", "whatever")

    def test_username_is_case_sensitive(self, seeded) -> None:
        store, _ids = seeded
        with pytest.raises(NotFound):
            validate_credentials(store, "ROOT", ROOT_PASSWORD)

    def test_wrong_password(self, seeded) -> None:
        store, _ids = seeded
        with pytest.raises(BadSecret):
            validate_credentials(store, "root", "wrong-password")

    def test_inactive_with_right_password(self, seeded) -> None:
        store, _ids = seeded
        with pytest.raises(Inactive):
            validate_credentials(store, "ghost", GHOST_PASSWORD)

    def test_inactive_with_wrong_password_still_inactive(self, seeded) -> None:
        store, _ids = seeded
        with pytest.raises(Inactive):
            validate_credentials(store, "ghost", "wrong-password")


class TestPublicErrors:
    def test_not_found_and_bad_secret_look_identical(self) -> None:
        nf, bs = NotFound(), BadSecret()
        assert isinstance(nf, CredentialError) and isinstance(bs, CredentialError)
        assert (nf.status_code, nf.code, nf.message) == (bs.status_code, bs.code, bs.message)
        assert nf.status_code == 401

    def test_inactive_is_distinct(self) -> None:
        err = Inactive()
        assert isinstance(err, UserInactive)
        assert err.code == "user_inactive"
        assert err.code != NotFound().code


class TestTimingEqualization:
    @pytest.fixture
    def calls(self, monkeypatch) -> list:
        seen = []
        real = credentials_module.verify_password

        def counting(plain, hashed):
            seen.append(hashed)
            return real(plain, hashed)

        monkeypatch.setattr(credentials_module, "verify_password", counting)
        return seen

    def test_unknown_username_runs_bcrypt_once(self, seeded, calls) -> None:
        store, _ids = seeded
        with pytest.raises(NotFound):
            validate_credentials(store, "nobody", "whatever")
        assert calls == [credentials_module._DUMMY_HASH]

    def test_known_username_runs_bcrypt_once(self, seeded, calls) -> None:
        store, _ids = seeded
        with pytest.raises(BadSecret):
            validate_credentials(store, "root", "wrong-password")
        assert len(calls) == 1
        assert calls[0] != credentials_module._DUMMY_HASH

    def test_inactive_runs_bcrypt_once(self, seeded, calls) -> None:
        store, _ids = seeded
        with pytest.raises(Inactive):
            validate_credentials(store, "ghost", GHOST_PASSWORD)
        assert len(calls) == 1


class TestDirectoryFailure:
    def test_read_failure_is_upstream(self) -> None:
        class BrokenDirectory:
            def get_by_username(self, username):
                raise OperationalError("SELECT", {}, Exception("database is locked"))

        with pytest.raises(UpstreamFailure) as exc_info:
            validate_credentials(BrokenDirectory(), "root", ROOT_PASSWORD)
        assert exc_info.value.status_code == 500
        assert exc_info.value.code == "upstream_failure"
