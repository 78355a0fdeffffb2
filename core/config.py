"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the inspection gateway happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
at startup and pass what you need down.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Dev mode generates a SECRET_KEY with a warning, production mode
      refuses to start without one. SECURE_COOKIES follows the mode unless set.

Request-handling code never reads Settings. api/main.py turns Settings into an
auth.policy.AuthConfig once during lifespan startup and hands that object to
the token issuer and the session validator.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("inspectgate.config")


def split_csv(value: str) -> list[str]:
    """Split a comma-separated env value into a list, dropping blanks."""
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (DEBUG=true still required for the
    secret to be generated).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = "sqlite:///inspectgate.db"
    allowed_hosts: str = "localhost,127.0.0.1,*.localhost"
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # None means "follow the mode": secure in production, plain in debug.
    secure_cookies: Optional[bool] = None

    admin_token_expire_seconds: int = 3600
    inspector_token_expire_seconds: int = 7200

    # Comma separated. Empty in production unless configured explicitly.
    admin_allowed_origins: str = ""
    inspector_allowed_origins: str = ""

    token_min_length: int = 100
    token_max_length: int = 2000

    # ------------------------------------------------------------------
    # Rate limiting (limits/slowapi notation)
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/15 minutes"
    critical_rate_limit: str = "30/minute"
    general_rate_limit: str = "50/minute"
    rate_limit_storage_uri: str = "memory://"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if SECRET_KEY is missing. Rotating
            the key invalidates every outstanding token, so it must be stable.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Tokens will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode: it signs every session token. "
                    "Set it in the environment or .env file, or set DEBUG=true for local development."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def resolve_mode_defaults(self) -> "Settings":
        """Fill mode-dependent defaults for cookie security, dev hosts and dev origins."""
        if self.secure_cookies is None:
            self.secure_cookies = not self.debug
        if self.debug:
            if "testserver" not in split_csv(self.allowed_hosts):
                self.allowed_hosts = ",".join(split_csv(self.allowed_hosts) + ["testserver"])
            if not self.admin_allowed_origins:
                self.admin_allowed_origins = "http://localhost:3000"
            if not self.inspector_allowed_origins:
                self.inspector_allowed_origins = "capacitor://localhost"
        if self.token_min_length < 1 or self.token_max_length < self.token_min_length:
            raise ValueError("TOKEN_MIN_LENGTH/TOKEN_MAX_LENGTH must describe a non-empty band.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables, or construct Settings(...)
    directly with keyword arguments.
    """
    return Settings()
