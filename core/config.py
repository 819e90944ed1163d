"""
core/config.py -- Centralized Gatehouse configuration via pydantic-settings.

All environment variable reads for Gatehouse happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. bcrypt_rounds -> BCRYPT_ROUNDS). Type coercion and validation are
      built in.

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Rejects expirations that would mint already-expired records and
      bcrypt costs outside the range the bcrypt library accepts.

Durations are plain seconds. Managers accept explicit overrides so tests can
use short expirations without touching the environment.

Layer rule: core/ is the kernel. This module may not import from auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("gatehouse.config")

_DEFAULT_DB_URL = f"sqlite:///{Path.cwd() / 'gatehouse_data' / 'manager.db'}"


class Settings(BaseSettings):
    """Gatehouse settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
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
    database_url: str = _DEFAULT_DB_URL
    # Upper bound for the pooled (concurrent) read engine.
    db_max_open_conns: int = 120

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------
    # Changing these after the first boot orphans the existing data.

    users_table: str = "users"
    sessions_table: str = "sessions"
    access_tokens_table: str = "access_tokens"
    datastore_table: str = "datastore"
    settings_key: str = "sets"

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    bcrypt_rounds: int = 12
    user_expiration_seconds: int = 60 * 60 * 24 * 365 * 10  # ~10 years

    # ------------------------------------------------------------------
    # Sessions and access tokens
    # ------------------------------------------------------------------

    short_session_expiration_seconds: int = 60 * 60 * 2  # 2 hours
    long_session_expiration_seconds: int = 60 * 60 * 24 * 30  # 30 days
    short_token_expiration_seconds: int = 60 * 60 * 6  # 6 hours
    long_token_expiration_seconds: int = 60 * 60 * 24 * 7  # 7 days

    # Attempts at reading the OS random source before giving up.
    secret_retries: int = 3

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_policy(self) -> "Settings":
        """Reject configurations that would silently weaken the subsystem.

        bcrypt accepts log-rounds 4..31. Below 4 the library raises at hash
        time, which would surface as a confusing error on first signup.

        Expirations must be positive: a zero or negative duration would mint
        sessions and tokens that are expired the moment they are created.
        """
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        if self.bcrypt_rounds < 12 and not self.debug:
            logger.warning("BCRYPT_ROUNDS=%d is below the recommended cost of 12.", self.bcrypt_rounds)
        durations = {
            "USER_EXPIRATION_SECONDS": self.user_expiration_seconds,
            "SHORT_SESSION_EXPIRATION_SECONDS": self.short_session_expiration_seconds,
            "LONG_SESSION_EXPIRATION_SECONDS": self.long_session_expiration_seconds,
            "SHORT_TOKEN_EXPIRATION_SECONDS": self.short_token_expiration_seconds,
            "LONG_TOKEN_EXPIRATION_SECONDS": self.long_token_expiration_seconds,
        }
        for name, value in durations.items():
            if value <= 0:
                raise ValueError(f"{name} must be positive.")
        if self.secret_retries < 1:
            raise ValueError("SECRET_RETRIES must be at least 1.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
