"""
core/config.py -- Centralized configuration via pydantic-settings.

All environment variable reads for Gatehouse happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead,
or better, accept the values you need as constructor arguments and let the
caller (auth/factory.py, main.py) read them from Settings.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from GATEHOUSE_* environment
      variables and an optional .env file. Nested groups use "__" as the
      delimiter, so throttling.attempt_limit is read from
      GATEHOUSE_THROTTLING__ATTEMPT_LIMIT.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved. Dev mode generates a secret key with a warning; production
      mode refuses to start without one.

Security notes:
  The secret key signs recall tokens and keys the HMAC used to store
  credential codes. A key shorter than 32 chars is rejected outright.

Layer rule: core/ is the kernel. This module may not import from auth/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("gatehouse.config")


class UsersSettings(BaseModel):
    # Which User field identifies a login. Whitelisted in auth/store.py.
    login_attribute: Literal["email", "username"] = "email"


class ThrottlingSettings(BaseModel):
    enabled: bool = True
    attempt_limit: int = Field(default=5, ge=1)
    # Minutes, matching the unit operators configure.
    suspension_time: int = Field(default=15, ge=1)


class CookieSettings(BaseModel):
    key: str = Field(default="gatehouse", min_length=1)


class Settings(BaseSettings):
    """Library settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (with GATEHOUSE_DEBUG=true).
    """

    model_config = SettingsConfigDict(
        env_prefix="GATEHOUSE_",
        env_nested_delimiter="__",
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
    database_url: str = ""
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    hasher: Literal["native", "bcrypt", "sha256"] = "native"
    users: UsersSettings = UsersSettings()
    throttling: ThrottlingSettings = ThrottlingSettings()
    cookie: CookieSettings = CookieSettings()

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the secret key policy.

        Dev mode (GATEHOUSE_DEBUG=true): auto-generate a random key with a
            warning. Recall tokens and stored codes will not survive restart.

        Production mode: refuse to start if the key is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "Using auto-generated GATEHOUSE_SECRET_KEY. "
                    "Remember-me tokens and issued codes will not persist across restarts."
                )
            else:
                raise ValueError(
                    "GATEHOUSE_SECRET_KEY is required in production mode. "
                    "Set it in your environment or .env file. "
                    "To run in development mode, set GATEHOUSE_DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("GATEHOUSE_SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
