"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Gatehouse happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved. Dev mode (DEBUG=true) generates a signing secret with a
      warning; any other mode refuses to start without one.

Security notes:
  JWT_SECRET shorter than 32 chars is rejected outright. HS256 signing relies
  on key entropy -- a short key makes offline guessing of the secret cheap.

  BCRYPT_ROUNDS below 10 is rejected. The work factor is what keeps a leaked
  hash table expensive to brute-force.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("gatehouse.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
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
    environment: str = "development"  # "development", "production", "local"
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev secret or raises, so callers never see "".
    jwt_secret: str = ""

    database_url: str = "sqlite:///gatehouse.db"

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    session_token_ttl_seconds: int = Field(default=24 * 3600, gt=0)
    # The cookie outlives the token it carries; an expired token inside a live
    # cookie is rejected by the auth gate with "Token expired".
    session_cookie_max_age_seconds: int = Field(default=7 * 24 * 3600, gt=0)
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    bcrypt_rounds: int = Field(default=10, ge=10, le=31)
    hash_concurrency: int = Field(default=4, ge=1)
    ephemeral_token_ttl_seconds: int = Field(default=3600, gt=0)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    sign_in_rate_limit: str = "10/minute"
    frontend_url: str = "http://localhost:3000"
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000"]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def cookies_secure(self) -> bool:
        """Session cookies carry the Secure flag in production or when forced."""
        return self.secure_cookies or self.is_production

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_jwt_secret(self) -> "Settings":
        """Enforce the signing secret policy.

        Dev mode (DEBUG=true): auto-generate a random secret with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Any other mode: refuse to start if JWT_SECRET is missing. Every
            issued token would silently become invalid on the next restart.

        Both modes: reject secrets shorter than 32 characters.
        """
        if not self.jwt_secret:
            if self.debug:
                self.jwt_secret = secrets.token_hex(32)
                logger.warning("Using auto-generated JWT_SECRET. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "JWT_SECRET is required. "
                    "Set JWT_SECRET in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.jwt_secret) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
