"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for usergate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead,
or better, accept the values you need as constructor arguments and let
api/main.py wire them in from Settings.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved. The JWT secret policy depends on ENVIRONMENT: outside
      production a random key is generated with a warning; production refuses
      to start without one.

Security notes:
  JWT_SECRET shorter than 32 chars is rejected outright. HS256 signing relies
  on key entropy -- a short key weakens every session token.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or security/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("usergate.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

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

    environment: Literal["development", "test", "production"] = "development"
    database_url: str = "sqlite:///usergate.db"
    host: str = "0.0.0.0"  # nosec B104 -- container entry point
    port: int = 3000

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    jwt_secret: str = ""
    token_expire_seconds: int = 24 * 60 * 60
    cookie_max_age_seconds: int = 15 * 60
    cookie_name: str = "access_token"
    bcrypt_rounds: int = 10

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    # Blank means "derive from environment" (see effective_log_level).
    log_level: str = ""
    log_dir: str = ""

    # ------------------------------------------------------------------
    # Security gate
    # ------------------------------------------------------------------

    security_gate_enabled: bool = True
    security_dry_run: bool = False
    guest_rate_limit: str = "5/minute"
    user_rate_limit: str = "10/minute"
    admin_rate_limit: str = "20/minute"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["*"]
    cors_origins: list[str] = []
    # Peers allowed to set X-Forwarded-For (reverse proxies). Empty means the
    # socket address is always the client address.
    trusted_proxies: list[str] = []

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def secure_cookies(self) -> bool:
        """Session cookies are only marked Secure in production (HTTPS)."""
        return self.is_production

    @property
    def effective_log_level(self) -> str:
        if self.log_level:
            return self.log_level.upper()
        return "INFO" if self.is_production else "DEBUG"

    def rate_limits(self) -> dict[str, str]:
        """Per-role rate limit strings in `limits` notation, keyed by role."""
        return {
            "guest": self.guest_rate_limit,
            "user": self.user_rate_limit,
            "admin": self.admin_rate_limit,
        }

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_jwt_secret(self) -> "Settings":
        """Enforce the JWT_SECRET policy.

        Development / test: auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production: refuse to start if JWT_SECRET is missing. A random key in
            production would invalidate every session on each restart.

        All environments: reject keys shorter than 32 characters.
        """
        if not self.jwt_secret:
            if self.is_production:
                raise ValueError(
                    "JWT_SECRET is required in production. "
                    "Set JWT_SECRET in your environment or .env file. "
                    "To run locally, set ENVIRONMENT=development."
                )
            self.jwt_secret = secrets.token_hex(32)
            logger.warning("Using auto-generated JWT_SECRET. Sessions will not persist across restarts.")
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
