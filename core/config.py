"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the SIWES auth service happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
at the edges (app lifespan, CLI) and pass the Settings object down.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  Explicit injection: AuthWorkflow and TokenService take a Settings instance in
      their constructors. Only api/main.py and main.py call get_settings().

Security notes:
  [M6] SECRET_KEY / REFRESH_SECRET_KEY shorter than 32 chars are rejected.
       JWT signing and the reset-token HMAC both rely on key entropy.

  [M7] In production mode (DEBUG not set or false), a missing secret is a hard
       startup failure.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("siwes.config")


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
    log_level: str = "INFO"
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    refresh_secret_key: str = ""

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------

    database_url: str = "sqlite:///siwes_auth.db"
    db_connect_retries: int = 5
    db_connect_retry_delay: float = 5.0

    # ------------------------------------------------------------------
    # Tokens and passwords
    # ------------------------------------------------------------------

    access_token_expire_seconds: int = 7 * 24 * 3600
    refresh_token_expire_seconds: int = 30 * 24 * 3600
    # Reset ticket: short-lived JWT handed out by login when a reset is pending.
    reset_ticket_expire_seconds: int = 15 * 60
    # Out-of-band reset link validity.
    reset_token_expire_seconds: int = 3600
    bcrypt_rounds: int = 12
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    frontend_url: str = "http://localhost:3000"

    # ------------------------------------------------------------------
    # Email (optional -- empty smtp_host disables delivery)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    email_from: str = "SIWES Management <noreply@siwes.edu>"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_keys(self) -> "Settings":
        """Enforce the signing-key policy [M7].

        Dev mode (DEBUG=true): auto-generate missing keys with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if either key is missing.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        for field in ("secret_key", "refresh_secret_key"):
            value = getattr(self, field)
            if not value:
                if self.debug:
                    value = secrets.token_hex(32)
                    setattr(self, field, value)
                    logger.warning(
                        "WARNING: Using auto-generated %s. Sessions will not persist across restarts.",
                        field.upper(),
                    )
                else:
                    raise ValueError(
                        f"{field.upper()} is required in production mode. "
                        "Set it in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
            if len(value) < 32:
                raise ValueError(f"{field.upper()} must be at least 32 characters.")
        if self.secret_key == self.refresh_secret_key:
            raise ValueError("REFRESH_SECRET_KEY must differ from SECRET_KEY.")
        return self

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host)


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
