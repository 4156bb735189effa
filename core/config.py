"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Gatekeeper happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a signing key with a
      warning; production mode refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing and the
  HMAC used for revoked-token hashes both rely on key entropy.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
rbac/, db/, or cache/.
"""

import logging
import secrets
from enum import Enum
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("gatekeeper.config")


class RegistrationMode(str, Enum):
    public = "public"
    invitation = "invitation"
    domain_whitelist = "domainwhitelist"
    closed = "closed"


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
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = "sqlite:///gatekeeper.db"

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Raw strings; auth.tokens.parse_expiry() turns them into seconds and
    # falls back to the defaults on unparseable input.
    jwt_access_token_expiry: str = "15m"
    jwt_refresh_token_expiry: str = "7d"
    password_reset_expire_minutes: int = 30

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    registration_mode: RegistrationMode = RegistrationMode.public
    # Comma-separated in the environment: ALLOWED_DOMAINS=example.com,corp.io
    allowed_domains: str = ""

    # ------------------------------------------------------------------
    # Admin bootstrap (empty email skips admin user creation)
    # ------------------------------------------------------------------

    default_admin_email: str = ""
    default_admin_password: str = ""

    # ------------------------------------------------------------------
    # Email
    # ------------------------------------------------------------------

    email_provider: str = "log"  # "log" | "sendgrid"
    email_from: str = "noreply@example.com"
    sendgrid_api_key: str = ""
    frontend_url: str = "http://localhost:3000"

    # ------------------------------------------------------------------
    # Permission catalog cache
    # ------------------------------------------------------------------

    permission_cache_size: int = 4096
    permission_cache_ttl_seconds: int = 300

    # ------------------------------------------------------------------
    # Rate limiting / background work
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    sweep_interval_seconds: int = 6 * 60 * 60

    # ------------------------------------------------------------------
    # HTTP (comma-separated lists)
    # ------------------------------------------------------------------

    allowed_hosts: str = "localhost,127.0.0.1,*.localhost"
    cors_origins: str = "http://localhost,http://localhost:3000,http://127.0.0.1"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("email_provider")
    @classmethod
    def validate_email_provider(cls, value: str) -> str:
        value = value.lower()
        if value not in ("log", "sendgrid"):
            raise ValueError("EMAIL_PROVIDER must be 'log' or 'sendgrid'.")
        return value

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Issued tokens will not survive a restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Issued tokens will not survive a restart.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @property
    def allowed_domain_list(self) -> list[str]:
        return _split(self.allowed_domains.lower())

    @property
    def allowed_host_list(self) -> list[str]:
        return _split(self.allowed_hosts)

    @property
    def cors_origin_list(self) -> list[str]:
        return _split(self.cors_origins)


def _split(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
