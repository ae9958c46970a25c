"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for HostGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): field names map to env var names
      (e.g. secret_key -> SECRET_KEY, otp_expire_seconds -> OTP_EXPIRE_SECONDS).

  @model_validator(mode="after"): cross-field rules that need every value
      resolved first -- the DEBUG-conditional SECRET_KEY policy, the refresh
      signing key fallback and the mail transport check.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing and the
  HMAC fingerprints of refresh tokens and one-time codes all rely on it.

  Outside DEBUG a missing SECRET_KEY is a hard startup failure. A random key
  in production would silently invalidate every issued token on restart.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("hostgate.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in tests
    without a real .env file.
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
    # Empty string is the sentinel for "not configured"; see validate_secret_key.
    secret_key: str = ""
    # Separate signing key for refresh tokens. Falls back to secret_key.
    refresh_secret_key: str = ""
    database_url: str = "sqlite:///hostgate.db"

    # ------------------------------------------------------------------
    # Tokens and one-time codes (all durations in seconds)
    # ------------------------------------------------------------------

    access_token_expire_seconds: int = 15 * 60
    refresh_token_expire_seconds: int = 30 * 24 * 60 * 60
    otp_expire_seconds: int = 5 * 60
    reset_code_expire_seconds: int = 15 * 60
    otp_length: int = 6
    otp_purge_interval_seconds: int = 60 * 60

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    auth_rate_limit: str = "30/minute"
    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"

    # ------------------------------------------------------------------
    # Mail delivery
    # ------------------------------------------------------------------

    mail_mode: str = "console"  # "console" or "resend"
    mail_from: str = "HostGate <no-reply@hostgate.local>"
    resend_api_key: str = ""
    # Front-end origin used to build password reset links.
    client_url: str = "http://localhost:3000"

    # ------------------------------------------------------------------
    # External identity provider (Firebase / Google ID tokens by default)
    # ------------------------------------------------------------------

    oauth_jwks_url: str = "https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com"
    oauth_issuer: str = ""
    oauth_audience: str = ""

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Issued tokens will not survive a restart.

        Production mode: refuse to start without SECRET_KEY.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Issued tokens will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if not self.refresh_secret_key:
            self.refresh_secret_key = self.secret_key
        elif len(self.refresh_secret_key) < 32:
            raise ValueError("REFRESH_SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_mail_mode(self) -> "Settings":
        if self.mail_mode not in ("console", "resend"):
            raise ValueError("MAIL_MODE must be 'console' or 'resend'.")
        if self.mail_mode == "resend" and not self.resend_api_key:
            raise ValueError("RESEND_API_KEY is required when MAIL_MODE=resend.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between cases if you need to
    inject different environment variables.
    """
    return Settings()
