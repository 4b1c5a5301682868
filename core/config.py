"""
core/config.py -- AuthRotor settings.

Every environment variable AuthRotor reads is declared on Settings below;
the rest of the code asks get_settings() and never touches os.environ.
Field names map one-to-one to upper-case variables (secret_key ->
SECRET_KEY, refresh_token_expire_seconds -> REFRESH_TOKEN_EXPIRE_SECONDS),
optionally supplied through a .env file.

get_settings() is cached, so the first call fixes the configuration for the
life of the process. Tests that need different values build Settings(...)
directly or clear the cache.

Startup checks (model validators, run after all fields resolve):
  [K1] The signing key must be at least 32 characters. Access and refresh
       tokens are both HS256 and share this one key.

  [K2] With DEBUG off, an unset SECRET_KEY stops the process. Signing with
       a throwaway key would log every user out on the next restart. With
       DEBUG on, a throwaway key is generated and a warning is logged.

  [K3] Both TTLs must be positive and the refresh TTL must exceed the
       access TTL.

Layer rule: core/ imports nothing from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authrotor.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'authrotor.db'}"
_MIN_SECRET_KEY_LENGTH = 32


class Settings(BaseSettings):
    """Runtime configuration for the AuthRotor API.

    Every field has a default, so Settings() builds without a .env file; the
    validators below decide whether those defaults are safe to run with.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Signing and storage
    # ------------------------------------------------------------------

    debug: bool = False
    # "" means unset; validate_secret_key replaces it or refuses to start.
    secret_key: str = ""

    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    access_token_expire_seconds: int = 15 * 60
    refresh_token_expire_seconds: int = 7 * 24 * 3600

    # ------------------------------------------------------------------
    # Registration / rate limiting
    # ------------------------------------------------------------------

    default_role: str = "user"
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Resolve the signing key [K1][K2]."""
        if not self.secret_key and not self.debug:
            raise ValueError(
                "SECRET_KEY is required unless DEBUG=true; "
                "refusing to sign tokens with a key that changes on every restart."
            )
        if not self.secret_key:
            self.secret_key = secrets.token_hex(32)
            logger.warning("DEBUG: signing with a throwaway SECRET_KEY; tokens die with this process.")
        if len(self.secret_key) < _MIN_SECRET_KEY_LENGTH:
            raise ValueError(f"SECRET_KEY is too short: at least {_MIN_SECRET_KEY_LENGTH} characters needed.")
        return self

    @model_validator(mode="after")
    def validate_token_ttls(self) -> "Settings":
        """Reject non-positive TTLs and a refresh TTL that does not outlive the access TTL [K3]."""
        if self.access_token_expire_seconds <= 0 or self.refresh_token_expire_seconds <= 0:
            raise ValueError("Token expiry settings must be positive.")
        if self.refresh_token_expire_seconds <= self.access_token_expire_seconds:
            raise ValueError("REFRESH_TOKEN_EXPIRE_SECONDS must be greater than ACCESS_TOKEN_EXPIRE_SECONDS.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Settings for this process, built on first use."""
    return Settings()
