"""
core/config.py -- Centralized configuration for authcore via pydantic-settings.

All environment variable reads happen here. No module should call os.getenv()
directly -- import get_settings() instead. The auth/ components themselves
never read settings: build_auth_service() in auth/service.py turns a Settings
instance into explicit constructor arguments, so tests can build components
with cheap Argon2 parameters and a fixed clock.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing relies on
  key entropy -- a short key weakens every access token.

  In production mode (DEBUG not set or false), a missing SECRET_KEY is a hard
  startup failure. Debug mode generates a throwaway key with a warning.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authcore.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'authcore.db'}"

# Belarus mobile operators: 29 (A1), 33 (MTS), 44 (life:), 25 (MTS)
DEFAULT_PHONE_PATTERN = r"^\+375(29|33|44|25)\d{7}$"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Every field has a default so Settings() works in tests without a .env
    file. Field names map to upper-cased env vars (argon2_time_cost ->
    ARGON2_TIME_COST).
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
    # Empty string is the sentinel for "not configured"; the validator below
    # either generates a dev key or raises.
    secret_key: str = ""
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Password hashing (Argon2id)
    # memory_cost is in KiB: 16384 KiB = 16 MiB, ~50-100ms per hash.
    # ------------------------------------------------------------------

    argon2_memory_cost: int = 16384
    argon2_time_cost: int = 3
    argon2_parallelism: int = 1

    # ------------------------------------------------------------------
    # Access tokens
    # ------------------------------------------------------------------

    jwt_issuer: str = "authcore"
    jwt_audience: str = "authcore-api"

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    phone_pattern: str = DEFAULT_PHONE_PATTERN

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Debug mode: auto-generate a random key with a warning. Issued access
            tokens will not survive a restart -- acceptable for local dev.

        Production mode: refuse to start without SECRET_KEY.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Access tokens will not survive a restart.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_argon2_params(self) -> "Settings":
        """Argon2 requires memory_cost >= 8 * parallelism (KiB)."""
        if self.argon2_parallelism < 1 or self.argon2_time_cost < 1:
            raise ValueError("ARGON2_TIME_COST and ARGON2_PARALLELISM must be >= 1.")
        if self.argon2_memory_cost < 8 * self.argon2_parallelism:
            raise ValueError("ARGON2_MEMORY_COST must be at least 8 * ARGON2_PARALLELISM.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() if you need to inject different
    environment variables.
    """
    return Settings()
