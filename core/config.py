"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for AccountGuard happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. The API
      lifespan reads it once and hands plain values to each component
      constructor (signing secret to the token issuer, cipher key to the
      password cipher). Components never reach back into this module.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Dev mode generates missing keys with a warning, production mode
      refuses to start without them.

Security notes:
  [M6] SECRET_KEY and ENCRYPTION_KEY shorter than 32 chars are rejected.

  [M7] Outside DEBUG mode a missing key is a hard startup failure. A random
       ENCRYPTION_KEY in production would make every stored password
       undecryptable after the next restart.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("accountguard.config")

DEFAULT_DATABASE_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'accountguard.db'}"


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
    database_url: str = DEFAULT_DATABASE_URL
    # Comma-separated in the environment: ALLOWED_ORIGINS=http://a,http://b
    allowed_origins: str = "http://localhost,http://localhost:3000"

    # ------------------------------------------------------------------
    # Secrets -- "" is the sentinel for "not configured"
    # ------------------------------------------------------------------

    secret_key: str = ""  # session token signing
    encryption_key: str = ""  # password cipher

    # ------------------------------------------------------------------
    # Token lifetimes
    # ------------------------------------------------------------------

    session_token_expire_seconds: int = 7 * 24 * 3600
    verification_token_ttl_seconds: int = 24 * 3600
    reset_token_ttl_seconds: int = 3600

    # ------------------------------------------------------------------
    # Lockout policy
    # ------------------------------------------------------------------

    lockout_threshold: int = 5
    lockout_minutes: int = 30

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Google sign-in (empty client id means the audience is not checked)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_tokeninfo_url: str = "https://oauth2.googleapis.com/tokeninfo"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("lockout_threshold", "lockout_minutes")
    @classmethod
    def positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @model_validator(mode="after")
    def validate_keys(self) -> "Settings":
        """Enforce the key policy for SECRET_KEY and ENCRYPTION_KEY [M6][M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions and stored passwords will not survive restart.

        Production mode: refuse to start if either key is missing.
        """
        for name in ("secret_key", "encryption_key"):
            value = getattr(self, name)
            if not value:
                if self.debug:
                    value = secrets.token_hex(32)
                    setattr(self, name, value)
                    logger.warning(
                        "WARNING: Using auto-generated %s. Data bound to it will not persist across restarts.",
                        name.upper(),
                    )
                else:
                    raise ValueError(
                        f"{name.upper()} is required in production mode. "
                        f"Set {name.upper()} in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
            if len(value) < 32:
                raise ValueError(f"{name.upper()} must be at least 32 characters.")
        return self

    @property
    def origins(self) -> list[str]:
        """Normalized CORS origins: trimmed, lowercased, no trailing slash."""
        return [o.strip().lower().rstrip("/") for o in self.allowed_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
