"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Quillblog happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. session_secret -> SESSION_SECRET). Type coercion and validation are
      built in.

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Dev mode generates missing signing keys with a warning;
      production mode refuses to start without them.

Security notes:
  SESSION_SECRET signs the session cookie. IDENTITY_ASSERTION_SECRET signs the
  identity assertions sent to the posts API and must be a different key.
  Keys shorter than 32 chars are rejected outright.

  PASSWORD_WORK_FACTOR is the bcrypt cost. It is a deployment-time knob, not a
  per-call parameter. Existing hashes keep the cost they were created with.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
auth/ or posts/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("quillblog.config")


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
    session_secret: str = ""

    # ------------------------------------------------------------------
    # Sessions and passwords
    # ------------------------------------------------------------------

    session_ttl_seconds: int = 24 * 3600
    secure_cookies: bool = False
    password_work_factor: int = 10

    # ------------------------------------------------------------------
    # Credential store
    # ------------------------------------------------------------------

    database_url: str = "sqlite+aiosqlite:///./quillblog.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # ------------------------------------------------------------------
    # Posts API (downstream resource service)
    # ------------------------------------------------------------------

    posts_api_url: str = "http://localhost:4000"
    posts_api_timeout: float = 10.0
    # Shared with the posts API so it can verify X-Identity-Assertion.
    # Kept apart from SESSION_SECRET so the posts API never holds the
    # cookie-signing key.
    identity_assertion_secret: str = ""
    identity_assertion_ttl_seconds: int = 60

    # ------------------------------------------------------------------
    # Google OAuth (optional -- empty string means provider is disabled)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""
    # Empty: the callback URL is derived from the incoming request.
    google_callback_url: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the signing-key policy and sane bcrypt cost.

        Dev mode (DEBUG=true): auto-generate random keys with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if either key is missing, and
        refuse one key doing both jobs.

        bcrypt accepts costs 4..31; anything outside fails here rather than
        on the first registration.
        """
        self.session_secret = self._resolve_secret("SESSION_SECRET", self.session_secret)
        self.identity_assertion_secret = self._resolve_secret(
            "IDENTITY_ASSERTION_SECRET", self.identity_assertion_secret
        )
        if self.identity_assertion_secret == self.session_secret:
            raise ValueError("IDENTITY_ASSERTION_SECRET must differ from SESSION_SECRET.")
        if not 4 <= self.password_work_factor <= 31:
            raise ValueError("PASSWORD_WORK_FACTOR must be between 4 and 31.")
        return self

    def _resolve_secret(self, env_name: str, value: str) -> str:
        if not value:
            if not self.debug:
                raise ValueError(
                    f"{env_name} is required in production mode. "
                    f"Set {env_name} in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
            logger.warning("WARNING: Using auto-generated %s. It will not persist across restarts.", env_name)
            return secrets.token_hex(32)
        if len(value) < 32:
            raise ValueError(f"{env_name} must be at least 32 characters.")
        return value

    @property
    def google_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
