"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for brick-auth happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_private_key_path -> JWT_PRIVATE_KEY_PATH).

  @model_validator(mode="after"): Resolves the RS256 signing keys after all
      fields are loaded. Dev mode generates an ephemeral key pair with a
      warning; production mode refuses to start without real keys.

Security notes:
  [K1] Inline PEM (JWT_PRIVATE_KEY / JWT_PUBLIC_KEY) takes precedence over the
       key file paths. Both halves must resolve from the same source or the
       issued credentials would not verify.

  [K2] In production mode (DEBUG not set or false), missing key material is a
       hard startup failure. An ephemeral key would silently invalidate every
       credential on restart.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.keys import generate_rsa_keypair

logger = logging.getLogger("brickauth.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (with DEBUG=true).
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
    database_url: str = "sqlite:///./brickauth.db"

    # ------------------------------------------------------------------
    # Credential signing (RS256)
    # ------------------------------------------------------------------

    # Inline PEM text. Empty string is the sentinel for "not configured";
    # the model_validator fills these from the paths below or a dev key.
    jwt_private_key: str = ""
    jwt_public_key: str = ""
    jwt_private_key_path: str = "/app/private.pem"
    jwt_public_key_path: str = "/app/public.pem"

    token_expire_hours: int = 24
    # Grace period applied to exp during validation. 0 = strict.
    clock_skew_seconds: int = 0

    # ------------------------------------------------------------------
    # Token exchange (external brick auth authority)
    # ------------------------------------------------------------------

    brick_auth_jwks_url: str = ""
    brick_auth_public_key_path: str = ""
    brick_auth_issuer: str = ""
    brick_auth_audience: str = ""
    brick_auth_username_claim: str = "username"
    exchange_default_role: str = "viewer"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    # Files written at image build time, served verbatim. Missing file -> 404.
    build_info_path: str = "/app/build-info.json"
    version_path: str = "/app/VERSION"
    allowed_hosts: list[str] = ["*"]
    cors_origins: list[str] = []
    host: str = "0.0.0.0"  # nosec B104 -- container service
    port: int = 17101

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def resolve_signing_keys(self) -> "Settings":
        """Resolve the RS256 key pair [K1, K2].

        Order: inline PEM, then key files, then (dev mode only) a freshly
        generated pair that lives as long as the process.
        """
        if self.token_expire_hours <= 0:
            raise ValueError("TOKEN_EXPIRE_HOURS must be a positive number of hours.")
        if self.clock_skew_seconds < 0:
            raise ValueError("CLOCK_SKEW_SECONDS must not be negative.")

        if self.jwt_private_key and self.jwt_public_key:
            return self

        private_path = Path(self.jwt_private_key_path)
        public_path = Path(self.jwt_public_key_path)
        if private_path.is_file() and public_path.is_file():
            self.jwt_private_key = private_path.read_text()
            self.jwt_public_key = public_path.read_text()
            return self

        if self.debug:
            self.jwt_private_key, self.jwt_public_key = generate_rsa_keypair()
            logger.warning(
                "WARNING: Using an auto-generated RSA signing key. " "Credentials will not survive a restart."
            )
            return self

        raise ValueError(
            "RS256 signing keys are required in production mode. "
            "Set JWT_PRIVATE_KEY_PATH / JWT_PUBLIC_KEY_PATH (or JWT_PRIVATE_KEY / JWT_PUBLIC_KEY). "
            "To run in development mode, set DEBUG=true."
        )


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
