"""Application configuration."""

import secrets
from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

# HS512 signing secret length in bytes
JWT_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: str = "development"  # development, staging, production

    # Development mode (generates a throwaway signing secret) - MUST be False in production
    dev_mode: bool = False

    # Database (SQLite default is safe for dev; production must set a real connection string)
    database_url: str = "sqlite+aiosqlite:///./credential_service.db"

    # Token signing (JWS) - no hardcoded default, must be exactly 32 bytes
    jwt_secret: Optional[str] = None
    jwt_issuer: str = "credential-service"
    jwt_expires_in: int = 3600  # seconds

    # Token encryption (JWE) key pair, PEM encoded
    jwt_rsa_public_key_path: str = "./keys/jwt_public.pem"
    jwt_rsa_private_key_path: str = "./keys/jwt_private.pem"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # URLs
    frontend_url: str = "http://localhost:3000"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @field_validator("jwt_expires_in")
    @classmethod
    def _positive_lifetime(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("JWT_EXPIRES_IN must be a positive number of seconds")
        return value

    @model_validator(mode="after")
    def _check_secret(self) -> "Settings":
        """Generate a random secret in dev mode; require a 32-byte one otherwise."""
        if not self.jwt_secret:
            if not self.dev_mode:
                raise ValueError("Missing required secret (set DEV_MODE=true for development): JWT_SECRET")
            # 24 random bytes -> 32 url-safe characters
            self.jwt_secret = secrets.token_urlsafe(24)
        if len(self.jwt_secret.encode("utf-8")) != JWT_SECRET_LENGTH:
            raise ValueError(f"The JWS secret key must be {JWT_SECRET_LENGTH} bytes long.")
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
