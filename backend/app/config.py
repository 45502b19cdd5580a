"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Runtime
    environment: str = "development"
    log_level: str = "INFO"
    api_prefix: str = "/api/v1"

    # Database
    database_url: str | None = None

    # Cache (shared rate-limit counters for multi-instance deployments)
    redis_url: str | None = None

    # Auth
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    jwt_private_key_pem: str = ""
    jwt_public_key_pem: str = ""
    jwt_access_token_minutes: int = 60

    # Rate limiting (per client IP and route class)
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max: int = 100
    auth_rate_limit_max: int = 10
    trust_forwarded_for: bool = False

    # Pagination
    pagination_default_limit: int = 10
    pagination_max_limit: int = 100

    @property
    def is_production(self) -> bool:
        """Whether stack traces must be kept out of responses."""
        return self.environment.lower() in ("production", "prod")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
