"""Gateway settings using pydantic-settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Gateway settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = "development"
    log_level: str = "INFO"

    # Proxying backend shared by every vendor adapter
    microservice_url: str = "http://localhost:3001"
    microservice_api_key: str = ""

    # Rate-limit retry
    llm_max_retries: int = 3
    llm_initial_delay: float = 1.0
    llm_max_delay: float = 30.0

    # Transport
    llm_timeout_seconds: float = 120.0

    # Cross-vendor fallback
    llm_enable_fallbacks: bool = True
    llm_max_fallback_attempts: int = 2

    @property
    def base_url(self) -> str:
        """Proxy base URL without a trailing slash."""
        return self.microservice_url.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
