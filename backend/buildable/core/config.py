"""Application configuration."""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # AI Provider API Keys (at least one required)
    grok_api_key: str = ""
    openai_api_key: str = ""
    gemini_api_key: str = ""
    anthropic_api_key: str = ""

    # Application settings
    environment: str = "development"
    log_level: str = "INFO"

    # Database settings
    database_url: str = "sqlite+aiosqlite:///./buildable.db"
    auto_migrate: bool = True
    database_echo: bool = False

    # Clerk Authentication
    clerk_issuer: str = ""
    clerk_jwks_url: str = ""

    # CORS Configuration
    # Comma-separated list of allowed origins. In production, set to your domain.
    cors_origins: str = "http://localhost:3000"
    cors_allow_credentials: bool = True

    # Execution engine
    retry_count: int = 2
    retry_delay_seconds: float = 1.0  # multiplied by the attempt number
    stream_buffer_size: int = 64

    # Generation pipeline
    max_validation_retries: int = 3
    dependency_context_chars: int = 2000

    # Credits System
    credits_cost_multiplier: float = 0.001  # credits per token
    default_user_credits: int = 10

    # Rate limiting (per user, or per IP when anonymous)
    generation_rate_limit: str = "30/minute"

    # Well above the largest valid request (10k-character prompts)
    max_request_body_bytes: int = 1024 * 1024

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
