"""
Configuration management using pydantic-settings

Loads configuration from environment variables and .env file
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="standard", description="Log format: standard or json")

    # API
    API_HOST: str = Field(default="0.0.0.0", description="API host to bind to")
    API_PORT: int = Field(default=8000, description="API port to listen on")
    CORS_ORIGINS: list[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")

    # Store
    SEED_DEMO_DATA: bool = Field(default=False, description="Seed the in-memory store with a demo customer")
    TRANSACTION_MAX_RETRIES: int = Field(
        default=3,
        ge=1,
        description="Attempts per operation when a commit hits a version conflict",
    )
    BALANCE_READ_WORKERS: int = Field(
        default=3,
        ge=1,
        description="Thread pool size for the balance calculator's concurrent reads",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
