"""Service configuration settings."""

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Service configuration
    service_name: str = "board-sync-service"
    environment: str = "development"
    port: int = 8003
    app_version: str = "1.0.0"

    # Storage configuration
    # inmemory: process-local store, database: SQLAlchemy at database_url
    storage_type: str = "inmemory"
    database_url: str = "sqlite+aiosqlite:///./board_cases.db"

    # Session identity
    actor_name: str = ""

    # Presence reporting
    presence_interval_seconds: float = 20.0
    presence_active_window_seconds: float = 120.0

    # Case number that marks a row as a pending-update control message
    sentinel_case_number: str = "update"

    # CORS configuration
    cors_origins: str = "*"

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]


# Global settings instance
settings = Settings()
