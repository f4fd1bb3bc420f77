from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Leave Ledger"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "postgresql+asyncpg://leave_ledger:leave_ledger@db:5432/leave_ledger"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:8000"]

    # Work calendar
    weekend_days: list[int] = [5, 6]  # Monday=0
    calendar_timeout_seconds: float = 3.0

    # Employee directory
    directory_service_url: str | None = None
    directory_timeout_seconds: float = 3.0

    # Entitlement / ledger
    default_probation_days: int = 90
    ledger_conflict_retries: int = 3

    # Supporting documents
    document_storage_dir: str = "./var/documents"
    max_document_bytes: int = 10 * 1024 * 1024

    worker_interval_seconds: int = 86400


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
