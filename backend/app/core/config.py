from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    project_name: str = "Clinicflow Backend"
    database_url: str = Field(
        default="sqlite:///./clinicflow.db",
        description="SQLModel compatible database URI",
    )
    jwt_secret_key: str = Field(default="change-me", description="JWT signing secret")
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    background_cleanup_interval_seconds: int = 60  # theater lock sweeper
    theater_lock_ttl_seconds: int = 5 * 60
    theater_max_active_locks: int = 3
    confirmation_notes_max_length: int = 1000
    rejection_reason_max_length: int = 1000
    quick_rejection_reason_max_length: int = 500
    clinic_timezone: str = Field(default="UTC", description="Zone the appointment date and time are expressed in")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    log_format: str = Field(default="console", description="json or console")
    first_superuser: str = "admin"
    first_superuser_password: str = "admin123"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
