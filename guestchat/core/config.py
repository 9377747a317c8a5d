"""
Configuration management using Pydantic Settings.
All environment variables are loaded and validated here.
"""

from typing import Literal
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Client settings loaded from environment variables (prefix GUESTCHAT_).
    The same build talks to Dev/UAT/Prod by changing the environment only.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="GUESTCHAT_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    environment: Literal["development", "uat", "production"] = "development"
    app_name: str = "Guest Chat Client"
    app_version: str = "1.0.0"
    log_level: str = "INFO"

    # API Configuration
    api_base_url: str = "http://localhost:8080/api"
    api_timeout_seconds: float = 30.0
    guest_session_header: str = "X-Guest-Session-Id"

    # Local persistence
    storage_backend: Literal["memory", "file", "secure"] = "file"
    storage_path: str = ".guestchat/storage.json"
    storage_secret: str = Field("", description="Key material for the secure store")
    guest_session_storage_key: str = "guest_session_id"
    auth_token_storage_key: str = "auth_token"

    # Conversation defaults
    default_language: str = "en"
    default_specialty: str = ""
    default_chat_title: str = "New Chat"
    chat_title_word_count: int = 3

    # Batch upload polling
    batch_poll_interval_seconds: float = 1.0
    batch_poll_max_attempts: int = 30
    max_files_per_batch: int = 10

    @field_validator("batch_poll_max_attempts", "chat_title_word_count", "max_files_per_batch")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Counts must be at least 1."""
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("batch_poll_interval_seconds", "api_timeout_seconds")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        """Durations cannot be negative."""
        if v < 0:
            raise ValueError("duration must not be negative")
        return v

    @field_validator("api_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Base URL must be absolute; trailing slash is dropped."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("api_base_url must start with http:// or https://")
        return v.rstrip("/")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_uat(self) -> bool:
        """Check if running in UAT environment."""
        return self.environment == "uat"


# Global settings instance
settings = Settings()
