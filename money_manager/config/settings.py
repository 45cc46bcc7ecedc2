"""
Configuration Management for Money Manager

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The remote base URL is configuration, not behavior, so nothing else in the
package hard-codes where the server lives or where local data is written.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ApiSettings(BaseSettings):
    """Remote REST store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MONEY_MANAGER_API_",
        extra="ignore"
    )

    base_url: str = Field(
        default="http://localhost:8080/api/v1.0",
        description="Base URL of the remote store, without trailing slash"
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Seconds before an unanswered call counts as network unavailable"
    )

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class StorageSettings(BaseSettings):
    """Local fallback store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MONEY_MANAGER_STORAGE_",
        extra="ignore"
    )

    path: Path = Field(
        default=Path.home() / ".money_manager" / "local_store.json",
        description="JSON file backing the local key/value store"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    debug_mode: bool = Field(
        default=False,
        description="Enable debug logging"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum log level for the structured logger"
    )

    @field_validator("log_level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def effective_log_level(self) -> str:
        """DEBUG when debug mode is on, the configured level otherwise."""
        return "DEBUG" if self.debug_mode else self.log_level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def api(self) -> ApiSettings:
        return ApiSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()
