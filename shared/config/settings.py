"""Application configuration powered by ``pydantic-settings``."""

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DATA_SOURCE_FIXTURES = "fixtures"
DATA_SOURCE_CREDENTIALS = "credentials"


class DatabaseSettings(BaseSettings):
    """Connection settings for the realtime database backing every view model."""

    source: str = Field(
        default=DATA_SOURCE_FIXTURES,
        description="Backend used for reads and writes ('fixtures' or 'credentials')",
        validation_alias=AliasChoices("TELEHEALTH_DB_SOURCE", "DB_SOURCE"),
    )
    url: Optional[str] = Field(
        default=None,
        description="Firebase Realtime Database URL",
        validation_alias=AliasChoices("TELEHEALTH_DB_URL", "FIREBASE_DATABASE_URL"),
    )
    credentials_file: Optional[str] = Field(
        default=None,
        description="Path to a Firebase service account JSON file",
        validation_alias=AliasChoices(
            "TELEHEALTH_DB_CREDENTIALS", "GOOGLE_APPLICATION_CREDENTIALS"
        ),
    )
    fixtures_dir: Optional[str] = Field(
        default=None,
        description="Directory holding JSON fixtures for the in-memory backend",
        validation_alias=AliasChoices("TELEHEALTH_DB_FIXTURES_DIR"),
    )

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True
    )


class ReconciliationSettings(BaseSettings):
    """Tuning knobs for cross-reference lookups."""

    lookup_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Upper bound for a single enrichment lookup before it falls back",
    )
    read_retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts made for transient database read failures",
    )

    model_config = SettingsConfigDict(
        env_prefix="TELEHEALTH_RECONCILIATION_", env_file=".env", extra="ignore"
    )


class LoggingSettings(BaseSettings):
    """Logging configuration for the service."""

    level: str = Field(
        default="INFO",
        description="Logging verbosity level (e.g. DEBUG, INFO, WARNING)",
        validation_alias=AliasChoices("TELEHEALTH_LOG_LEVEL", "LOG_LEVEL"),
    )
    json_logs: bool = Field(
        default=True,
        description="Render structured entries as JSON; console text otherwise",
        validation_alias=AliasChoices("TELEHEALTH_LOG_JSON", "LOG_JSON"),
    )

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True
    )


class Settings(BaseSettings):
    """Top-level application settings namespace."""

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    reconciliation: ReconciliationSettings = Field(
        default_factory=ReconciliationSettings
    )
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(env_file=".env", env_nested_delimiter="__", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance for application use."""

    return Settings()


__all__ = [
    "DATA_SOURCE_CREDENTIALS",
    "DATA_SOURCE_FIXTURES",
    "DatabaseSettings",
    "LoggingSettings",
    "ReconciliationSettings",
    "Settings",
    "get_settings",
]
