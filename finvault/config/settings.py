"""
Configuration Management for FinVault

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Each storage mode and external service reads its own settings block,
so a missing Google client ID only breaks Drive login, not guest mode.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


CLIENT_ID_PLACEHOLDER = "YOUR_GOOGLE_CLIENT_ID_PLACEHOLDER"


class GoogleDriveSettings(BaseSettings):
    """Google Drive storage configuration (remote-drive mode)."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_DRIVE_",
        extra="ignore"
    )

    client_id: str = Field(
        default=CLIENT_ID_PLACEHOLDER,
        description="OAuth client ID used for the consent flow"
    )
    scopes: list[str] = Field(
        default=["https://www.googleapis.com/auth/drive.file"],
        description="OAuth scopes requested at login"
    )

    # Names of the documents we own inside the user's Drive
    vault_file_name: str = Field(
        default="finvault_vault_v1.json",
        description="Name of the JSON vault document"
    )
    mirror_sheet_name: str = Field(
        default="FinVault - Financial Archive (Live)",
        description="Name of the spreadsheet mirror of all entries"
    )
    archive_root_name: str = Field(
        default="FinVault Archive",
        description="Root folder for archived statements"
    )

    consent_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="How long login waits for the user to grant consent"
    )

    @property
    def is_configured(self) -> bool:
        """Drive mode needs a real client ID, not the shipped placeholder."""
        return bool(self.client_id) and "PLACEHOLDER" not in self.client_id


class LocalStorageSettings(BaseSettings):
    """Local storage configuration (embedded database and folder modes)."""

    model_config = SettingsConfigDict(
        env_prefix="LOCAL_",
        extra="ignore"
    )

    data_dir: Path = Field(
        default=Path.home() / ".finvault",
        description="Directory holding the embedded database file"
    )
    db_file_name: str = Field(
        default="finvault_storage.sqlite3",
        description="Embedded database file name"
    )
    collection_name: str = Field(
        default="vault",
        description="Name of the single key-value collection"
    )
    vault_key: str = Field(
        default="finvault_vault_blob",
        description="Key the vault document is stored under"
    )
    fs_directory: Optional[Path] = Field(
        default=None,
        description="Directory granted for local-filesystem mode"
    )

    @field_validator("collection_name")
    @classmethod
    def validate_collection_name(cls, v: str) -> str:
        """The collection name becomes a table name, keep it simple."""
        if not v.replace("_", "").isalnum():
            raise ValueError(f"Invalid collection name: {v}")
        return v

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.data_dir / self.db_file_name}"


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-pro",
        description="Model used for rates, valuation and health analysis"
    )
    vision_model_name: str = Field(
        default="gemini-1.5-flash",
        description="Model used to read scanned statements"
    )
    max_tokens: int = Field(
        default=4096,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
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

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Minimum level for the structured log"
    )

    # Defaults for a freshly created vault
    default_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Base currency of a new vault"
    )
    default_user_name: str = Field(
        default="FinVault User",
        description="Display name of a new vault"
    )
    default_monthly_budget: float = Field(
        default=5000.0,
        ge=0,
        description="Monthly budget ceiling of a new vault"
    )


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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def google_drive(self) -> GoogleDriveSettings:
        return GoogleDriveSettings()

    @property
    def local(self) -> LocalStorageSettings:
        return LocalStorageSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

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
