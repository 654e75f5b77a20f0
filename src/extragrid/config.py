"""Library configuration using pydantic-settings.

Every value can be overridden with an ``EXTRAGRID_``-prefixed environment
variable (or a ``.env`` file), e.g. ``EXTRAGRID_TIMEOUT=30``.
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SHEETS_API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"
DRIVE_API_BASE = "https://www.googleapis.com/drive/v3/files"
DEFAULT_TIMEOUT = 60.0

# Scopes requested when a service account key file is loaded
DEFAULT_SCOPES = (
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.file",
)


class Settings(BaseSettings):
    """Endpoint and HTTP settings shared by every Spreadsheet instance."""

    model_config = SettingsConfigDict(
        env_prefix="EXTRAGRID_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Sheets v4 collection URL (documents live at <base>/<spreadsheetId>)
    sheets_api_base: str = SHEETS_API_BASE

    # Drive v3 files collection URL (files live at <base>/<fileId>)
    drive_api_base: str = DRIVE_API_BASE

    # Per-request timeout in seconds
    timeout: float = DEFAULT_TIMEOUT

    @field_validator("sheets_api_base", "drive_api_base")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Paths are appended verbatim, so the base must not end with '/'."""
        return v.rstrip("/")

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError("timeout must be greater than 0")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are loaded once and cached for the lifetime of the process.
    """
    return Settings()
