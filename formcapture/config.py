"""
Configuration settings for formcapture.

Uses Pydantic Settings to load environment variables for the record store,
the HTTP API, and logging. Values can also come from a local `.env` file.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Record store
    data_dir: Path = Field(Path("data"), alias="DATA_DIR")
    db_filename: str = Field("user_data.db", alias="DB_FILENAME")
    db_pool_size: int = Field(4, alias="DB_POOL_SIZE", ge=1)
    db_busy_timeout_ms: int = Field(5_000, alias="DB_BUSY_TIMEOUT_MS", ge=0)
    db_pool_timeout_s: float = Field(30.0, alias="DB_POOL_TIMEOUT", gt=0)
    db_init_attempts: int = Field(3, alias="DB_INIT_ATTEMPTS", ge=1)

    # HTTP API
    api_host: str = Field("0.0.0.0", alias="API_HOST")
    api_port: int = Field(3000, alias="API_PORT")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def db_path(self) -> Path:
        """Full path of the backing database file."""
        return self.data_dir / self.db_filename


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
