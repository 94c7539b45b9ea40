"""Centralized settings management for eventsync."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import make_url


class Settings(BaseSettings):
    """
    Application settings powered by pydantic-settings.

    Loads configuration from environment variables and a .env file located
    at the project root.
    """

    # -------------------------------------------------------------------------
    # ENVIRONMENT
    # -------------------------------------------------------------------------
    ENV: str = "development"
    DEBUG: bool = True

    # -------------------------------------------------------------------------
    # DATABASE
    # -------------------------------------------------------------------------
    # Unset -> in-memory store (local runs and tests)
    DATABASE_URL: str | None = None

    # -------------------------------------------------------------------------
    # INGESTION
    # -------------------------------------------------------------------------
    CRON_SCHEDULE: str = "0 */6 * * *"
    STALENESS_DAYS: int = Field(default=7, ge=1)
    PROTECT_IMPORTED_ON_UPDATE: bool = False

    # -------------------------------------------------------------------------
    # LOGGING
    # -------------------------------------------------------------------------
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = False

    # -------------------------------------------------------------------------
    # PATHS
    # -------------------------------------------------------------------------
    # BASE_DIR points to the project root
    BASE_DIR: Path = Path(__file__).resolve().parents[2]

    INGESTION_CONFIG_PATH: Path = Path(__file__).resolve().parent / "ingestion.yaml"

    # -------------------------------------------------------------------------
    # CONFIGURATION
    # -------------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        # Allow extra fields in .env but ignore them in the model
        extra="ignore",
    )

    def get_psycopg2_params(self) -> dict:
        """
        Parse DATABASE_URL into psycopg2-compatible connection parameters.

        Uses sqlalchemy.make_url for robust parsing of complex connection strings.

        Returns
        -------
        dict
            psycopg2 connection arguments (host, port, dbname, user, password).

        Raises
        ------
        ValueError
            If DATABASE_URL is not configured.
        """
        if not self.DATABASE_URL:
            raise ValueError("DATABASE_URL is not configured")
        url = make_url(self.DATABASE_URL)
        return {
            "host": url.host,
            "port": url.port,
            "dbname": url.database,
            "user": url.username,
            "password": url.password,
        }


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns
    -------
    Settings
        The singleton settings instance.
    """
    return Settings()
