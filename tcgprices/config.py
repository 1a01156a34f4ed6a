"""
TCG Price Tracker: Configuration & Constants

Runtime settings come from the environment and from a per-environment vars
file (.dev.vars or .prod.vars, selected by ENVIRONMENT). Pipeline tuning
constants are fixed here and passed into each stage at construction time.

Usage:
    from tcgprices.config import settings
"""

from __future__ import annotations

import os
from enum import Enum

from pydantic_settings import BaseSettings, SettingsConfigDict

from tcgprices.errors import ConfigurationError


# ---------------------------------------------------------------------------
# Build-time constants
# ---------------------------------------------------------------------------

# Pokemon (3), Pokemon Japan (85), One Piece (68), Lorcana (71)
SUPPORTED_CATEGORY_IDS: tuple[int, ...] = (3, 85, 68, 71)

CONCURRENCY_LIMIT: int = 10          # parallel upstream requests
BATCH_SIZE: int = 500                # rows per database write batch
EXTENDED_DATA_CHUNK_SIZE: int = 1000  # Postgres bind-parameter ceiling

ARCHIVE_PATH: str = "archive/tcgplayer"
ARCHIVE_EXTENSION: str = "ppmd.7z"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TimelineInterval(str, Enum):
    """Bucket widths accepted by the price timeline query."""
    ONE_HOUR = "1 hour"
    SIX_HOURS = "6 hours"
    TWELVE_HOURS = "12 hours"
    ONE_DAY = "1 day"
    ONE_WEEK = "1 week"
    ONE_MONTH = "1 month"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def _env_files() -> tuple[str, ...]:
    """Credential files for the active ENVIRONMENT; later files win."""
    if os.getenv("ENVIRONMENT") == "production":
        return (".env", ".prod.vars")
    return (".env", ".dev.vars")


class Settings(BaseSettings):
    """
    Runtime configuration for the ingestion scripts.

    Environment variables override values read from the vars files.
    """

    model_config = SettingsConfigDict(
        env_file=_env_files(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ENVIRONMENT: str = "development"

    # -----------------------------------------------------------------------
    # Database
    # -----------------------------------------------------------------------
    DATABASE_URL: str = ""

    # -----------------------------------------------------------------------
    # Upstream (tcgcsv.com)
    # -----------------------------------------------------------------------
    TCGCSV_BASE_URL: str = "https://tcgcsv.com"
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # -----------------------------------------------------------------------
    # Historical import
    # -----------------------------------------------------------------------
    HISTORICAL_WORK_DIR: str = ".temp-historical-import"

    LOG_LEVEL: str = "INFO"

    def require_database_url(self) -> str:
        """Return DATABASE_URL or fail the run if it is not configured."""
        if not self.DATABASE_URL:
            raise ConfigurationError("Missing Environment Variable: DATABASE_URL")
        return self.DATABASE_URL


# Singleton instance
settings = Settings()
