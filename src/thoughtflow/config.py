"""Configuration module for ThoughtFlow."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

from thoughtflow import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config lives alongside the default database
_USER_ENV = Path.home() / ".thoughtflow" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

_TRUTHY = ("true", "1", "yes")


class ThoughtflowConfig(BaseModel):
    """Configuration for the ThoughtFlow engine and its MCP surface."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("THOUGHTFLOW_BASE_DIR", "."))
    )
    # Database configuration
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("THOUGHTFLOW_DATABASE_PATH", "data/db/thoughtflow.db")
        )
    )
    # When True, uses a process-local in-memory SQLite database
    in_memory_db: bool = Field(
        default_factory=lambda: os.getenv("THOUGHTFLOW_IN_MEMORY_DB", "false").lower()
        in _TRUTHY
    )
    # Identity bound to the session. None means "no session": saves are
    # rejected with AuthError.
    owner_id: Optional[str] = Field(
        default_factory=lambda: os.getenv("THOUGHTFLOW_OWNER_ID") or None
    )
    # Quiet period (seconds) after the last edit before a draft autosaves
    autosave_delay: float = Field(
        default_factory=lambda: float(os.getenv("THOUGHTFLOW_AUTOSAVE_DELAY", "5"))
    )
    # Quiet period (seconds) before a typed search query is applied
    search_debounce: float = Field(
        default_factory=lambda: float(
            os.getenv("THOUGHTFLOW_SEARCH_DEBOUNCE", "0.3")
        )
    )
    default_sort: str = Field(
        default_factory=lambda: os.getenv("THOUGHTFLOW_DEFAULT_SORT", "newest")
    )
    # Shown for tag records stored without a color
    default_tag_color: str = Field(
        default_factory=lambda: os.getenv("THOUGHTFLOW_DEFAULT_TAG_COLOR", "#6E59A5")
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("THOUGHTFLOW_LOG_LEVEL", "INFO")
    )
    # Server configuration
    server_name: str = Field(
        default_factory=lambda: os.getenv("THOUGHTFLOW_SERVER_NAME", "thoughtflow")
    )
    server_version: str = Field(default=__version__)

    @field_validator("default_sort")
    @classmethod
    def _validate_sort(cls, v: str) -> str:
        v = v.lower()
        if v not in ("newest", "oldest"):
            raise ValueError("default_sort must be 'newest' or 'oldest'")
        return v

    @model_validator(mode="after")
    def _validate_delays(self) -> "ThoughtflowConfig":
        """Reject delays the debounce timers cannot honor."""
        if self.autosave_delay <= 0:
            raise ValueError("autosave_delay must be > 0")
        if self.search_debounce < 0:
            raise ValueError("search_debounce must be >= 0")
        if self.autosave_delay < 0.5:
            logger.warning(
                "autosave_delay=%.2fs is very short; every pause in typing "
                "will hit the persistence service",
                self.autosave_delay,
            )
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        if self.in_memory_db:
            return "sqlite://"
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"


# Create a global config instance
config = ThoughtflowConfig()
