"""Configuration module for the Notefold MCP server."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from notefold_mcp import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config: survives reinstalls, lives alongside the database
_USER_ENV = Path.home() / ".notefold" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class NotefoldConfig(BaseModel):
    """Configuration for the Notefold server."""

    # Base directory for the project
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTEFOLD_BASE_DIR", "."))
    )
    # Database configuration
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("NOTEFOLD_DATABASE_PATH", "data/db/notefold.db")
        )
    )
    # When True, uses a private in-memory SQLite database (tests, throwaway runs)
    in_memory_db: bool = Field(
        default_factory=lambda: _env_flag("NOTEFOLD_IN_MEMORY_DB", "false")
    )
    # Title given to the root folder created by initialize
    root_folder_title: str = Field(
        default_factory=lambda: os.getenv("NOTEFOLD_ROOT_TITLE", "Root")
    )
    default_note_title: str = Field(
        default_factory=lambda: os.getenv("NOTEFOLD_DEFAULT_NOTE_TITLE", "Untitled")
    )
    max_title_length: int = Field(
        default_factory=lambda: int(os.getenv("NOTEFOLD_MAX_TITLE_LENGTH", "500"))
    )
    # Server configuration
    server_name: str = Field(default=os.getenv("NOTEFOLD_SERVER_NAME", "notefold-mcp"))
    server_version: str = Field(default=__version__)
    # Logging configuration
    log_level: str = Field(
        default_factory=lambda: os.getenv("NOTEFOLD_LOG_LEVEL", "INFO").upper()
    )
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTEFOLD_LOG_DIR"))
            if os.getenv("NOTEFOLD_LOG_DIR")
            else None
        )
    )

    @model_validator(mode="after")
    def _validate_limits(self) -> "NotefoldConfig":
        """Reject settings that would make folder or note creation impossible."""
        if not self.root_folder_title.strip():
            raise ValueError("root_folder_title cannot be blank")
        if self.max_title_length < 1:
            raise ValueError("max_title_length must be >= 1")
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            logger.warning(
                "Unknown log level %r, falling back to INFO", self.log_level
            )
            self.log_level = "INFO"
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
config = NotefoldConfig()
