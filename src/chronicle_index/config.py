"""Configuration module for the Chronicle index."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from the nearest .env file and from the user's
# home-level config, in that order (earlier values win).
load_dotenv()
_USER_ENV = Path.home() / ".chronicle" / ".env"
load_dotenv(_USER_ENV)

logger = logging.getLogger(__name__)

# Directory created inside every vault for index state
INDEX_DIR_NAME = ".chronicle"
DATABASE_FILE_NAME = "chronicle.db"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class ChronicleConfig(BaseModel):
    """Configuration for the vault index."""

    # Vault root (the directory holding the notes)
    vault_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("CHRONICLE_VAULT_DIR", "."))
    )
    # Explicit database location. When unset the store lives inside the
    # vault under .chronicle/chronicle.db
    database_path: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("CHRONICLE_DATABASE_PATH"))
            if os.getenv("CHRONICLE_DATABASE_PATH")
            else None
        )
    )
    # In-memory store: nothing is persisted, the index is rebuilt on open
    in_memory_db: bool = Field(
        default_factory=lambda: _env_flag("CHRONICLE_IN_MEMORY_DB", "false")
    )
    # Extension of note files, including the leading dot
    note_extension: str = Field(
        default_factory=lambda: os.getenv("CHRONICLE_NOTE_EXTENSION", ".md")
    )
    # Search defaults
    search_limit: int = Field(
        default_factory=lambda: int(os.getenv("CHRONICLE_SEARCH_LIMIT", "20"))
    )
    snippet_tokens: int = Field(
        default_factory=lambda: int(os.getenv("CHRONICLE_SNIPPET_TOKENS", "32"))
    )
    # Logging
    log_level: str = Field(
        default_factory=lambda: os.getenv("CHRONICLE_LOG_LEVEL", "WARNING")
    )
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("CHRONICLE_LOG_DIR"))
            if os.getenv("CHRONICLE_LOG_DIR")
            else None
        )
    )

    @model_validator(mode="after")
    def _validate(self) -> "ChronicleConfig":
        """Reject settings the index cannot work with."""
        if not self.note_extension.startswith(".") or len(self.note_extension) < 2:
            raise ValueError("note_extension must look like '.md'")
        if self.search_limit < 1:
            raise ValueError("search_limit must be >= 1")
        # FTS5 caps snippet() at 64 tokens
        if not 1 <= self.snippet_tokens <= 64:
            raise ValueError("snippet_tokens must be between 1 and 64")
        self.log_level = self.log_level.upper()
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return self

    def get_database_path(self, vault_dir: Optional[Path] = None) -> Path:
        """Resolve where the store for a vault lives.

        An explicit ``database_path`` wins; relative values are taken
        relative to the vault. Otherwise ``<vault>/.chronicle/chronicle.db``.
        """
        vault = Path(vault_dir) if vault_dir is not None else self.vault_dir
        if self.database_path is None:
            return vault / INDEX_DIR_NAME / DATABASE_FILE_NAME
        if self.database_path.is_absolute():
            return self.database_path
        return vault / self.database_path


# Create a global config instance
config = ChronicleConfig()
