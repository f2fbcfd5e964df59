"""Configuration management for todo-delta."""

from __future__ import annotations

import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from todo_delta.models import Tag

CONFIG_FILE_NAME = ".todo-delta.toml"

# Files above this size are treated as holding no annotations
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024

DEFAULT_EXCLUDE_DIRS = [
    ".git",
    "node_modules",
    "__pycache__",
    ".venv",
    "venv",
    ".mypy_cache",
    ".pytest_cache",
    ".ruff_cache",
    "dist",
    "build",
    "target",
    ".eggs",
]


class Settings(BaseSettings):
    """Settings loaded from environment variables, `.env` and `.todo-delta.toml`."""

    model_config = SettingsConfigDict(
        env_prefix="TODO_DELTA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Annotation matching
    tags: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [tag.value for tag in Tag],
        description="Tags to recognise (comma-separated in the environment)",
    )
    tags_pattern_override: str | None = Field(
        default=None,
        description=(
            "Custom regex replacing the generated tag pattern. Groups: 1=tag, "
            "2=author, 3=priority marker, 4=message"
        ),
    )

    # Exclusion rules
    exclude_dirs: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDE_DIRS),
        description="Directory names skipped wherever they appear in a path",
    )
    exclude_patterns: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Regexes matched against the relative path of each file",
    )
    respect_gitignore: bool = Field(
        default=True,
        description="Skip files matched by .gitignore rules and .git/info/exclude",
    )

    # Limits
    max_file_size: int = Field(
        default=DEFAULT_MAX_FILE_SIZE,
        description="Files larger than this (bytes) are not read",
    )
    git_timeout: float = Field(default=30.0, description="Timeout for each git call (seconds)")

    # Watch mode
    debounce_ms: int = Field(default=500, description="Debounce window for file events (ms)")
    webhook_agent_name: str = Field(
        default="todo-delta", description="Username shown on webhook deliveries"
    )

    # Application
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="WARNING", description="Logging level")

    # Logging Configuration
    log_to_file: bool = Field(default=False, description="Enable file-based logging")
    log_directory: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(
        default=10485760,  # 10MB
        description="Max size per log file before rotation",
    )
    log_file_backup_count: int = Field(
        default=3, description="Number of rotated log files to keep"
    )

    @field_validator("tags", "exclude_dirs", "exclude_patterns", mode="before")
    @classmethod
    def split_comma_separated(cls, v: Any) -> Any:
        """Accept comma-separated strings from the environment."""
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: list[str]) -> list[str]:
        """Normalise tags and reject names outside the vocabulary."""
        normalized: list[str] = []
        for raw in v:
            tag = Tag.parse(raw)
            if tag is None:
                valid = [t.value for t in Tag]
                raise ValueError(f"unknown tag {raw!r}, expected one of {valid}")
            if tag.value not in normalized:
                normalized.append(tag.value)
        if not normalized:
            raise ValueError("at least one tag must be configured")
        return normalized

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got: {v}")
        return v.upper()

    @field_validator("max_file_size", "debounce_ms")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Value must be positive, got: {v}")
        return v

    @property
    def tag_set(self) -> set[Tag]:
        return {Tag(value) for value in self.tags}

    @property
    def tags_pattern(self) -> str:
        """Regex source used by the line scanner."""
        if self.tags_pattern_override:
            return self.tags_pattern_override
        alternatives = "|".join(self.tags)
        return rf"(?i)\b({alternatives})(?:\(([^)]*)\))?\s*:\s*(!!|!)?\s*(.*)$"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"

    @property
    def log_file_path(self) -> str:
        """Get the full log file path."""
        return f"{self.log_directory}/todo_delta.log"


def read_config_file(root: Path) -> dict[str, Any]:
    """Read `.todo-delta.toml` from ``root``, returning {} when absent."""
    path = root / CONFIG_FILE_NAME
    if not path.is_file():
        return {}
    with path.open("rb") as f:
        return tomllib.load(f)


def load_settings(root: Path, **overrides: Any) -> Settings:
    """Build settings for a project root.

    Values from the project's config file and explicit ``overrides`` are
    passed as init values, so they take precedence over the environment.
    """
    values = read_config_file(root)
    values.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**values)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
