"""Configuration loading: TOML project file plus environment settings.

Usage:
    from schema_sync.config.loader import load_project_config, get_settings

    config = load_project_config()          # ./schema-sync.toml
    settings = get_settings()               # SCHEMA_SYNC_* environment
"""

import tomllib
from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from schema_sync.config.models import ProjectConfig

CONFIG_FILE_NAME = "schema-sync.toml"


class Settings(BaseSettings):
    """Environment settings.

    Environment values override the project file:
    - ``SCHEMA_SYNC_PROFILE`` (or ``DB_PROFILE``): profile to use
    - ``SCHEMA_SYNC_SHADOW_URL``: admin URL of the shadow server
    - ``SCHEMA_SYNC_VERBOSE``: debug logging
    """

    model_config = SettingsConfigDict(env_prefix="SCHEMA_SYNC_", extra="ignore")

    profile: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SCHEMA_SYNC_PROFILE", "DB_PROFILE"),
    )
    shadow_url: str | None = None
    verbose: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def find_config_file(start: Path | None = None) -> Path:
    """Default config path: ``schema-sync.toml`` in the working directory."""
    return (start or Path.cwd()) / CONFIG_FILE_NAME


def load_project_config(config_path: Path | None = None) -> ProjectConfig:
    """Load project configuration from TOML file.

    Args:
        config_path: Path to schema-sync.toml (default: ./schema-sync.toml)

    Returns:
        ProjectConfig with all profiles and settings

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid
    """
    if config_path is None:
        config_path = find_config_file()

    if not config_path.exists():
        raise FileNotFoundError(
            f"Project config not found: {config_path}\n"
            f"Create {CONFIG_FILE_NAME} with at least one [profiles.<name>] table."
        )

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    try:
        return ProjectConfig.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid config in {config_path}: {e}") from e
