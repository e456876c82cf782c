"""Project configuration: TOML file models and environment settings."""

from schema_sync.config.loader import Settings, get_settings, load_project_config
from schema_sync.config.models import (
    DatabaseProfile,
    ProjectConfig,
    SchemaSettings,
    SeedSettings,
    WatchSettings,
)

__all__ = [
    "Settings",
    "get_settings",
    "load_project_config",
    "DatabaseProfile",
    "ProjectConfig",
    "SchemaSettings",
    "SeedSettings",
    "WatchSettings",
]
