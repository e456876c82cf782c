"""Pydantic models for project configuration (``schema-sync.toml``)."""

from pydantic import BaseModel, Field


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Target database profile from schema-sync.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    provider: str = "supabase"


class SchemaSettings(BaseModel):
    """Where schema files live and how shadows are built."""

    dir: str = "supabase/schema"
    shadow_url: str | None = None  # Admin URL of the local shadow server
    auth_migrations_dir: str | None = None  # Overrides the bundled migrations


class SeedSettings(BaseModel):
    """Seed files executed after a successful push."""

    enabled: bool = True
    paths: list[str] = Field(default_factory=lambda: ["./seed.sql"])


class WatchSettings(BaseModel):
    """Watch mode timing."""

    debounce_ms: int = Field(default=500, ge=0)
    step_ms: int = Field(default=50, gt=0)  # watchfiles batching step


class ProjectConfig(BaseModel):
    """Complete project configuration from schema-sync.toml."""

    profiles: dict[str, DatabaseProfile] = Field(default_factory=dict)
    default_profile: str | None = None
    schema_: SchemaSettings = Field(default_factory=SchemaSettings, alias="schema")
    seed: SeedSettings = Field(default_factory=SeedSettings)
    watch: WatchSettings = Field(default_factory=WatchSettings)

    model_config = {"populate_by_name": True}
