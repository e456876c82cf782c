"""schema-sync: declarative schema synchronization for Postgres.

Builds the desired state in a throwaway shadow database, diffs it against the
live database, filters out platform-managed objects, and applies the result
under an optimistic fingerprint check.  Also pulls the live schema back into
categorized files.

Usage:
    from schema_sync import SchemaSyncEngine, load_project_config

    engine = SchemaSyncEngine.from_config(load_project_config(), profile="dev")
    result = await engine.push(dry_run=True)
"""

__version__ = "0.1.0"

# Adapters
from schema_sync.adapters.base import DatabaseClient, Queryable
from schema_sync.adapters.postgres import AsyncPostgresAdapter

# Config
from schema_sync.config.loader import load_project_config
from schema_sync.config.models import DatabaseProfile, ProjectConfig

# Errors
from schema_sync.errors import (
    PlanError,
    ProfileNotFoundError,
    SchemaFileError,
    SchemaSyncError,
    ShadowSeedError,
    sanitize_connection_string,
)

# Factory
from schema_sync.factory import ConnectionRegistry, get_active_profile, resolve_url

# Schema
from schema_sync.schema.filter import StatementKind, classify, filter_statements
from schema_sync.schema.models import PlatformRules
from schema_sync.schema.oracle import DiffOracle, IntrospectionDiffOracle

# Shadow
from schema_sync.shadow.builder import ShadowStateBuilder
from schema_sync.shadow.engine import PostgresShadowEngine, ShadowEngine

# Sync
from schema_sync.sync.engine import SchemaSyncEngine
from schema_sync.sync.models import (
    ApplyResult,
    ApplyStatus,
    DiffPlan,
    DiffResult,
    PullResult,
    PushResult,
)

__all__ = [
    # Adapters
    "DatabaseClient",
    "Queryable",
    "AsyncPostgresAdapter",
    # Config
    "load_project_config",
    "DatabaseProfile",
    "ProjectConfig",
    # Errors
    "SchemaSyncError",
    "ProfileNotFoundError",
    "ShadowSeedError",
    "SchemaFileError",
    "PlanError",
    "sanitize_connection_string",
    # Factory
    "ConnectionRegistry",
    "get_active_profile",
    "resolve_url",
    # Schema
    "StatementKind",
    "classify",
    "filter_statements",
    "PlatformRules",
    "DiffOracle",
    "IntrospectionDiffOracle",
    # Shadow
    "ShadowStateBuilder",
    "PostgresShadowEngine",
    "ShadowEngine",
    # Sync
    "SchemaSyncEngine",
    "ApplyResult",
    "ApplyStatus",
    "DiffPlan",
    "DiffResult",
    "PullResult",
    "PushResult",
]
