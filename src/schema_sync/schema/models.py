"""Pydantic models for catalog snapshots and platform rules.

This module contains schema-domain models:
- Introspection models: ColumnSchema, ConstraintSchema, IndexSchema,
  TriggerSchema, PolicySchema, FunctionSchema, ViewSchema, EnumTypeSchema,
  TableSchema, DatabaseSchema
- Platform rules: PlatformRules

Objects are keyed by their schema-qualified name (``public.users``) so two
snapshots can be compared with plain dict/set operations.

Sync-domain models (DiffPlan, ApplyResult, ...) live in
schema_sync.sync.models.
"""

import hashlib
import json

from pydantic import BaseModel, Field


# ============================================================================
# Platform Rules
# ============================================================================


class PlatformRules(BaseModel):
    """Which schemas, roles and publications the hosting platform owns.

    Passed to the diff oracle so it can skip platform objects while
    introspecting; the statement filter applies the same rules again as the
    authoritative second pass.

    Example:
        >>> rules = PlatformRules()
        >>> "auth" in rules.managed_schemas
        True
    """

    managed_schemas: tuple[str, ...] = (
        "storage",
        "auth",
        "realtime",
        "supabase_functions",
        "graphql",
        "graphql_public",
        "pgsodium",
        "vault",
        "extensions",
    )
    managed_roles: tuple[str, ...] = (
        "anon",
        "authenticated",
        "service_role",
        "authenticator",
        "supabase_admin",
        "supabase_auth_admin",
        "supabase_storage_admin",
        "dashboard_user",
        "pgbouncer",
    )
    publications: tuple[str, ...] = ("supabase_realtime",)
    # Foreign keys into managed schemas whose ADD CONSTRAINT is filtered
    # leave an orphan DROP CONSTRAINT behind; these names mark them.
    managed_fk_constraints: tuple[str, ...] = ("profiles_id_fkey",)


# ============================================================================
# Schema Introspection Models
# ============================================================================


def _subtract(left: dict[str, list[str]], right: dict[str, list[str]]) -> dict[str, list[str]]:
    result: dict[str, list[str]] = {}
    for grantee, privileges in left.items():
        remaining = sorted(set(privileges) - set(right.get(grantee, [])))
        if remaining:
            result[grantee] = remaining
    return result


class ColumnSchema(BaseModel):
    """Schema for a table column.

    Example:
        >>> col = ColumnSchema(name="id", data_type="uuid")
        >>> col.is_nullable
        True
    """

    name: str
    data_type: str
    is_nullable: bool = True
    default: str | None = None
    identity: str | None = None  # "ALWAYS" or "BY DEFAULT"


class ConstraintSchema(BaseModel):
    """Schema for a table constraint.

    ``definition`` is the server-rendered text (``pg_get_constraintdef``),
    e.g. ``FOREIGN KEY (author_id) REFERENCES public.authors(id)``.
    """

    name: str
    constraint_type: str  # PRIMARY KEY, FOREIGN KEY, UNIQUE, CHECK, EXCLUDE
    definition: str
    references_table: str | None = None  # schema-qualified

    @property
    def is_foreign_key(self) -> bool:
        return self.constraint_type == "FOREIGN KEY"


class IndexSchema(BaseModel):
    """Schema for an index that does not back a constraint."""

    name: str
    definition: str  # pg_get_indexdef
    is_unique: bool = False


class TriggerSchema(BaseModel):
    """Schema for a table trigger."""

    name: str
    definition: str  # pg_get_triggerdef


class PolicySchema(BaseModel):
    """Schema for a row-level security policy."""

    name: str
    command: str = "ALL"  # ALL, SELECT, INSERT, UPDATE, DELETE
    permissive: bool = True
    roles: list[str] = Field(default_factory=lambda: ["public"])
    using: str | None = None
    with_check: str | None = None


class TableSchema(BaseModel):
    """Schema for a table."""

    schema_name: str
    name: str
    columns: dict[str, ColumnSchema] = Field(default_factory=dict)
    constraints: dict[str, ConstraintSchema] = Field(default_factory=dict)
    indexes: dict[str, IndexSchema] = Field(default_factory=dict)
    triggers: dict[str, TriggerSchema] = Field(default_factory=dict)
    policies: dict[str, PolicySchema] = Field(default_factory=dict)
    rls_enabled: bool = False
    rls_forced: bool = False
    grants: dict[str, list[str]] = Field(default_factory=dict)  # grantee -> privileges
    # What the owner's default privileges hand out when the table is created.
    default_grants: dict[str, list[str]] = Field(default_factory=dict)

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.name}"

    def explicit_grants(self) -> dict[str, list[str]]:
        """Privileges held beyond the default grants, per grantee.

        Example:
            >>> t = TableSchema(
            ...     schema_name="public", name="posts",
            ...     grants={"anon": ["SELECT", "INSERT"]},
            ...     default_grants={"anon": ["SELECT"]},
            ... )
            >>> t.explicit_grants()
            {'anon': ['INSERT']}
        """
        return _subtract(self.grants, self.default_grants)

    def withheld_grants(self) -> dict[str, list[str]]:
        """Default grants that were revoked after creation, per grantee."""
        return _subtract(self.default_grants, self.grants)


class FunctionSchema(BaseModel):
    """Schema for a function, keyed by name plus identity arguments."""

    schema_name: str
    name: str
    identity_arguments: str = ""
    return_type: str = ""
    definition: str = ""  # pg_get_functiondef

    @property
    def signature(self) -> str:
        return f"{self.schema_name}.{self.name}({self.identity_arguments})"


class ViewSchema(BaseModel):
    """Schema for a view."""

    schema_name: str
    name: str
    definition: str

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.name}"


class EnumTypeSchema(BaseModel):
    """Schema for an enum type."""

    schema_name: str
    name: str
    labels: list[str] = Field(default_factory=list)

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.name}"


class DatabaseSchema(BaseModel):
    """Complete snapshot of the user-owned part of a database."""

    schemas: list[str] = Field(default_factory=list)
    types: dict[str, EnumTypeSchema] = Field(default_factory=dict)
    tables: dict[str, TableSchema] = Field(default_factory=dict)
    functions: dict[str, FunctionSchema] = Field(default_factory=dict)
    views: dict[str, ViewSchema] = Field(default_factory=dict)

    def fingerprint(self) -> str:
        """SHA-256 of the canonical JSON form of this snapshot.

        Dict keys are sorted so insertion order never changes the value.
        """
        canonical = json.dumps(
            self.model_dump(mode="json"), sort_keys=True, separators=(",", ":")
        )
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
