"""Platform baseline for shadow databases.

The live target already has the platform's roles, default privileges, the
realtime publication and the auth subsystem's tables.  A shadow must have the
same objects, or every diff is polluted with statements for them.  This
module provides:

- ``baseline_statements``: roles, grants, default privileges, publications
- ``load_auth_migrations``: the auth subsystem's migration set
- ``is_benign_seeding_error``: which seeding errors are safe to ignore

Usage:
    from schema_sync.shadow.baseline import baseline_statements, load_auth_migrations

    for statement in baseline_statements(PlatformRules()):
        await shadow.exec(statement)
    for name, sql in load_auth_migrations():
        await shadow.exec(sql)
"""

import re
from pathlib import Path

from schema_sync.errors import ShadowSeedError
from schema_sync.schema.models import PlatformRules

BUNDLED_AUTH_MIGRATIONS = Path(__file__).parent / "migrations" / "auth"

# Go template placeholder used by the upstream auth migration files.
_NAMESPACE_TEMPLATE = re.compile(r"\{\{\s*index\s+\.Options\s+\"Namespace\"\s*\}\}")

_API_ROLES = "postgres, anon, authenticated, service_role"


def _create_role(name: str) -> str:
    return (
        f"DO $$ BEGIN CREATE ROLE {name}; "
        "EXCEPTION WHEN duplicate_object THEN NULL; END $$"
    )


def baseline_statements(rules: PlatformRules | None = None) -> list[str]:
    """Statements that give a shadow the platform objects a live target has.

    Roles and publications come from *rules*, so a target with extra
    platform roles only needs a different ``PlatformRules``.

    Example:
        >>> baseline_statements(PlatformRules(managed_roles=("anon",), publications=()))[0]
        'DO $$ BEGIN CREATE ROLE anon; EXCEPTION WHEN duplicate_object THEN NULL; END $$'
    """
    rules = rules or PlatformRules()
    # Roles are cluster-wide on a real server, so creation must tolerate reruns.
    statements = [_create_role(role) for role in rules.managed_roles]
    statements += [
        f"GRANT {role} TO authenticator"
        for role in ("anon", "authenticated", "service_role")
        if role in rules.managed_roles and "authenticator" in rules.managed_roles
    ]
    statements += [
        # Platform schemas
        "CREATE SCHEMA IF NOT EXISTS extensions",
        "CREATE SCHEMA IF NOT EXISTS auth",
        "CREATE SCHEMA IF NOT EXISTS storage",
        'CREATE EXTENSION IF NOT EXISTS "uuid-ossp" WITH SCHEMA extensions',
        "CREATE EXTENSION IF NOT EXISTS pgcrypto WITH SCHEMA extensions",
        # Public schema
        f"GRANT USAGE ON SCHEMA public TO {_API_ROLES}",
        f"ALTER DEFAULT PRIVILEGES IN SCHEMA public GRANT ALL ON TABLES TO {_API_ROLES}",
        f"ALTER DEFAULT PRIVILEGES IN SCHEMA public GRANT ALL ON FUNCTIONS TO {_API_ROLES}",
        f"ALTER DEFAULT PRIVILEGES IN SCHEMA public GRANT ALL ON SEQUENCES TO {_API_ROLES}",
        f"ALTER DEFAULT PRIVILEGES FOR ROLE supabase_admin IN SCHEMA public GRANT ALL ON SEQUENCES TO {_API_ROLES}",
        f"ALTER DEFAULT PRIVILEGES FOR ROLE supabase_admin IN SCHEMA public GRANT ALL ON TABLES TO {_API_ROLES}",
        f"ALTER DEFAULT PRIVILEGES FOR ROLE supabase_admin IN SCHEMA public GRANT ALL ON FUNCTIONS TO {_API_ROLES}",
        # Extensions schema
        f"GRANT USAGE ON SCHEMA extensions TO {_API_ROLES}",
    ]
    statements += [f"CREATE PUBLICATION {name}" for name in rules.publications]
    statements += [
        # Storage schema
        f"GRANT USAGE ON SCHEMA storage TO {_API_ROLES}",
        f"ALTER DEFAULT PRIVILEGES IN SCHEMA storage GRANT ALL ON TABLES TO {_API_ROLES}",
        f"ALTER DEFAULT PRIVILEGES IN SCHEMA storage GRANT ALL ON FUNCTIONS TO {_API_ROLES}",
        f"ALTER DEFAULT PRIVILEGES IN SCHEMA storage GRANT ALL ON SEQUENCES TO {_API_ROLES}",
    ]
    return statements


# ============================================================================
# Auth Migrations
# ============================================================================


def render_auth_migration(content: str, namespace: str = "auth") -> str:
    """Replace the upstream namespace template with a concrete schema.

    Example:
        >>> render_auth_migration('CREATE TABLE {{ index .Options "Namespace" }}.users ()')
        'CREATE TABLE auth.users ()'
    """
    return _NAMESPACE_TEMPLATE.sub(namespace, content)


def load_auth_migrations(directory: Path | None = None) -> list[tuple[str, str]]:
    """Read and render ``*.up.sql`` auth migrations, sorted by file name.

    Args:
        directory: External migration set; defaults to the bundled one.

    Returns:
        List of ``(file name, rendered SQL)`` pairs.

    Raises:
        ShadowSeedError: If the directory is missing, empty, or unreadable.
    """
    directory = directory or BUNDLED_AUTH_MIGRATIONS
    if not directory.is_dir():
        raise ShadowSeedError(
            "auth_migrations", f"Auth migrations directory not found: {directory}"
        )

    paths = sorted(directory.glob("*.up.sql"), key=lambda p: p.name)
    if not paths:
        raise ShadowSeedError("auth_migrations", f"No auth migrations found in {directory}")

    migrations: list[tuple[str, str]] = []
    for path in paths:
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ShadowSeedError(
                "auth_migrations", f"Failed to read auth migration: {e}", path=path.name
            ) from e
        migrations.append((path.name, render_auth_migration(content)))

    return migrations


# ============================================================================
# Error Classification
# ============================================================================

# duplicate_object, duplicate_table, duplicate_schema, duplicate_function,
# unique_violation, undefined_file (extension control file), feature_not_supported
BENIGN_SQLSTATES: frozenset[str] = frozenset({
    "42710",
    "42P07",
    "42P06",
    "42723",
    "23505",
    "58P01",
    "0A000",
})


def is_benign_seeding_error(error: BaseException) -> bool:
    """True if a baseline/auth seeding error does not affect the diff.

    Checks the SQLSTATE first (psycopg and asyncpg both expose
    ``sqlstate``), then falls back to message heuristics.

    Examples:
        >>> is_benign_seeding_error(Exception('relation "users" already exists'))
        True
        >>> is_benign_seeding_error(Exception('syntax error at or near "CREAT"'))
        False
    """
    if getattr(error, "sqlstate", None) in BENIGN_SQLSTATES:
        return True

    message = str(error).lower()
    if "extension" in message and (
        "does not exist" in message
        or "not available" in message
        or "could not open" in message
    ):
        return True
    if "already exists" in message:
        return True
    return "duplicate key" in message


def is_tolerated_file_error(error: BaseException) -> bool:
    """True if a user schema file error can be skipped.

    Only "already exists" is tolerated: a file may re-create a schema the
    builder already created from its directory name.
    """
    return "already exists" in str(error).lower()
