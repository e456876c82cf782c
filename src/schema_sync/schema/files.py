"""Schema source files and dependency ordering.

Reads the declarative ``.sql`` tree and orders it so that objects are created
before anything that references them.  The priority of a file comes from its
own name or its immediate parent directory (case-insensitive)::

    supabase/schema/
        public/
            types.sql        -> 2
            tables.sql       -> 3
            indexes.sql      -> 4
            foreign_keys.sql -> 5  (after the tables of every schema)
        api/
            views/users.sql  -> 5  (from the "views" directory)

Files with the same priority are ordered by relative path.  Pure logic apart
from ``find_sql_files``, which reads the disk.

Usage:
    from schema_sync.schema.files import find_sql_files, order_schema_files

    files = find_sql_files(Path("supabase/schema"))
    for f in files:
        print(f.priority, f.path)
"""

from dataclasses import dataclass
from pathlib import Path, PurePosixPath

FILE_PRIORITY: dict[str, int] = {
    "schemas": 0,
    "schema": 0,
    "extensions": 1,
    "types": 2,
    "enums": 2,
    "domains": 2,
    "tables": 3,
    "table": 3,
    "indexes": 4,
    "index": 4,
    "foreign_keys": 5,
    "foreign_key": 5,
    "functions": 5,
    "function": 5,
    "views": 5,
    "view": 5,
    "triggers": 6,
    "trigger": 6,
    "rls": 7,
    "policies": 7,
    "policy": 7,
    "grants": 8,
    "permissions": 8,
}

DEFAULT_PRIORITY = 50

# Schemas the platform already provides; directories with these names are
# never auto-created.
BUILTIN_SCHEMAS: frozenset[str] = frozenset({
    "public",
    "auth",
    "storage",
    "extensions",
    "graphql",
    "graphql_public",
    "realtime",
    "supabase_functions",
    "pgsodium",
    "vault",
})

API_ROLES: tuple[str, ...] = ("anon", "authenticated", "service_role")


def file_priority(relative_path: str) -> int:
    """Return the dependency priority for a schema file.

    The file's own stem wins over its parent directory name.

    Examples:
        >>> file_priority("public/tables.sql")
        3
        >>> file_priority("public/Indexes/by_email.sql")
        4
        >>> file_priority("public/seed_helpers.sql")
        50
    """
    parts = PurePosixPath(relative_path.lower()).parts
    file_name = parts[-1].removesuffix(".sql") if parts else ""
    dir_name = parts[-2] if len(parts) > 1 else ""

    if file_name in FILE_PRIORITY:
        return FILE_PRIORITY[file_name]
    return FILE_PRIORITY.get(dir_name, DEFAULT_PRIORITY)


@dataclass(frozen=True)
class SchemaFile:
    """One declarative SQL unit read from disk.

    Attributes:
        path: Path relative to the schema root, always ``/``-separated.
        content: Raw SQL text.
    """

    path: str
    content: str

    @property
    def priority(self) -> int:
        return file_priority(self.path)

    @property
    def sort_key(self) -> tuple[int, str]:
        return (self.priority, self.path)


def order_schema_files(files: list[SchemaFile]) -> list[SchemaFile]:
    """Sort files by (priority, path).

    The key is total: two files can only compare equal if they have the same
    path, so any permutation of the input gives the same output.
    """
    return sorted(files, key=lambda f: f.sort_key)


def find_sql_files(schema_dir: Path) -> list[SchemaFile]:
    """Recursively read every ``.sql`` file under *schema_dir*, ordered.

    Returns an empty list when the directory does not exist.
    """
    if not schema_dir.is_dir():
        return []

    files: list[SchemaFile] = []
    for path in schema_dir.rglob("*.sql"):
        if not path.is_file():
            continue
        relative = path.relative_to(schema_dir).as_posix()
        files.append(SchemaFile(path=relative, content=path.read_text(encoding="utf-8")))

    return order_schema_files(files)


def find_custom_schemas(files: list[SchemaFile]) -> list[str]:
    """Top-level directories that hold SQL and are not platform schemas.

    Only directories with a ``.sql`` file directly inside them count.
    Category directories (``tables/``, ``indexes/`` ...) are not schemas.
    """
    schemas = {
        PurePosixPath(f.path).parts[0]
        for f in files
        if len(PurePosixPath(f.path).parts) == 2
    }
    return sorted(
        s for s in schemas if s.lower() not in BUILTIN_SCHEMAS and s.lower() not in FILE_PRIORITY
    )


def generate_schema_creation_sql(schemas: list[str]) -> str:
    """SQL creating each custom schema and granting API roles usage on it."""
    if not schemas:
        return ""

    roles = ", ".join(API_ROLES)
    statements = [
        f"CREATE SCHEMA IF NOT EXISTS {schema};\n"
        f"GRANT USAGE ON SCHEMA {schema} TO {roles};"
        for schema in schemas
    ]
    return "-- Auto-generated schema creation\n" + "\n\n".join(statements)
