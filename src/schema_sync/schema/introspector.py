"""PostgreSQL catalog introspection.

This module reads the user-owned part of a database into a
``DatabaseSchema`` snapshot:
- Schemas and enum types
- Tables, columns, data types, nullability, defaults, identity
- Constraints (server-rendered definitions)
- Indexes, triggers, row-level security policies, table grants and the
  default privileges they were created with
- Functions and views

Queries run through any ``Queryable`` (the live SQLAlchemy adapter or the
shadow psycopg connection) and carry no bind parameters, so the same text
works on both drivers.  Platform-managed schemas are excluded in the SQL.
"""

import logging

from schema_sync.adapters.base import Queryable
from schema_sync.schema.models import (
    ColumnSchema,
    ConstraintSchema,
    DatabaseSchema,
    EnumTypeSchema,
    FunctionSchema,
    IndexSchema,
    PlatformRules,
    PolicySchema,
    TableSchema,
    TriggerSchema,
    ViewSchema,
)
from schema_sync.shadow.types import as_list

logger = logging.getLogger(__name__)

# Schemas that are never part of the user's declared state, on top of the
# platform-managed ones.
SYSTEM_SCHEMAS: frozenset[str] = frozenset({
    "information_schema",
    "pg_catalog",
    "pg_toast",
    "supabase_migrations",
    "net",
    "cron",
    "pgbouncer",
    "pgtle",
    "_realtime",
    "_analytics",
})

_IDENTITY = {"a": "ALWAYS", "d": "BY DEFAULT"}

_POLICY_COMMANDS = {"*": "ALL", "r": "SELECT", "a": "INSERT", "w": "UPDATE", "d": "DELETE"}


def _quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class SchemaIntrospector:
    """Introspects a PostgreSQL database into a ``DatabaseSchema``.

    Usage:
        introspector = SchemaIntrospector(client)
        schema = await introspector.introspect()
        print(schema.fingerprint())
    """

    # Tables to exclude from introspection (extension-owned or bookkeeping)
    EXCLUDED_TABLES = {
        "schema_migrations",
        "pg_stat_statements",
        "spatial_ref_sys",
    }

    def __init__(self, client: Queryable, rules: PlatformRules | None = None):
        """Initialize with a query-capable client.

        Args:
            client: Live adapter or shadow engine.
            rules: Platform rules deciding which schemas to skip.
        """
        self._client = client
        self._rules = rules or PlatformRules()

    @property
    def excluded_schemas(self) -> list[str]:
        return sorted(SYSTEM_SCHEMAS | set(self._rules.managed_schemas))

    def _schema_filter(self, column: str) -> str:
        """SQL predicate keeping only user schemas in *column*."""
        excluded = ", ".join(_quote_literal(s) for s in self.excluded_schemas)
        return (
            f"{column} NOT IN ({excluded}) "
            f"AND {column} NOT LIKE 'pg\\_%' ESCAPE '\\'"
        )

    async def introspect(self) -> DatabaseSchema:
        """Introspect the full user-owned schema.

        Returns:
            DatabaseSchema with schemas, types, tables, functions and views.
        """
        db_schema = DatabaseSchema()

        db_schema.schemas = await self._get_schemas()
        db_schema.types = await self._get_enum_types()

        tables = await self._get_tables()
        await self._add_columns(tables)
        await self._add_constraints(tables)
        await self._add_indexes(tables)
        await self._add_triggers(tables)
        await self._add_policies(tables)
        await self._add_grants(tables)
        await self._add_default_grants(tables)
        db_schema.tables = tables

        db_schema.functions = await self._get_functions()
        db_schema.views = await self._get_views()

        logger.debug(
            "Introspected %d schemas, %d tables, %d functions, %d views",
            len(db_schema.schemas),
            len(db_schema.tables),
            len(db_schema.functions),
            len(db_schema.views),
        )
        return db_schema

    # ------------------------------------------------------------------
    # Schemas and types
    # ------------------------------------------------------------------

    async def _get_schemas(self) -> list[str]:
        """Get user schema names."""
        rows = await self._client.query(f"""
            SELECT n.nspname AS name
            FROM pg_namespace n
            WHERE {self._schema_filter("n.nspname")}
              AND NOT EXISTS (
                  SELECT 1 FROM pg_depend d
                  WHERE d.objid = n.oid AND d.deptype = 'e'
              )
            ORDER BY n.nspname
        """)
        return [row["name"] for row in rows]

    async def _get_enum_types(self) -> dict[str, EnumTypeSchema]:
        """Get enum types with their labels in sort order."""
        rows = await self._client.query(f"""
            SELECT
                n.nspname AS schema_name,
                t.typname AS name,
                array_agg(e.enumlabel::text ORDER BY e.enumsortorder) AS labels
            FROM pg_type t
            JOIN pg_namespace n ON n.oid = t.typnamespace
            JOIN pg_enum e ON e.enumtypid = t.oid
            WHERE {self._schema_filter("n.nspname")}
              AND NOT EXISTS (
                  SELECT 1 FROM pg_depend d
                  WHERE d.objid = t.oid AND d.deptype = 'e'
              )
            GROUP BY n.nspname, t.typname
            ORDER BY n.nspname, t.typname
        """)
        types: dict[str, EnumTypeSchema] = {}
        for row in rows:
            enum = EnumTypeSchema(
                schema_name=row["schema_name"],
                name=row["name"],
                labels=as_list(row["labels"]),
            )
            types[enum.qualified_name] = enum
        return types

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    async def _get_tables(self) -> dict[str, TableSchema]:
        """Get ordinary and partitioned tables."""
        rows = await self._client.query(f"""
            SELECT
                n.nspname AS schema_name,
                c.relname AS name,
                c.relrowsecurity AS rls_enabled,
                c.relforcerowsecurity AS rls_forced
            FROM pg_class c
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE c.relkind IN ('r', 'p')
              AND NOT c.relispartition
              AND {self._schema_filter("n.nspname")}
              AND NOT EXISTS (
                  SELECT 1 FROM pg_depend d
                  WHERE d.objid = c.oid AND d.deptype = 'e'
              )
            ORDER BY n.nspname, c.relname
        """)
        tables: dict[str, TableSchema] = {}
        for row in rows:
            if row["name"] in self.EXCLUDED_TABLES:
                continue
            table = TableSchema(
                schema_name=row["schema_name"],
                name=row["name"],
                rls_enabled=bool(row["rls_enabled"]),
                rls_forced=bool(row["rls_forced"]),
            )
            tables[table.qualified_name] = table
        return tables

    async def _add_columns(self, tables: dict[str, TableSchema]) -> None:
        """Attach columns to each table, in ordinal order."""
        rows = await self._client.query(f"""
            SELECT
                n.nspname AS schema_name,
                c.relname AS table_name,
                a.attname AS name,
                format_type(a.atttypid, a.atttypmod) AS data_type,
                NOT a.attnotnull AS is_nullable,
                pg_get_expr(ad.adbin, ad.adrelid) AS column_default,
                a.attidentity::text AS identity
            FROM pg_attribute a
            JOIN pg_class c ON c.oid = a.attrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            LEFT JOIN pg_attrdef ad ON ad.adrelid = a.attrelid AND ad.adnum = a.attnum
            WHERE c.relkind IN ('r', 'p')
              AND a.attnum > 0
              AND NOT a.attisdropped
              AND {self._schema_filter("n.nspname")}
            ORDER BY n.nspname, c.relname, a.attnum
        """)
        for row in rows:
            table = tables.get(f"{row['schema_name']}.{row['table_name']}")
            if table is None:
                continue
            table.columns[row["name"]] = ColumnSchema(
                name=row["name"],
                data_type=row["data_type"],
                is_nullable=bool(row["is_nullable"]),
                default=row["column_default"],
                identity=_IDENTITY.get(row["identity"] or ""),
            )

    async def _add_constraints(self, tables: dict[str, TableSchema]) -> None:
        """Attach primary key, foreign key, unique, check and exclusion constraints."""
        rows = await self._client.query(f"""
            SELECT
                n.nspname AS schema_name,
                c.relname AS table_name,
                con.conname AS name,
                CASE con.contype
                    WHEN 'p' THEN 'PRIMARY KEY'
                    WHEN 'f' THEN 'FOREIGN KEY'
                    WHEN 'u' THEN 'UNIQUE'
                    WHEN 'c' THEN 'CHECK'
                    WHEN 'x' THEN 'EXCLUDE'
                END AS constraint_type,
                pg_get_constraintdef(con.oid) AS definition,
                CASE WHEN con.contype = 'f'
                    THEN rn.nspname || '.' || rc.relname
                END AS references_table
            FROM pg_constraint con
            JOIN pg_class c ON c.oid = con.conrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            LEFT JOIN pg_class rc ON rc.oid = con.confrelid
            LEFT JOIN pg_namespace rn ON rn.oid = rc.relnamespace
            WHERE con.contype IN ('p', 'f', 'u', 'c', 'x')
              AND {self._schema_filter("n.nspname")}
            ORDER BY n.nspname, c.relname, con.conname
        """)
        for row in rows:
            table = tables.get(f"{row['schema_name']}.{row['table_name']}")
            if table is None:
                continue
            table.constraints[row["name"]] = ConstraintSchema(
                name=row["name"],
                constraint_type=row["constraint_type"],
                definition=row["definition"],
                references_table=row["references_table"],
            )

    async def _add_indexes(self, tables: dict[str, TableSchema]) -> None:
        """Attach indexes that do not back a constraint."""
        rows = await self._client.query(f"""
            SELECT
                n.nspname AS schema_name,
                t.relname AS table_name,
                i.relname AS name,
                pg_get_indexdef(ix.indexrelid) AS definition,
                ix.indisunique AS is_unique
            FROM pg_index ix
            JOIN pg_class t ON t.oid = ix.indrelid
            JOIN pg_class i ON i.oid = ix.indexrelid
            JOIN pg_namespace n ON n.oid = t.relnamespace
            WHERE {self._schema_filter("n.nspname")}
              AND NOT EXISTS (
                  SELECT 1 FROM pg_constraint con
                  WHERE con.conindid = ix.indexrelid
              )
            ORDER BY n.nspname, t.relname, i.relname
        """)
        for row in rows:
            table = tables.get(f"{row['schema_name']}.{row['table_name']}")
            if table is None:
                continue
            table.indexes[row["name"]] = IndexSchema(
                name=row["name"],
                definition=row["definition"],
                is_unique=bool(row["is_unique"]),
            )

    async def _add_triggers(self, tables: dict[str, TableSchema]) -> None:
        """Attach user triggers."""
        rows = await self._client.query(f"""
            SELECT
                n.nspname AS schema_name,
                c.relname AS table_name,
                tg.tgname AS name,
                pg_get_triggerdef(tg.oid) AS definition
            FROM pg_trigger tg
            JOIN pg_class c ON c.oid = tg.tgrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE NOT tg.tgisinternal
              AND {self._schema_filter("n.nspname")}
            ORDER BY n.nspname, c.relname, tg.tgname
        """)
        for row in rows:
            table = tables.get(f"{row['schema_name']}.{row['table_name']}")
            if table is None:
                continue
            table.triggers[row["name"]] = TriggerSchema(
                name=row["name"], definition=row["definition"]
            )

    async def _add_policies(self, tables: dict[str, TableSchema]) -> None:
        """Attach row-level security policies."""
        rows = await self._client.query(f"""
            SELECT
                n.nspname AS schema_name,
                c.relname AS table_name,
                p.polname AS name,
                p.polcmd::text AS command,
                p.polpermissive AS permissive,
                CASE WHEN p.polroles = '{{0}}'::oid[]
                    THEN ARRAY['public']::text[]
                    ELSE ARRAY(
                        SELECT r.rolname::text FROM pg_roles r
                        WHERE r.oid = ANY(p.polroles)
                        ORDER BY r.rolname
                    )
                END AS roles,
                pg_get_expr(p.polqual, p.polrelid) AS using_expr,
                pg_get_expr(p.polwithcheck, p.polrelid) AS with_check
            FROM pg_policy p
            JOIN pg_class c ON c.oid = p.polrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE {self._schema_filter("n.nspname")}
            ORDER BY n.nspname, c.relname, p.polname
        """)
        for row in rows:
            table = tables.get(f"{row['schema_name']}.{row['table_name']}")
            if table is None:
                continue
            table.policies[row["name"]] = PolicySchema(
                name=row["name"],
                command=_POLICY_COMMANDS.get(row["command"], "ALL"),
                permissive=bool(row["permissive"]),
                roles=[r for r in as_list(row["roles"]) if r is not None],
                using=row["using_expr"],
                with_check=row["with_check"],
            )

    async def _add_grants(self, tables: dict[str, TableSchema]) -> None:
        """Attach table privileges granted to roles other than the owner."""
        rows = await self._client.query(f"""
            SELECT
                n.nspname AS schema_name,
                c.relname AS table_name,
                CASE WHEN acl.grantee = 0 THEN 'PUBLIC'
                     ELSE pg_get_userbyid(acl.grantee)::text
                END AS grantee,
                acl.privilege_type AS privilege
            FROM pg_class c
            JOIN pg_namespace n ON n.oid = c.relnamespace
            CROSS JOIN LATERAL aclexplode(c.relacl) AS acl
            WHERE c.relkind IN ('r', 'p')
              AND acl.grantee <> c.relowner
              AND {self._schema_filter("n.nspname")}
            ORDER BY n.nspname, c.relname, grantee, privilege
        """)
        for row in rows:
            table = tables.get(f"{row['schema_name']}.{row['table_name']}")
            if table is None:
                continue
            privileges = table.grants.setdefault(row["grantee"], [])
            if row["privilege"] not in privileges:
                privileges.append(row["privilege"])

    async def _add_default_grants(self, tables: dict[str, TableSchema]) -> None:
        """Attach the privileges each table got from its owner's default ACL.

        Both the global entry and the one for the table's schema apply.
        """
        rows = await self._client.query(f"""
            SELECT
                n.nspname AS schema_name,
                c.relname AS table_name,
                CASE WHEN acl.grantee = 0 THEN 'PUBLIC'
                     ELSE pg_get_userbyid(acl.grantee)::text
                END AS grantee,
                acl.privilege_type AS privilege
            FROM pg_class c
            JOIN pg_namespace n ON n.oid = c.relnamespace
            JOIN pg_default_acl d
              ON d.defaclrole = c.relowner
             AND d.defaclobjtype = 'r'
             AND d.defaclnamespace IN (0, c.relnamespace)
            CROSS JOIN LATERAL aclexplode(d.defaclacl) AS acl
            WHERE c.relkind IN ('r', 'p')
              AND acl.grantee <> c.relowner
              AND {self._schema_filter("n.nspname")}
            ORDER BY n.nspname, c.relname, grantee, privilege
        """)
        for row in rows:
            table = tables.get(f"{row['schema_name']}.{row['table_name']}")
            if table is None:
                continue
            privileges = table.default_grants.setdefault(row["grantee"], [])
            if row["privilege"] not in privileges:
                privileges.append(row["privilege"])

    # ------------------------------------------------------------------
    # Functions and views
    # ------------------------------------------------------------------

    async def _get_functions(self) -> dict[str, FunctionSchema]:
        """Get user-defined functions and procedures.

        Note: ``prokind IN ('f', 'p')`` excludes aggregate (``a``) and window
        (``w``) functions.  Extension-owned functions are skipped.
        """
        rows = await self._client.query(f"""
            SELECT
                n.nspname AS schema_name,
                p.proname AS name,
                pg_get_function_identity_arguments(p.oid) AS identity_arguments,
                COALESCE(pg_get_function_result(p.oid), '') AS return_type,
                pg_get_functiondef(p.oid) AS definition
            FROM pg_proc p
            JOIN pg_namespace n ON n.oid = p.pronamespace
            WHERE p.prokind IN ('f', 'p')
              AND {self._schema_filter("n.nspname")}
              AND NOT EXISTS (
                  SELECT 1 FROM pg_depend d
                  WHERE d.objid = p.oid AND d.deptype = 'e'
              )
            ORDER BY n.nspname, p.proname, identity_arguments
        """)
        functions: dict[str, FunctionSchema] = {}
        for row in rows:
            function = FunctionSchema(
                schema_name=row["schema_name"],
                name=row["name"],
                identity_arguments=row["identity_arguments"] or "",
                return_type=row["return_type"] or "",
                definition=(row["definition"] or "").strip(),
            )
            functions[function.signature] = function
        return functions

    async def _get_views(self) -> dict[str, ViewSchema]:
        """Get views with their normalized definitions."""
        rows = await self._client.query(f"""
            SELECT
                n.nspname AS schema_name,
                c.relname AS name,
                pg_get_viewdef(c.oid, true) AS definition
            FROM pg_class c
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE c.relkind = 'v'
              AND {self._schema_filter("n.nspname")}
              AND NOT EXISTS (
                  SELECT 1 FROM pg_depend d
                  WHERE d.objid = c.oid AND d.deptype = 'e'
              )
            ORDER BY n.nspname, c.relname
        """)
        views: dict[str, ViewSchema] = {}
        for row in rows:
            view = ViewSchema(
                schema_name=row["schema_name"],
                name=row["name"],
                definition=(row["definition"] or "").strip(),
            )
            views[view.qualified_name] = view
        return views
