"""Tests for catalog introspection.

The client is a stub that answers each catalog query with canned rows, so
these tests check how rows are assembled into a ``DatabaseSchema`` and which
schemas the SQL excludes.
"""

import pytest

from schema_sync.schema.introspector import SchemaIntrospector
from schema_sync.schema.models import PlatformRules
from schema_sync.schema.oracle import IntrospectionDiffOracle


class CatalogStub:
    """Answers introspection queries by a distinctive fragment of their SQL."""

    def __init__(self, answers: dict[str, list[dict]]) -> None:
        self.answers = answers
        self.queries: list[str] = []

    async def query(self, sql: str, params: dict | None = None) -> list[dict]:
        self.queries.append(sql)
        for fragment, rows in self.answers.items():
            if fragment in sql:
                return rows
        return []


def _catalog() -> CatalogStub:
    return CatalogStub({
        "AS rls_enabled": [
            {"schema_name": "public", "name": "posts", "rls_enabled": True, "rls_forced": False},
            {"schema_name": "public", "name": "schema_migrations", "rls_enabled": False, "rls_forced": False},
        ],
        "AS data_type": [
            {"schema_name": "public", "table_name": "posts", "name": "id", "data_type": "uuid",
             "is_nullable": False, "column_default": "gen_random_uuid()", "identity": ""},
            {"schema_name": "public", "table_name": "posts", "name": "seq", "data_type": "integer",
             "is_nullable": False, "column_default": None, "identity": "a"},
            {"schema_name": "public", "table_name": "gone", "name": "x", "data_type": "text",
             "is_nullable": True, "column_default": None, "identity": ""},
        ],
        "pg_get_constraintdef": [
            {"schema_name": "public", "table_name": "posts", "name": "posts_pkey",
             "constraint_type": "PRIMARY KEY", "definition": "PRIMARY KEY (id)", "references_table": None},
        ],
        "pg_get_indexdef": [
            {"schema_name": "public", "table_name": "posts", "name": "idx_posts_seq",
             "definition": "CREATE INDEX idx_posts_seq ON public.posts USING btree (seq)", "is_unique": False},
        ],
        "pg_get_triggerdef": [],
        "FROM pg_policy": [
            {"schema_name": "public", "table_name": "posts", "name": "read", "command": "r",
             "permissive": True, "roles": "{anon,authenticated}", "using_expr": "true", "with_check": None},
        ],
        "pg_default_acl": [
            {"schema_name": "public", "table_name": "posts", "grantee": "anon", "privilege": "SELECT"},
        ],
        "aclexplode": [
            {"schema_name": "public", "table_name": "posts", "grantee": "anon", "privilege": "SELECT"},
            {"schema_name": "public", "table_name": "posts", "grantee": "anon", "privilege": "SELECT"},
            {"schema_name": "public", "table_name": "posts", "grantee": "anon", "privilege": "INSERT"},
        ],
        "JOIN pg_enum": [],
        "pg_get_functiondef": [
            {"schema_name": "public", "name": "touch", "identity_arguments": "", "return_type": "trigger",
             "definition": "CREATE OR REPLACE FUNCTION public.touch()\n RETURNS trigger ...\n"},
        ],
        "pg_get_viewdef": [],
        "SELECT n.nspname AS name": [{"name": "public"}],
    })


class TestIntrospect:
    """Verify snapshot assembly from catalog rows."""

    @pytest.mark.asyncio
    async def test_tables_and_parts(self) -> None:
        """Tables carry columns, constraints, indexes, policies and grants."""
        schema = await SchemaIntrospector(_catalog()).introspect()

        assert schema.schemas == ["public"]
        assert list(schema.tables) == ["public.posts"]
        posts = schema.tables["public.posts"]
        assert posts.rls_enabled is True
        assert list(posts.columns) == ["id", "seq"]
        assert posts.columns["id"].default == "gen_random_uuid()"
        assert posts.columns["id"].identity is None
        assert posts.columns["seq"].identity == "ALWAYS"
        assert posts.constraints["posts_pkey"].definition == "PRIMARY KEY (id)"
        assert "idx_posts_seq" in posts.indexes
        assert posts.policies["read"].command == "SELECT"
        assert posts.policies["read"].roles == ["anon", "authenticated"]
        assert posts.grants == {"anon": ["SELECT", "INSERT"]}
        assert posts.default_grants == {"anon": ["SELECT"]}
        assert posts.explicit_grants() == {"anon": ["INSERT"]}

    @pytest.mark.asyncio
    async def test_excluded_bookkeeping_tables(self) -> None:
        """schema_migrations is never part of the snapshot."""
        schema = await SchemaIntrospector(_catalog()).introspect()
        assert "public.schema_migrations" not in schema.tables

    @pytest.mark.asyncio
    async def test_functions_keyed_by_signature(self) -> None:
        """Functions are keyed by name and identity arguments, definitions stripped."""
        schema = await SchemaIntrospector(_catalog()).introspect()
        function = schema.functions["public.touch()"]
        assert function.return_type == "trigger"
        assert not function.definition.endswith("\n")

    @pytest.mark.asyncio
    async def test_enum_labels_from_array_text(self) -> None:
        """Enum labels arriving as array text are parsed."""
        stub = _catalog()
        stub.answers["JOIN pg_enum"] = [
            {"schema_name": "public", "name": "mood", "labels": '{sad,"very happy"}'}
        ]
        schema = await SchemaIntrospector(stub).introspect()
        assert schema.types["public.mood"].labels == ["sad", "very happy"]

    @pytest.mark.asyncio
    async def test_fingerprint_stable(self) -> None:
        """Two introspections of the same catalog fingerprint the same."""
        first = await SchemaIntrospector(_catalog()).introspect()
        second = await SchemaIntrospector(_catalog()).introspect()
        assert first.fingerprint() == second.fingerprint()


class TestSchemaExclusion:
    """Verify platform and system schemas are filtered in SQL."""

    @pytest.mark.asyncio
    async def test_managed_schemas_excluded(self) -> None:
        """Every catalog query excludes platform and system schemas."""
        stub = _catalog()
        await SchemaIntrospector(stub).introspect()
        for sql in stub.queries:
            assert "'auth'" in sql
            assert "'pg_catalog'" in sql

    def test_rules_drive_exclusions(self) -> None:
        """Custom rules replace the platform schema list."""
        introspector = SchemaIntrospector(CatalogStub({}), PlatformRules(managed_schemas=("internal",)))
        assert "internal" in introspector.excluded_schemas
        assert "auth" not in introspector.excluded_schemas
        assert "information_schema" in introspector.excluded_schemas


class TestIntrospectionDiffOracle:
    """Verify the default oracle on top of introspection."""

    @pytest.mark.asyncio
    async def test_identical_databases(self) -> None:
        """Matching catalogs produce no plan."""
        oracle = IntrospectionDiffOracle()
        assert await oracle.compare(_catalog(), _catalog(), PlatformRules()) is None

    @pytest.mark.asyncio
    async def test_plan_carries_fingerprints(self) -> None:
        """A plan records the fingerprints of both sides."""
        oracle = IntrospectionDiffOracle()
        empty, full = CatalogStub({}), _catalog()

        plan = await oracle.compare(empty, full, PlatformRules())

        assert plan is not None
        assert any(s.startswith("CREATE TABLE public.posts") for s in plan.statements)
        assert plan.source_fingerprint == await oracle.fingerprint(CatalogStub({}), PlatformRules())
        assert plan.target_fingerprint == await oracle.fingerprint(_catalog(), PlatformRules())
        assert plan.source_fingerprint != plan.target_fingerprint

    @pytest.mark.asyncio
    async def test_default_privileges_do_not_add_grants(self) -> None:
        """A new table whose grants all come from default privileges plans one statement."""
        granted = [
            {"schema_name": "public", "table_name": "foo", "grantee": role, "privilege": privilege}
            for role in ("anon", "authenticated", "service_role")
            for privilege in ("DELETE", "INSERT", "REFERENCES", "SELECT", "TRIGGER", "TRUNCATE", "UPDATE")
        ]
        desired = CatalogStub({
            "AS rls_enabled": [
                {"schema_name": "public", "name": "foo", "rls_enabled": False, "rls_forced": False},
            ],
            "AS data_type": [
                {"schema_name": "public", "table_name": "foo", "name": "id", "data_type": "uuid",
                 "is_nullable": False, "column_default": None, "identity": ""},
            ],
            "pg_get_constraintdef": [
                {"schema_name": "public", "table_name": "foo", "name": "foo_pkey",
                 "constraint_type": "PRIMARY KEY", "definition": "PRIMARY KEY (id)", "references_table": None},
            ],
            "pg_default_acl": granted,
            "aclexplode": granted,
            "SELECT n.nspname AS name": [{"name": "public"}],
        })
        live = CatalogStub({"SELECT n.nspname AS name": [{"name": "public"}]})

        plan = await IntrospectionDiffOracle().compare(live, desired, PlatformRules())

        assert plan is not None
        assert len(plan.statements) == 1
        assert plan.statements[0].startswith("CREATE TABLE public.foo")
