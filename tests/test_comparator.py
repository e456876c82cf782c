"""Tests for catalog diffing and DDL generation.

Verifies statement rendering and the drop-then-create ordering produced by
``diff_catalogs``.
"""

from schema_sync.schema.comparator import (
    column_definition,
    create_policy_sql,
    create_table_sql,
    diff_catalogs,
    quote_ident,
)
from schema_sync.schema.models import (
    ColumnSchema,
    ConstraintSchema,
    DatabaseSchema,
    EnumTypeSchema,
    FunctionSchema,
    IndexSchema,
    PolicySchema,
    TableSchema,
    ViewSchema,
)

API_ROLES = ("anon", "authenticated", "service_role")

TABLE_PRIVILEGES = ("DELETE", "INSERT", "REFERENCES", "SELECT", "TRIGGER", "TRUNCATE", "UPDATE")


def _posts(**overrides) -> TableSchema:
    table = TableSchema(
        schema_name="public",
        name="posts",
        columns={
            "id": ColumnSchema(name="id", data_type="uuid", is_nullable=False),
            "title": ColumnSchema(name="title", data_type="text"),
        },
        constraints={
            "posts_pkey": ConstraintSchema(
                name="posts_pkey", constraint_type="PRIMARY KEY", definition="PRIMARY KEY (id)"
            ),
        },
    )
    return table.model_copy(update=overrides)


def _db(*tables: TableSchema, **kwargs) -> DatabaseSchema:
    return DatabaseSchema(tables={t.qualified_name: t for t in tables}, **kwargs)


# ============================================================================
# Test: Rendering
# ============================================================================


class TestRendering:
    """Verify identifier quoting and statement builders."""

    def test_quote_ident(self) -> None:
        """Plain names stay bare; mixed case and keywords are quoted."""
        assert quote_ident("posts") == "posts"
        assert quote_ident("Posts") == '"Posts"'
        assert quote_ident("user") == '"user"'
        assert quote_ident('a"b') == '"a""b"'

    def test_serial_column(self) -> None:
        """nextval defaults on integer columns render as serial."""
        column = ColumnSchema(
            name="id",
            data_type="bigint",
            is_nullable=False,
            default="nextval('posts_id_seq'::regclass)",
        )
        assert column_definition(column) == "id bigserial NOT NULL"

    def test_identity_column(self) -> None:
        """Identity columns render GENERATED ... AS IDENTITY."""
        column = ColumnSchema(name="id", data_type="integer", is_nullable=False, identity="ALWAYS")
        assert column_definition(column) == "id integer GENERATED ALWAYS AS IDENTITY NOT NULL"

    def test_default_column(self) -> None:
        """Defaults are rendered verbatim."""
        column = ColumnSchema(name="created_at", data_type="timestamp with time zone", default="now()")
        assert column_definition(column) == "created_at timestamp with time zone DEFAULT now()"

    def test_create_table_inlines_non_fk_constraints(self) -> None:
        """Primary keys are inline; foreign keys are not."""
        table = _posts()
        table.constraints["posts_author_fkey"] = ConstraintSchema(
            name="posts_author_fkey",
            constraint_type="FOREIGN KEY",
            definition="FOREIGN KEY (author_id) REFERENCES public.authors(id)",
        )
        sql = create_table_sql(table)
        assert sql.startswith("CREATE TABLE public.posts (\n")
        assert "CONSTRAINT posts_pkey PRIMARY KEY (id)" in sql
        assert "posts_author_fkey" not in sql

    def test_create_policy(self) -> None:
        """Policies render every clause."""
        policy = PolicySchema(
            name="own posts",
            command="UPDATE",
            roles=["authenticated"],
            using="(auth.uid() = author_id)",
            with_check="(auth.uid() = author_id)",
        )
        assert create_policy_sql(_posts(), policy) == (
            'CREATE POLICY "own posts" ON public.posts AS PERMISSIVE FOR UPDATE '
            "TO authenticated USING ((auth.uid() = author_id)) "
            "WITH CHECK ((auth.uid() = author_id))"
        )


# ============================================================================
# Test: diff_catalogs
# ============================================================================


class TestDiffCatalogs:
    """Verify generated statements and their order."""

    def test_identical_snapshots(self) -> None:
        """No differences produce no statements."""
        assert diff_catalogs(_db(_posts()), _db(_posts())) == []

    def test_new_table_with_parts(self) -> None:
        """A new table brings its FKs, indexes, RLS, policies and grants."""
        table = _posts(
            rls_enabled=True,
            grants={"anon": ["SELECT"]},
            indexes={
                "idx_posts_title": IndexSchema(
                    name="idx_posts_title",
                    definition="CREATE INDEX idx_posts_title ON public.posts USING btree (title)",
                )
            },
            policies={"read": PolicySchema(name="read", command="SELECT", using="true")},
        )
        table.constraints["posts_author_fkey"] = ConstraintSchema(
            name="posts_author_fkey",
            constraint_type="FOREIGN KEY",
            definition="FOREIGN KEY (author_id) REFERENCES public.authors(id)",
        )

        statements = diff_catalogs(DatabaseSchema(), _db(table))

        assert statements[0].startswith("CREATE TABLE public.posts")
        assert statements[1] == (
            "ALTER TABLE public.posts ADD CONSTRAINT posts_author_fkey "
            "FOREIGN KEY (author_id) REFERENCES public.authors(id)"
        )
        assert statements[2] == "CREATE INDEX idx_posts_title ON public.posts USING btree (title)"
        assert statements[3] == "ALTER TABLE public.posts ENABLE ROW LEVEL SECURITY"
        assert statements[4].startswith("CREATE POLICY read ON public.posts")
        assert statements[5] == "GRANT SELECT ON TABLE public.posts TO anon"

    def test_drops_before_creates(self) -> None:
        """Dropped tables come before created ones."""
        old = TableSchema(schema_name="public", name="old_table")
        new = TableSchema(schema_name="public", name="new_table")
        statements = diff_catalogs(_db(old), _db(new))
        assert statements[0] == "DROP TABLE public.old_table"
        assert statements[1].startswith("CREATE TABLE public.new_table")

    def test_column_changes(self) -> None:
        """Added, dropped and altered columns."""
        source = _posts()
        target = _posts(
            columns={
                "id": ColumnSchema(name="id", data_type="uuid", is_nullable=False),
                "title": ColumnSchema(name="title", data_type="text", is_nullable=False),
                "body": ColumnSchema(name="body", data_type="text", default="''::text"),
            }
        )
        source.columns["legacy"] = ColumnSchema(name="legacy", data_type="text")

        statements = diff_catalogs(_db(source), _db(target))

        assert statements == [
            "ALTER TABLE public.posts DROP COLUMN legacy",
            "ALTER TABLE public.posts ALTER COLUMN title SET NOT NULL",
            "ALTER TABLE public.posts ADD COLUMN body text DEFAULT ''::text",
        ]

    def test_changed_index_dropped_and_recreated(self) -> None:
        """A changed index definition is dropped then created."""
        source = _posts(indexes={"idx": IndexSchema(name="idx", definition="CREATE INDEX idx ON public.posts USING btree (id)")})
        target = _posts(indexes={"idx": IndexSchema(name="idx", definition="CREATE INDEX idx ON public.posts USING btree (title)")})
        assert diff_catalogs(_db(source), _db(target)) == [
            "DROP INDEX public.idx",
            "CREATE INDEX idx ON public.posts USING btree (title)",
        ]

    def test_grant_changes(self) -> None:
        """Privileges are revoked and granted per grantee."""
        source = _posts(grants={"anon": ["SELECT", "INSERT"]})
        target = _posts(grants={"anon": ["SELECT"], "authenticated": ["SELECT"]})
        assert diff_catalogs(_db(source), _db(target)) == [
            "REVOKE INSERT ON TABLE public.posts FROM anon",
            "GRANT SELECT ON TABLE public.posts TO authenticated",
        ]

    def test_new_table_with_default_privileges_only(self) -> None:
        """Grants that come from default privileges add no statements."""
        table = TableSchema(
            schema_name="public",
            name="foo",
            columns={"id": ColumnSchema(name="id", data_type="uuid", is_nullable=False)},
            constraints={
                "foo_pkey": ConstraintSchema(
                    name="foo_pkey", constraint_type="PRIMARY KEY", definition="PRIMARY KEY (id)"
                )
            },
            grants={role: list(TABLE_PRIVILEGES) for role in API_ROLES},
            default_grants={role: list(TABLE_PRIVILEGES) for role in API_ROLES},
        )

        statements = diff_catalogs(DatabaseSchema(), _db(table))

        assert len(statements) == 1
        assert statements[0].startswith("CREATE TABLE public.foo")

    def test_grant_beyond_defaults(self) -> None:
        """Only the privileges beyond the defaults are granted on a new table."""
        table = _posts(
            grants={"anon": ["SELECT"], "reporting": ["SELECT"]},
            default_grants={"anon": ["SELECT"]},
        )
        statements = diff_catalogs(DatabaseSchema(), _db(table))
        assert [s for s in statements if s.startswith("GRANT")] == [
            "GRANT SELECT ON TABLE public.posts TO reporting"
        ]

    def test_revoked_default_on_new_table(self) -> None:
        """A default privilege missing from the desired table is revoked."""
        table = _posts(grants={}, default_grants={"anon": ["SELECT", "UPDATE"]})
        statements = diff_catalogs(DatabaseSchema(), _db(table))
        assert statements[-1] == "REVOKE SELECT, UPDATE ON TABLE public.posts FROM anon"

    def test_defaults_differ_between_sides(self) -> None:
        """Default-only grants on either side compare equal."""
        live = _posts(grants={})
        desired = _posts(
            grants={"anon": list(TABLE_PRIVILEGES)},
            default_grants={"anon": list(TABLE_PRIVILEGES)},
        )
        assert diff_catalogs(_db(live), _db(desired)) == []

    def test_enum_values_appended(self) -> None:
        """New labels are added with ADD VALUE in position."""
        source = DatabaseSchema(types={"public.mood": EnumTypeSchema(schema_name="public", name="mood", labels=["ok"])})
        target = DatabaseSchema(types={"public.mood": EnumTypeSchema(schema_name="public", name="mood", labels=["sad", "ok", "happy"])})
        assert diff_catalogs(source, target) == [
            "ALTER TYPE public.mood ADD VALUE 'sad' BEFORE 'ok'",
            "ALTER TYPE public.mood ADD VALUE 'happy' AFTER 'ok'",
        ]

    def test_enum_reorder_recreates(self) -> None:
        """Reordered labels cannot be expressed with ADD VALUE."""
        source = DatabaseSchema(types={"public.mood": EnumTypeSchema(schema_name="public", name="mood", labels=["a", "b"])})
        target = DatabaseSchema(types={"public.mood": EnumTypeSchema(schema_name="public", name="mood", labels=["b", "a"])})
        assert diff_catalogs(source, target) == [
            "DROP TYPE public.mood",
            "CREATE TYPE public.mood AS ENUM ('b', 'a')",
        ]

    def test_function_return_type_change(self) -> None:
        """A changed return type drops the old function first."""
        old = FunctionSchema(schema_name="public", name="f", return_type="integer", definition="CREATE OR REPLACE FUNCTION public.f() RETURNS integer ...")
        new = FunctionSchema(schema_name="public", name="f", return_type="bigint", definition="CREATE OR REPLACE FUNCTION public.f() RETURNS bigint ...")
        source = DatabaseSchema(functions={old.signature: old})
        target = DatabaseSchema(functions={new.signature: new})
        assert diff_catalogs(source, target) == [
            "DROP FUNCTION public.f()",
            "CREATE OR REPLACE FUNCTION public.f() RETURNS bigint ...",
        ]

    def test_view_change(self) -> None:
        """Changed views are dropped and recreated."""
        old = ViewSchema(schema_name="public", name="v", definition=" SELECT 1;")
        new = ViewSchema(schema_name="public", name="v", definition=" SELECT 2;")
        assert diff_catalogs(
            DatabaseSchema(views={old.qualified_name: old}),
            DatabaseSchema(views={new.qualified_name: new}),
        ) == ["DROP VIEW public.v", "CREATE VIEW public.v AS\n SELECT 2"]

    def test_new_schema(self) -> None:
        """New schemas are created before anything else."""
        target = _db(TableSchema(schema_name="api", name="keys"), schemas=["api", "public"])
        statements = diff_catalogs(DatabaseSchema(schemas=["public"]), target)
        assert statements[0] == "CREATE SCHEMA api"

    def test_deterministic(self) -> None:
        """Same inputs give the same statements."""
        source, target = _db(_posts()), _db(_posts(rls_enabled=True))
        assert diff_catalogs(source, target) == diff_catalogs(source, target)
