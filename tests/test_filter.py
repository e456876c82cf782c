"""Tests for statement classification and platform filtering.

Covers the platform-managed decision table, recreated index pairs, and the
purity properties of ``filter_statements``.
"""

import pytest

from schema_sync.schema.filter import (
    StatementKind,
    classify,
    extract_index_name,
    filter_statements,
    find_recreated_indexes,
    is_platform_managed,
)
from schema_sync.schema.models import PlatformRules


# ============================================================================
# Test: Classification
# ============================================================================


class TestClassify:
    """Verify statement categories."""

    @pytest.mark.parametrize(
        ("statement", "kind"),
        [
            ("CREATE TYPE mood AS ENUM ('ok')", StatementKind.TYPE),
            ("ALTER TYPE mood ADD VALUE 'meh'", StatementKind.TYPE),
            ("CREATE TABLE foo (id uuid PRIMARY KEY)", StatementKind.TABLE),
            ("ALTER TABLE foo ADD COLUMN x text", StatementKind.TABLE),
            ("ALTER TABLE api.orders ADD CONSTRAINT orders_account_fkey FOREIGN KEY (account_id) REFERENCES public.accounts(id)", StatementKind.FOREIGN_KEY),
            ("ALTER TABLE foo DROP CONSTRAINT foo_bar_fkey", StatementKind.TABLE),
            ("CREATE SEQUENCE foo_seq", StatementKind.TABLE),
            ("CREATE UNIQUE INDEX idx ON foo (id)", StatementKind.INDEX),
            ("DROP INDEX idx", StatementKind.INDEX),
            ("CREATE OR REPLACE FUNCTION f() RETURNS int AS $$ SELECT 1 $$ LANGUAGE sql", StatementKind.FUNCTION),
            ("CREATE VIEW v AS SELECT 1", StatementKind.VIEW),
            ("CREATE TRIGGER t BEFORE INSERT ON foo FOR EACH ROW EXECUTE FUNCTION f()", StatementKind.TRIGGER),
            ("CREATE POLICY p ON foo USING (true)", StatementKind.POLICY),
            ("ALTER TABLE foo ENABLE ROW LEVEL SECURITY", StatementKind.POLICY),
            ("ALTER TABLE foo FORCE ROW LEVEL SECURITY", StatementKind.POLICY),
            ("GRANT SELECT ON TABLE foo TO anon", StatementKind.GRANT),
            ("REVOKE ALL ON TABLE foo FROM anon", StatementKind.GRANT),
            ("COMMENT ON TABLE foo IS 'x'", StatementKind.OTHER),
        ],
    )
    def test_kinds(self, statement: str, kind: StatementKind) -> None:
        """Each statement maps to its category."""
        assert classify(statement) == kind

    def test_leading_whitespace_and_case(self) -> None:
        """Classification ignores indentation and keyword case."""
        assert classify("\n   create table foo (id int)") == StatementKind.TABLE


# ============================================================================
# Test: Platform-managed detection
# ============================================================================


class TestIsPlatformManaged:
    """Verify the platform decision table."""

    @pytest.mark.parametrize(
        "statement",
        [
            "SET check_function_bodies = false",
            "ALTER ROLE authenticated SET statement_timeout = '8s'",
            "ALTER DEFAULT PRIVILEGES IN SCHEMA public GRANT ALL ON TABLES TO anon",
            "ALTER DEFAULT PRIVILEGES FOR ROLE postgres IN SCHEMA public GRANT ALL ON TABLES TO anon",
            "DROP PUBLICATION supabase_realtime",
            "ALTER PUBLICATION supabase_realtime ADD TABLE public.messages",
            "GRANT USAGE ON SCHEMA public TO PUBLIC",
            "REVOKE USAGE ON SCHEMA public FROM PUBLIC",
            "ALTER TABLE auth.users ADD COLUMN x text",
            'ALTER TABLE "auth"."users" ADD COLUMN x text',
            "CREATE TABLE IF NOT EXISTS storage.objects (id uuid)",
            "DROP TABLE realtime.messages",
            "CREATE POLICY p ON storage.objects USING (true)",
            "CREATE INDEX idx ON auth.users (email)",
            "DROP INDEX auth.users_email_idx",
            "CREATE OR REPLACE FUNCTION auth.uid() RETURNS uuid AS $$ SELECT 1 $$ LANGUAGE sql",
            "CREATE TRIGGER on_signup AFTER INSERT ON auth.users FOR EACH ROW EXECUTE FUNCTION public.f()",
            "GRANT ALL ON ALL TABLES IN SCHEMA storage TO anon",
            "ALTER TABLE public.profiles ADD CONSTRAINT profiles_id_fkey FOREIGN KEY (id) REFERENCES auth.users(id)",
            "ALTER TABLE public.profiles DROP CONSTRAINT profiles_id_fkey",
        ],
    )
    def test_managed(self, statement: str) -> None:
        """Platform-owned statements are recognized."""
        assert is_platform_managed(statement)

    @pytest.mark.parametrize(
        "statement",
        [
            "CREATE TABLE public.posts (id uuid PRIMARY KEY)",
            "CREATE TABLE foo (id uuid)",
            "CREATE POLICY own ON public.posts USING (auth.uid() = author_id)",
            "GRANT SELECT ON TABLE public.posts TO anon",
            "GRANT USAGE ON SCHEMA api TO anon",
            "CREATE TRIGGER t BEFORE INSERT ON public.posts FOR EACH ROW EXECUTE FUNCTION extensions.moddatetime(updated_at)",
            "ALTER TABLE public.posts DROP CONSTRAINT posts_author_fkey",
            "CREATE INDEX idx_posts_author ON public.posts (author_id)",
        ],
    )
    def test_user_owned(self, statement: str) -> None:
        """User objects that merely mention platform names are kept."""
        assert not is_platform_managed(statement)

    def test_custom_rules(self) -> None:
        """Managed schemas come from the rules."""
        rules = PlatformRules(managed_schemas=("internal",))
        assert is_platform_managed("CREATE TABLE internal.jobs (id int)", rules)
        assert not is_platform_managed("CREATE TABLE auth.users (id int)", rules)


# ============================================================================
# Test: Recreated indexes
# ============================================================================


class TestRecreatedIndexes:
    """Verify detection of drop/create index pairs."""

    def test_extract_index_name(self) -> None:
        """Names are extracted from both statement forms."""
        assert extract_index_name("DROP INDEX IF EXISTS public.idx_foo") == "idx_foo"
        assert extract_index_name('DROP INDEX "IDX_Foo"') == "idx_foo"
        assert extract_index_name("CREATE UNIQUE INDEX CONCURRENTLY idx_foo ON foo (id)") == "idx_foo"
        assert extract_index_name("CREATE TABLE foo (id int)") is None

    def test_pairs_only(self) -> None:
        """Only names that are both dropped and created count."""
        statements = [
            "DROP INDEX idx_a",
            "DROP INDEX idx_b",
            "CREATE INDEX idx_a ON foo (a)",
            "CREATE INDEX idx_c ON foo (c)",
        ]
        assert find_recreated_indexes(statements) == {"idx_a"}


# ============================================================================
# Test: filter_statements
# ============================================================================


class TestFilterStatements:
    """Verify the end-to-end filter and its purity."""

    def test_recreated_index_pair_removed(self) -> None:
        """A drop/create pair for one index disappears completely."""
        statements = [
            "DROP INDEX idx_foo;",
            "CREATE TABLE bar (id int)",
            "CREATE INDEX idx_foo ON foo(id);",
        ]
        result = filter_statements(statements)
        assert result == ["CREATE TABLE bar (id int)"]
        assert not any("idx_foo" in s for s in result)

    def test_reserved_schema_removed_regardless_of_neighbors(self) -> None:
        """A statement on auth.* is removed wherever it appears."""
        statements = [
            "CREATE TABLE public.a (id int)",
            "ALTER TABLE auth.users ADD COLUMN x text;",
            "CREATE TABLE public.b (id int)",
        ]
        assert filter_statements(statements) == [
            "CREATE TABLE public.a (id int)",
            "CREATE TABLE public.b (id int)",
        ]
        assert filter_statements(["ALTER TABLE auth.users ADD COLUMN x text;"]) == []

    def test_preserves_order(self) -> None:
        """Surviving statements keep their input order."""
        statements = [f"CREATE TABLE t{i} (id int)" for i in range(5)]
        assert filter_statements(statements) == statements

    def test_idempotent_and_deterministic(self) -> None:
        """filter(filter(x)) == filter(x) and repeated calls agree."""
        statements = [
            "SET search_path = public",
            "DROP INDEX idx_a",
            "CREATE TABLE public.posts (id uuid)",
            "CREATE INDEX idx_a ON public.posts (id)",
            "ALTER DEFAULT PRIVILEGES IN SCHEMA public GRANT ALL ON TABLES TO anon",
            "CREATE POLICY p ON public.posts USING (true)",
            "DROP INDEX idx_only_dropped",
        ]
        once = filter_statements(statements)
        assert filter_statements(once) == once
        assert filter_statements(statements) == once
        assert "DROP INDEX idx_only_dropped" in once

    def test_empty(self) -> None:
        """Empty input gives empty output."""
        assert filter_statements([]) == []
