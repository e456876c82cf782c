"""Statement filtering and classification.

A raw diff between a live database and a shadow contains statements for
objects the hosting platform owns (roles, default privileges, the realtime
publication, the ``auth``/``storage``/... schemas).  ``filter_statements``
removes them, together with index drop/create pairs that only differ in
serialization.

The decision table is text-pattern based.  It matches statements the way the
diff oracle renders them; differently quoted or spaced but equivalent SQL can
slip through.  Callers only depend on ``classify`` and ``is_platform_managed``
so a SQL-aware implementation can replace the patterns.

Pure logic -- no I/O, no database connections.

Usage:
    from schema_sync.schema.filter import filter_statements, classify

    actionable = filter_statements(raw_statements)
    kinds = [classify(s) for s in actionable]
"""

import logging
import re
from enum import Enum

from schema_sync.schema.models import PlatformRules

logger = logging.getLogger(__name__)

DEFAULT_RULES = PlatformRules()


class StatementKind(str, Enum):
    """Object category of a statement; the value is the pull file stem."""

    TYPE = "types"
    TABLE = "tables"
    FOREIGN_KEY = "foreign_keys"
    INDEX = "indexes"
    FUNCTION = "functions"
    VIEW = "views"
    TRIGGER = "triggers"
    POLICY = "rls"
    GRANT = "grants"
    OTHER = "other"


# ------------------------------------------------------------------
# Classification
# ------------------------------------------------------------------

_KIND_PATTERNS: list[tuple[re.Pattern[str], StatementKind]] = [
    (
        re.compile(r"^ALTER\s+TABLE\b.*?\bADD\s+CONSTRAINT\s+\S+\s+FOREIGN\s+KEY\b", re.DOTALL),
        StatementKind.FOREIGN_KEY,
    ),
    (re.compile(r"^(CREATE|ALTER|DROP)\s+TYPE\b"), StatementKind.TYPE),
    (re.compile(r"^(CREATE|ALTER|DROP)\s+(TABLE|SEQUENCE)\b"), StatementKind.TABLE),
    (re.compile(r"^(CREATE\s+(UNIQUE\s+)?|DROP\s+)INDEX\b"), StatementKind.INDEX),
    (re.compile(r"^(CREATE\s+(OR\s+REPLACE\s+)?|ALTER\s+|DROP\s+)FUNCTION\b"), StatementKind.FUNCTION),
    (re.compile(r"^(CREATE\s+(OR\s+REPLACE\s+)?|ALTER\s+|DROP\s+)VIEW\b"), StatementKind.VIEW),
    (
        re.compile(r"^(CREATE\s+(OR\s+REPLACE\s+)?(CONSTRAINT\s+)?|DROP\s+)TRIGGER\b"),
        StatementKind.TRIGGER,
    ),
    (re.compile(r"^(CREATE|ALTER|DROP)\s+POLICY\b"), StatementKind.POLICY),
    (re.compile(r"^(GRANT|REVOKE)\b"), StatementKind.GRANT),
]

_ROW_LEVEL_SECURITY = re.compile(r"\b(ENABLE|DISABLE|FORCE|NO\s+FORCE)\s+ROW\s+LEVEL\s+SECURITY\b")


def _head(statement: str) -> str:
    return statement.lstrip().upper()


def classify(statement: str) -> StatementKind:
    """Return the object category a statement belongs to.

    ``ALTER TABLE ... ROW LEVEL SECURITY`` is a policy concern, not a table
    definition, and is routed to ``StatementKind.POLICY``.  Foreign keys added with
    ``ALTER TABLE ... ADD CONSTRAINT`` have their own kind so they can be
    created after the tables of every schema.

    Examples:
        >>> classify("CREATE TABLE foo (id uuid PRIMARY KEY)")
        <StatementKind.TABLE: 'tables'>
        >>> classify("ALTER TABLE foo ENABLE ROW LEVEL SECURITY")
        <StatementKind.POLICY: 'rls'>
        >>> classify("ALTER TABLE a ADD CONSTRAINT a_b_fkey FOREIGN KEY (b) REFERENCES b(id)")
        <StatementKind.FOREIGN_KEY: 'foreign_keys'>
    """
    upper = _head(statement)
    for pattern, kind in _KIND_PATTERNS:
        if pattern.match(upper):
            if kind is StatementKind.TABLE and _ROW_LEVEL_SECURITY.search(upper):
                return StatementKind.POLICY
            return kind
    return StatementKind.OTHER


# ------------------------------------------------------------------
# Platform-managed detection
# ------------------------------------------------------------------


def _schema_ref(schema: str) -> str:
    return rf'"?{re.escape(schema)}"?\.'


def _targets_managed_schema(statement: str, upper: str, schema: str) -> bool:
    ref = _schema_ref(schema)

    if re.match(r"^(CREATE|ALTER|DROP)\s+TABLE\s+", upper):
        if re.search(rf"TABLE\s+(IF\s+(NOT\s+)?EXISTS\s+)?(ONLY\s+)?{ref}", statement, re.IGNORECASE):
            return True

    if re.match(r"^(CREATE|ALTER|DROP)\s+POLICY\s+", upper):
        if re.search(rf"ON\s+{ref}", statement, re.IGNORECASE):
            return True

    if re.match(r"^(CREATE\s+(UNIQUE\s+)?|DROP\s+)INDEX\s+", upper):
        if re.search(rf"ON\s+(ONLY\s+)?{ref}", statement, re.IGNORECASE):
            return True
        if re.match(rf"^DROP\s+INDEX\s+(CONCURRENTLY\s+)?(IF\s+EXISTS\s+)?{ref}", upper, re.IGNORECASE):
            return True

    object_ddl = re.match(
        r"^(CREATE|ALTER|DROP)\s+(OR\s+REPLACE\s+)?(CONSTRAINT\s+)?"
        r"(FUNCTION|TRIGGER|VIEW|TYPE|SEQUENCE)\s+",
        upper,
    )
    if object_ddl:
        if re.match(
            r"^(CREATE|ALTER|DROP)\s+(OR\s+REPLACE\s+)?(CONSTRAINT\s+)?"
            rf"(FUNCTION|TRIGGER|VIEW|TYPE|SEQUENCE)\s+(IF\s+(NOT\s+)?EXISTS\s+)?{ref}",
            upper,
            re.IGNORECASE,
        ):
            return True
        if object_ddl.group(4) == "TRIGGER" and re.search(rf"\bON\s+{ref}", statement, re.IGNORECASE):
            return True

    if re.search(rf"IN\s+SCHEMA\s+{re.escape(schema)}\b", statement, re.IGNORECASE):
        return True

    if re.search(rf"REFERENCES\s+{ref}", statement, re.IGNORECASE):
        return True

    return False


def _drops_managed_fk(statement: str, rules: PlatformRules) -> bool:
    match = re.search(r'DROP\s+CONSTRAINT\s+(IF\s+EXISTS\s+)?"?(\w+)"?', statement, re.IGNORECASE)
    if not match:
        return False
    name = match.group(2).lower()
    return name.endswith("_fkey") and name in rules.managed_fk_constraints


def is_platform_managed(statement: str, rules: PlatformRules | None = None) -> bool:
    """True if the statement touches something the platform owns.

    Covers, in order: session ``SET``, ``ALTER ROLE``, ``ALTER DEFAULT
    PRIVILEGES``, publication drops/alters, schema-usage grants involving
    ``PUBLIC``, and DDL on (or references into) managed schemas.

    Examples:
        >>> is_platform_managed("ALTER TABLE auth.users ADD COLUMN x text")
        True
        >>> is_platform_managed("CREATE POLICY p ON public.posts USING (auth.uid() = user_id)")
        False
    """
    rules = rules or DEFAULT_RULES
    upper = _head(statement)

    if upper.startswith("SET "):
        return True
    if upper.startswith("ALTER ROLE"):
        return True
    if "ALTER DEFAULT PRIVILEGES" in upper:
        return True
    if re.search(r"\b(DROP|ALTER)\s+PUBLICATION\b", upper):
        return True
    if (
        upper.startswith("GRANT USAGE ON SCHEMA") or upper.startswith("REVOKE USAGE ON SCHEMA")
    ) and "PUBLIC" in upper:
        return True

    for schema in rules.managed_schemas:
        if _targets_managed_schema(statement, upper, schema):
            return True

    return _drops_managed_fk(statement, rules)


# ------------------------------------------------------------------
# Recreated index detection
# ------------------------------------------------------------------

_DROP_INDEX = re.compile(
    r"^DROP\s+INDEX\s+(?:CONCURRENTLY\s+)?(?:IF\s+EXISTS\s+)?(?:\"?\w+\"?\.)?\"?(\w+)\"?",
    re.IGNORECASE,
)
_CREATE_INDEX = re.compile(
    r"^CREATE\s+(?:UNIQUE\s+)?INDEX\s+(?:CONCURRENTLY\s+)?(?:IF\s+NOT\s+EXISTS\s+)?\"?(\w+)\"?\s+ON\b",
    re.IGNORECASE,
)


def extract_index_name(statement: str) -> str | None:
    """Index name from a ``DROP INDEX`` or ``CREATE INDEX`` statement.

    Schema qualifiers are stripped and the name is lower-cased.

    Examples:
        >>> extract_index_name("DROP INDEX IF EXISTS public.idx_foo")
        'idx_foo'
        >>> extract_index_name("CREATE UNIQUE INDEX idx_foo ON foo (id)")
        'idx_foo'
    """
    text = statement.lstrip()
    match = _DROP_INDEX.match(text) or _CREATE_INDEX.match(text)
    return match.group(1).lower() if match else None


def find_recreated_indexes(statements: list[str]) -> set[str]:
    """Names of indexes that are both dropped and created in one diff."""
    dropped: set[str] = set()
    created: set[str] = set()

    for statement in statements:
        upper = _head(statement)
        name = extract_index_name(statement)
        if name is None:
            continue
        if upper.startswith("DROP INDEX"):
            dropped.add(name)
        else:
            created.add(name)

    return dropped & created


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------


def filter_statements(statements: list[str], rules: PlatformRules | None = None) -> list[str]:
    """Reduce a raw diff to actionable statements.

    Deterministic and order-preserving: the same input always yields the
    same output, and ``filter_statements(filter_statements(x)) ==
    filter_statements(x)``.

    Args:
        statements: Raw statements from the diff oracle.
        rules: Platform rules; defaults to the Supabase rule set.

    Returns:
        The surviving statements in their original order.

    Examples:
        >>> filter_statements([
        ...     "DROP INDEX idx_foo",
        ...     "CREATE TABLE foo (id uuid)",
        ...     "CREATE INDEX idx_foo ON foo (id)",
        ... ])
        ['CREATE TABLE foo (id uuid)']
    """
    rules = rules or DEFAULT_RULES
    recreated = find_recreated_indexes(statements)
    if recreated:
        logger.debug(
            "Filtering %d recreated indexes (serialization differences)", len(recreated)
        )

    kept: list[str] = []
    for statement in statements:
        if is_platform_managed(statement, rules):
            logger.debug("Filtered: %s...", statement[:60])
            continue
        if extract_index_name(statement) in recreated:
            logger.debug("Filtered recreated index: %s...", statement[:60])
            continue
        kept.append(statement)

    return kept
