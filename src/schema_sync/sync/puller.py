"""Schema Puller -- live schema to categorized local files.

Turns filtered statements (the diff from a baseline-only shadow to the live
database) into one file per schema and object category::

    supabase/schema/
        public/
            types.sql
            tables.sql
            indexes.sql
            foreign_keys.sql
            functions.sql
            views.sql
            triggers.sql
            rls.sql
            grants.sql
            other.sql

Generation is pure.  Writing is all-or-nothing: every file goes to a
temporary sibling first and only when all of them are written are they
renamed into place.

Usage:
    from schema_sync.sync.puller import generate_pull_files, write_pull_files

    files = generate_pull_files(statements)
    write_pull_files(Path("supabase/schema"), files)
"""

import logging
import re
import tempfile
from collections import defaultdict
from pathlib import Path

from schema_sync.schema.filter import StatementKind, classify
from schema_sync.sync.models import PulledFile

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA = "public"

CATEGORY_TITLES: dict[StatementKind, str] = {
    StatementKind.TYPE: "Custom types",
    StatementKind.TABLE: "Tables",
    StatementKind.FOREIGN_KEY: "Foreign keys",
    StatementKind.INDEX: "Indexes",
    StatementKind.FUNCTION: "Functions",
    StatementKind.VIEW: "Views",
    StatementKind.TRIGGER: "Triggers",
    StatementKind.POLICY: "Row Level Security",
    StatementKind.GRANT: "Grants and permissions",
    StatementKind.OTHER: "Other statements",
}

_IDENT = r'(?:"(?:[^"]|"")+"|[A-Za-z_][\w$]*)'
_QUALIFIED = re.compile(rf"({_IDENT})\s*\.\s*{_IDENT}")
_ON_TARGET = re.compile(
    rf"\bON\s+(?:TABLE\s+|ONLY\s+|FUNCTION\s+|SEQUENCE\s+|VIEW\s+)?({_IDENT})\s*\.",
    re.IGNORECASE,
)
_ON_SCHEMA = re.compile(rf"\bON\s+SCHEMA\s+({_IDENT})", re.IGNORECASE)
_CREATE_SCHEMA = re.compile(r"^\s*CREATE\s+SCHEMA\b", re.IGNORECASE)

# Kinds whose owning table follows an ON clause rather than the object name.
_ON_KINDS = {StatementKind.INDEX, StatementKind.TRIGGER, StatementKind.POLICY, StatementKind.GRANT}


def _unquote(identifier: str) -> str:
    if identifier.startswith('"') and identifier.endswith('"'):
        return identifier[1:-1].replace('""', '"')
    return identifier.lower()


def statement_schema(statement: str, kind: StatementKind | None = None) -> str:
    """Schema a statement's object belongs to; ``public`` if unqualified.

    Examples:
        >>> statement_schema("CREATE TABLE api.users (id uuid)")
        'api'
        >>> statement_schema("CREATE INDEX idx ON billing.invoices (id)")
        'billing'
        >>> statement_schema("CREATE TABLE foo (id uuid)")
        'public'
    """
    kind = kind or classify(statement)

    if kind in _ON_KINDS:
        match = _ON_SCHEMA.search(statement) or _ON_TARGET.search(statement)
        if match:
            return _unquote(match.group(1))

    # The object name comes before the first parenthesis or AS body.
    head = re.split(r"\(|\bAS\b|\$", statement, maxsplit=1, flags=re.IGNORECASE)[0]
    match = _QUALIFIED.search(head)
    return _unquote(match.group(1)) if match else DEFAULT_SCHEMA


def render_file(schema_name: str, kind: StatementKind, statements: list[str]) -> str:
    """File text: header comment, blank line, ``;``-terminated statements.

    Example:
        >>> render_file("public", StatementKind.TABLE, ["CREATE TABLE a (id int)"])
        '-- Tables for public schema\\n\\nCREATE TABLE a (id int);\\n'
    """
    body = ";\n\n".join(s.strip().rstrip(";").rstrip() for s in statements)
    return f"-- {CATEGORY_TITLES[kind]} for {schema_name} schema\n\n{body};\n"


def generate_pull_files(statements: list[str]) -> list[PulledFile]:
    """Bucket statements by (schema, category) into files.

    ``CREATE SCHEMA`` statements are dropped; the directory name recreates
    the schema on the next build.  Statement order within a file follows
    the input order.

    Returns:
        Files sorted by path.
    """
    buckets: dict[tuple[str, StatementKind], list[str]] = defaultdict(list)

    for statement in statements:
        if _CREATE_SCHEMA.match(statement):
            continue
        kind = classify(statement)
        buckets[(statement_schema(statement, kind), kind)].append(statement)

    files = [
        PulledFile(
            path=f"{schema_name}/{kind.value}.sql",
            schema_name=schema_name,
            kind=kind,
            statement_count=len(items),
            content=render_file(schema_name, kind, items),
        )
        for (schema_name, kind), items in buckets.items()
    ]
    return sorted(files, key=lambda f: f.path)


def write_pull_files(schema_dir: Path, files: list[PulledFile]) -> list[Path]:
    """Write every file or none of them.

    Each file is first written to a temporary file in its target directory.
    If any write fails, all temporaries are removed and existing files are
    left untouched.

    Returns:
        Absolute paths written.
    """
    staged: list[tuple[Path, Path]] = []
    try:
        for pulled in files:
            target = schema_dir / pulled.path
            target.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=target.parent,
                prefix=f".{target.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                staged.append((Path(handle.name), target))
                handle.write(pulled.content)
    except OSError:
        for temp_path, _ in staged:
            temp_path.unlink(missing_ok=True)
        raise

    written: list[Path] = []
    for temp_path, target in staged:
        temp_path.replace(target)
        written.append(target)
        logger.debug("Wrote %s", target)
    return written
