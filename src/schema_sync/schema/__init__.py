"""Schema files, statement filtering, catalog introspection and diffing.

Usage:
    from schema_sync.schema import find_sql_files, filter_statements, classify
    from schema_sync.schema import SchemaIntrospector, diff_catalogs

The diff oracle lives in ``schema_sync.schema.oracle``.
"""

from schema_sync.schema.comparator import diff_catalogs
from schema_sync.schema.files import SchemaFile, find_sql_files, order_schema_files
from schema_sync.schema.filter import (
    StatementKind,
    classify,
    filter_statements,
    is_platform_managed,
)
from schema_sync.schema.introspector import SchemaIntrospector
from schema_sync.schema.models import DatabaseSchema, PlatformRules

__all__ = [
    "diff_catalogs",
    "SchemaFile",
    "find_sql_files",
    "order_schema_files",
    "StatementKind",
    "classify",
    "filter_statements",
    "is_platform_managed",
    "SchemaIntrospector",
    "DatabaseSchema",
    "PlatformRules",
]
