"""Result value parsing for the shadow database.

Catalog columns such as ``pg_index.indkey`` (``int2vector``) or
``pg_policies.roles`` (``name[]``) can arrive as their text representation.
``parse_value`` converts them to Python values using a table keyed by the
column's type OID; unknown OIDs pass through untouched.

Usage:
    from schema_sync.shadow.types import parse_value, PgType

    parse_value(PgType.INT2VECTOR, "1 2 3")   # [1, 2, 3]
    parse_value(PgType.TEXT_ARRAY, "{a,b}")   # ["a", "b"]
    parse_value(25, "hello")                  # "hello"
"""

from collections.abc import Callable
from enum import IntEnum
from typing import Any


class PgType(IntEnum):
    """Type OIDs that receive a custom parser."""

    INT8 = 20
    INT2VECTOR = 22
    OIDVECTOR = 30
    NAME_ARRAY = 1003
    INT2_ARRAY = 1005
    INT4_ARRAY = 1007
    TEXT_ARRAY = 1009
    VARCHAR_ARRAY = 1015
    INT8_ARRAY = 1016
    CHAR_ARRAY = 1002


def parse_pg_array(value: str) -> list[str | None]:
    """Parse a one-dimensional PostgreSQL array literal.

    Handles double-quoted elements with backslash escapes and unquoted
    ``NULL``.

    Examples:
        >>> parse_pg_array('{anon,"service role",NULL}')
        ['anon', 'service role', None]
        >>> parse_pg_array("{}")
        []
    """
    body = value.strip()
    if body.startswith("{") and body.endswith("}"):
        body = body[1:-1]
    if not body:
        return []

    items: list[str | None] = []
    current: list[str] = []
    quoted = False
    in_quotes = False
    escaped = False

    for char in body:
        if escaped:
            current.append(char)
            escaped = False
        elif char == "\\" and in_quotes:
            escaped = True
        elif char == '"':
            in_quotes = not in_quotes
            quoted = True
        elif char == "," and not in_quotes:
            items.append(_array_item(current, quoted))
            current, quoted = [], False
        else:
            current.append(char)

    items.append(_array_item(current, quoted))
    return items


def _array_item(chars: list[str], quoted: bool) -> str | None:
    text = "".join(chars)
    if not quoted:
        text = text.strip()
        if text.upper() == "NULL":
            return None
    return text


def _int_list(value: str) -> list[int]:
    return [int(v) for v in value.split()]


def _int_array(value: str) -> list[int | None]:
    return [None if v is None else int(v) for v in parse_pg_array(value)]


PARSERS: dict[int, Callable[[str], Any]] = {
    PgType.INT8: int,
    PgType.INT2VECTOR: _int_list,
    PgType.OIDVECTOR: _int_list,
    PgType.NAME_ARRAY: parse_pg_array,
    PgType.CHAR_ARRAY: parse_pg_array,
    PgType.TEXT_ARRAY: parse_pg_array,
    PgType.VARCHAR_ARRAY: parse_pg_array,
    PgType.INT2_ARRAY: _int_array,
    PgType.INT4_ARRAY: _int_array,
    PgType.INT8_ARRAY: _int_array,
}


def parse_value(type_oid: int | None, value: Any) -> Any:
    """Parse a text-form result value by type OID.

    Only strings are parsed; values the driver already converted, ``None``,
    and OIDs without a parser are returned as-is.
    """
    if not isinstance(value, str) or type_oid is None:
        return value
    parser = PARSERS.get(type_oid)
    return parser(value) if parser else value


def as_list(value: Any) -> list:
    """Coerce an array column to a list whether or not the driver parsed it."""
    if value is None:
        return []
    if isinstance(value, str):
        return parse_pg_array(value)
    return list(value)
