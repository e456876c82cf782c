"""Catalog comparison and DDL generation.

Compares two ``DatabaseSchema`` snapshots and produces the ordered SQL that
turns the first into the second.  Drops run before creates; within each
half, statements are grouped so referenced objects exist before their
dependents.
Pure logic -- no I/O, no database connections.

Usage:
    from schema_sync.schema.comparator import diff_catalogs

    statements = diff_catalogs(live_schema, shadow_schema)
    for sql in statements:
        print(sql)
"""

import re
from dataclasses import dataclass, field

from schema_sync.schema.models import (
    ColumnSchema,
    ConstraintSchema,
    DatabaseSchema,
    EnumTypeSchema,
    FunctionSchema,
    PolicySchema,
    TableSchema,
)

_SIMPLE_IDENT = re.compile(r"^[a-z_][a-z0-9_$]*$")

# Keywords that cannot be used as bare column or table names.
_RESERVED = frozenset({
    "all", "analyse", "analyze", "and", "any", "array", "as", "asc",
    "asymmetric", "both", "case", "cast", "check", "collate", "column",
    "constraint", "create", "current_catalog", "current_date", "current_role",
    "current_time", "current_timestamp", "current_user", "default",
    "deferrable", "desc", "distinct", "do", "else", "end", "except", "false",
    "fetch", "for", "foreign", "from", "grant", "group", "having", "in",
    "initially", "intersect", "into", "lateral", "leading", "limit",
    "localtime", "localtimestamp", "not", "null", "offset", "on", "only", "or",
    "order", "placing", "primary", "references", "returning", "select",
    "session_user", "some", "symmetric", "table", "then", "to", "trailing",
    "true", "union", "unique", "user", "using", "variadic", "when", "where",
    "window", "with",
})

_SERIAL_TYPES = {"integer": "serial", "bigint": "bigserial", "smallint": "smallserial"}

_NEXTVAL = re.compile(r"^nextval\('[^']+'::regclass\)$")

_PROCEDURE = re.compile(r"^CREATE\s+(OR\s+REPLACE\s+)?PROCEDURE\b", re.IGNORECASE)


def quote_ident(name: str) -> str:
    """Double-quote an identifier unless it is a plain lower-case name.

    Examples:
        >>> quote_ident("users")
        'users'
        >>> quote_ident("User")
        '"User"'
        >>> quote_ident("order")
        '"order"'
    """
    if _SIMPLE_IDENT.match(name) and name not in _RESERVED:
        return name
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def qualify(schema: str, name: str) -> str:
    return f"{quote_ident(schema)}.{quote_ident(name)}"


# ============================================================================
# Statement Builders
# ============================================================================


def column_definition(column: ColumnSchema) -> str:
    """Render a column for ``CREATE TABLE`` / ``ADD COLUMN``.

    A ``nextval(...)`` default on an integer column is rendered as the
    matching ``serial`` type so the owned sequence is created with it.

    Example:
        >>> column_definition(ColumnSchema(name="id", data_type="uuid", is_nullable=False))
        'id uuid NOT NULL'
    """
    parts = [quote_ident(column.name)]
    default = column.default

    if default and _NEXTVAL.match(default) and column.data_type in _SERIAL_TYPES:
        parts.append(_SERIAL_TYPES[column.data_type])
        default = None
    else:
        parts.append(column.data_type)

    if column.identity:
        parts.append(f"GENERATED {column.identity} AS IDENTITY")
    elif default:
        parts.append(f"DEFAULT {default}")

    if not column.is_nullable:
        parts.append("NOT NULL")

    return " ".join(parts)


def create_table_sql(table: TableSchema) -> str:
    """``CREATE TABLE`` with columns and non-foreign-key constraints inline."""
    lines = [f"    {column_definition(c)}" for c in table.columns.values()]
    for name in sorted(table.constraints):
        constraint = table.constraints[name]
        if constraint.is_foreign_key:
            continue
        lines.append(f"    CONSTRAINT {quote_ident(name)} {constraint.definition}")
    body = ",\n".join(lines)
    return f"CREATE TABLE {qualify(table.schema_name, table.name)} (\n{body}\n)"


def add_constraint_sql(table: TableSchema, constraint: ConstraintSchema) -> str:
    return (
        f"ALTER TABLE {qualify(table.schema_name, table.name)} "
        f"ADD CONSTRAINT {quote_ident(constraint.name)} {constraint.definition}"
    )


def drop_constraint_sql(table: TableSchema, name: str) -> str:
    return f"ALTER TABLE {qualify(table.schema_name, table.name)} DROP CONSTRAINT {quote_ident(name)}"


def create_policy_sql(table: TableSchema, policy: PolicySchema) -> str:
    """Render ``CREATE POLICY`` from its catalog parts."""
    kind = "PERMISSIVE" if policy.permissive else "RESTRICTIVE"
    roles = ", ".join(
        r if r.lower() == "public" else quote_ident(r) for r in policy.roles
    ) or "public"
    sql = (
        f"CREATE POLICY {quote_ident(policy.name)} ON {qualify(table.schema_name, table.name)} "
        f"AS {kind} FOR {policy.command} TO {roles}"
    )
    if policy.using:
        sql += f" USING ({policy.using})"
    if policy.with_check:
        sql += f" WITH CHECK ({policy.with_check})"
    return sql


def create_enum_sql(enum: EnumTypeSchema) -> str:
    labels = ", ".join(quote_literal(label) for label in enum.labels)
    return f"CREATE TYPE {qualify(enum.schema_name, enum.name)} AS ENUM ({labels})"


def drop_function_sql(function: FunctionSchema) -> str:
    kind = "PROCEDURE" if _PROCEDURE.match(function.definition) else "FUNCTION"
    return f"DROP {kind} {qualify(function.schema_name, function.name)}({function.identity_arguments})"


def _enum_additions(old: list[str], new: list[str]) -> list[tuple[str, str | None]] | None:
    """Labels to add, each with the label it goes after.

    Returns None when *old* is not an ordered subsequence of *new*; such
    a change cannot be expressed with ``ADD VALUE``.
    """
    position = 0
    for label in new:
        if position < len(old) and label == old[position]:
            position += 1
    if position != len(old):
        return None

    additions: list[tuple[str, str | None]] = []
    previous: str | None = None
    existing = set(old)
    for label in new:
        if label not in existing:
            additions.append((label, previous))
        previous = label
    return additions


# ============================================================================
# Comparison
# ============================================================================


@dataclass
class _Plan:
    """Statement buckets, emitted in field order."""

    drop_policies: list[str] = field(default_factory=list)
    drop_triggers: list[str] = field(default_factory=list)
    drop_views: list[str] = field(default_factory=list)
    drop_foreign_keys: list[str] = field(default_factory=list)
    drop_constraints: list[str] = field(default_factory=list)
    drop_indexes: list[str] = field(default_factory=list)
    drop_columns: list[str] = field(default_factory=list)
    drop_tables: list[str] = field(default_factory=list)
    drop_functions: list[str] = field(default_factory=list)
    drop_types: list[str] = field(default_factory=list)
    drop_schemas: list[str] = field(default_factory=list)
    create_schemas: list[str] = field(default_factory=list)
    create_types: list[str] = field(default_factory=list)
    create_tables: list[str] = field(default_factory=list)
    alter_columns: list[str] = field(default_factory=list)
    add_constraints: list[str] = field(default_factory=list)
    add_foreign_keys: list[str] = field(default_factory=list)
    create_indexes: list[str] = field(default_factory=list)
    create_functions: list[str] = field(default_factory=list)
    create_views: list[str] = field(default_factory=list)
    create_triggers: list[str] = field(default_factory=list)
    row_security: list[str] = field(default_factory=list)
    create_policies: list[str] = field(default_factory=list)
    grants: list[str] = field(default_factory=list)

    def statements(self) -> list[str]:
        result: list[str] = []
        for bucket in self.__dataclass_fields__:
            result.extend(getattr(self, bucket))
        return result


def _diff_schemas(source: DatabaseSchema, target: DatabaseSchema, plan: _Plan) -> None:
    for name in sorted(set(source.schemas) - set(target.schemas)):
        plan.drop_schemas.append(f"DROP SCHEMA {quote_ident(name)}")
    for name in sorted(set(target.schemas) - set(source.schemas)):
        plan.create_schemas.append(f"CREATE SCHEMA {quote_ident(name)}")


def _diff_types(source: DatabaseSchema, target: DatabaseSchema, plan: _Plan) -> None:
    for key in sorted(set(source.types) - set(target.types)):
        enum = source.types[key]
        plan.drop_types.append(f"DROP TYPE {qualify(enum.schema_name, enum.name)}")

    for key in sorted(target.types):
        new = target.types[key]
        old = source.types.get(key)
        if old is None:
            plan.create_types.append(create_enum_sql(new))
            continue
        if old.labels == new.labels:
            continue

        additions = _enum_additions(old.labels, new.labels)
        if additions is None:
            plan.drop_types.append(f"DROP TYPE {qualify(old.schema_name, old.name)}")
            plan.create_types.append(create_enum_sql(new))
            continue
        for label, after in additions:
            sql = f"ALTER TYPE {qualify(new.schema_name, new.name)} ADD VALUE {quote_literal(label)}"
            if after is not None:
                sql += f" AFTER {quote_literal(after)}"
            elif old.labels:
                sql += f" BEFORE {quote_literal(old.labels[0])}"
            plan.create_types.append(sql)


def _diff_columns(old: TableSchema, new: TableSchema, plan: _Plan) -> None:
    table = qualify(new.schema_name, new.name)

    for name in old.columns:
        if name not in new.columns:
            plan.drop_columns.append(f"ALTER TABLE {table} DROP COLUMN {quote_ident(name)}")

    for name, column in new.columns.items():
        current = old.columns.get(name)
        if current is None:
            plan.alter_columns.append(f"ALTER TABLE {table} ADD COLUMN {column_definition(column)}")
            continue

        col = quote_ident(name)
        if current.data_type != column.data_type:
            plan.alter_columns.append(
                f"ALTER TABLE {table} ALTER COLUMN {col} TYPE {column.data_type} "
                f"USING {col}::{column.data_type}"
            )
        if current.identity != column.identity:
            if current.identity is None:
                plan.alter_columns.append(
                    f"ALTER TABLE {table} ALTER COLUMN {col} "
                    f"ADD GENERATED {column.identity} AS IDENTITY"
                )
            elif column.identity is None:
                plan.alter_columns.append(f"ALTER TABLE {table} ALTER COLUMN {col} DROP IDENTITY")
            else:
                plan.alter_columns.append(
                    f"ALTER TABLE {table} ALTER COLUMN {col} SET GENERATED {column.identity}"
                )
        if current.default != column.default and not column.identity:
            if column.default is None:
                plan.alter_columns.append(f"ALTER TABLE {table} ALTER COLUMN {col} DROP DEFAULT")
            else:
                plan.alter_columns.append(
                    f"ALTER TABLE {table} ALTER COLUMN {col} SET DEFAULT {column.default}"
                )
        if current.is_nullable != column.is_nullable:
            action = "DROP NOT NULL" if column.is_nullable else "SET NOT NULL"
            plan.alter_columns.append(f"ALTER TABLE {table} ALTER COLUMN {col} {action}")


def _diff_table_parts(old: TableSchema, new: TableSchema, plan: _Plan) -> None:
    """Constraints, indexes, triggers, policies and RLS of a table in both snapshots."""
    table = qualify(new.schema_name, new.name)

    for name in sorted(old.constraints):
        constraint = old.constraints[name]
        if new.constraints.get(name) == constraint:
            continue
        bucket = plan.drop_foreign_keys if constraint.is_foreign_key else plan.drop_constraints
        bucket.append(drop_constraint_sql(old, name))

    for name in sorted(new.constraints):
        constraint = new.constraints[name]
        if old.constraints.get(name) == constraint:
            continue
        bucket = plan.add_foreign_keys if constraint.is_foreign_key else plan.add_constraints
        bucket.append(add_constraint_sql(new, constraint))

    for name in sorted(old.indexes):
        if new.indexes.get(name) != old.indexes[name]:
            plan.drop_indexes.append(f"DROP INDEX {qualify(old.schema_name, name)}")
    for name in sorted(new.indexes):
        if old.indexes.get(name) != new.indexes[name]:
            plan.create_indexes.append(new.indexes[name].definition)

    for name in sorted(old.triggers):
        if new.triggers.get(name) != old.triggers[name]:
            plan.drop_triggers.append(f"DROP TRIGGER {quote_ident(name)} ON {table}")
    for name in sorted(new.triggers):
        if old.triggers.get(name) != new.triggers[name]:
            plan.create_triggers.append(new.triggers[name].definition)

    for name in sorted(old.policies):
        if new.policies.get(name) != old.policies[name]:
            plan.drop_policies.append(f"DROP POLICY {quote_ident(name)} ON {table}")
    for name in sorted(new.policies):
        if old.policies.get(name) != new.policies[name]:
            plan.create_policies.append(create_policy_sql(new, new.policies[name]))

    _diff_row_security(old, new, plan)


def _diff_row_security(old: TableSchema | None, new: TableSchema, plan: _Plan) -> None:
    table = qualify(new.schema_name, new.name)
    enabled = old.rls_enabled if old else False
    forced = old.rls_forced if old else False

    if new.rls_enabled != enabled:
        action = "ENABLE" if new.rls_enabled else "DISABLE"
        plan.row_security.append(f"ALTER TABLE {table} {action} ROW LEVEL SECURITY")
    if new.rls_forced != forced:
        action = "FORCE" if new.rls_forced else "NO FORCE"
        plan.row_security.append(f"ALTER TABLE {table} {action} ROW LEVEL SECURITY")


def _diff_grants(old: TableSchema | None, new: TableSchema, plan: _Plan) -> None:
    """Grant and revoke the difference, measured against default privileges.

    Privileges a table receives from its owner's default ACL are not
    statements of their own: a new table gets them from ``CREATE TABLE``.
    Only grants beyond the defaults, and defaults revoked afterwards, are
    compared.
    """
    table = qualify(new.schema_name, new.name)
    old_extra = old.explicit_grants() if old else {}
    old_withheld = old.withheld_grants() if old else {}
    new_extra = new.explicit_grants()
    new_withheld = new.withheld_grants()

    grantees = set(old_extra) | set(old_withheld) | set(new_extra) | set(new_withheld)
    for grantee in sorted(grantees):
        extra_before = set(old_extra.get(grantee, []))
        extra_after = set(new_extra.get(grantee, []))
        withheld_before = set(old_withheld.get(grantee, []))
        withheld_after = set(new_withheld.get(grantee, []))
        role = grantee if grantee == "PUBLIC" else quote_ident(grantee)
        revoked = sorted((extra_before - extra_after) | (withheld_after - withheld_before))
        granted = sorted((extra_after - extra_before) | (withheld_before - withheld_after))
        if revoked:
            plan.grants.append(f"REVOKE {', '.join(revoked)} ON TABLE {table} FROM {role}")
        if granted:
            plan.grants.append(f"GRANT {', '.join(granted)} ON TABLE {table} TO {role}")


def _diff_tables(source: DatabaseSchema, target: DatabaseSchema, plan: _Plan) -> None:
    for key in sorted(set(source.tables) - set(target.tables)):
        table = source.tables[key]
        plan.drop_tables.append(f"DROP TABLE {qualify(table.schema_name, table.name)}")

    for key in sorted(target.tables):
        new = target.tables[key]
        old = source.tables.get(key)

        if old is None:
            plan.create_tables.append(create_table_sql(new))
            for name in sorted(new.constraints):
                if new.constraints[name].is_foreign_key:
                    plan.add_foreign_keys.append(add_constraint_sql(new, new.constraints[name]))
            plan.create_indexes.extend(new.indexes[n].definition for n in sorted(new.indexes))
            plan.create_triggers.extend(new.triggers[n].definition for n in sorted(new.triggers))
            plan.create_policies.extend(
                create_policy_sql(new, new.policies[n]) for n in sorted(new.policies)
            )
            _diff_row_security(None, new, plan)
            _diff_grants(None, new, plan)
            continue

        _diff_columns(old, new, plan)
        _diff_table_parts(old, new, plan)
        _diff_grants(old, new, plan)


def _diff_functions(source: DatabaseSchema, target: DatabaseSchema, plan: _Plan) -> None:
    for key in sorted(set(source.functions) - set(target.functions)):
        plan.drop_functions.append(drop_function_sql(source.functions[key]))

    for key in sorted(target.functions):
        new = target.functions[key]
        old = source.functions.get(key)
        if old == new:
            continue
        if old is not None and old.return_type != new.return_type:
            plan.drop_functions.append(drop_function_sql(old))
        plan.create_functions.append(new.definition)


def _diff_views(source: DatabaseSchema, target: DatabaseSchema, plan: _Plan) -> None:
    for key in sorted(source.views):
        old = source.views[key]
        if target.views.get(key) != old:
            plan.drop_views.append(f"DROP VIEW {qualify(old.schema_name, old.name)}")

    for key in sorted(target.views):
        new = target.views[key]
        if source.views.get(key) != new:
            definition = new.definition.rstrip().rstrip(";")
            plan.create_views.append(
                f"CREATE VIEW {qualify(new.schema_name, new.name)} AS\n{definition}"
            )


def diff_catalogs(source: DatabaseSchema, target: DatabaseSchema) -> list[str]:
    """Statements that transform *source* into *target*.

    Deterministic: the same pair of snapshots always yields the same list.
    An empty list means the snapshots describe the same schema.

    Args:
        source: Snapshot of the database being changed (live).
        target: Snapshot of the desired state (shadow).

    Returns:
        Ordered SQL statements without trailing semicolons.

    Examples:
        >>> from schema_sync.schema.models import DatabaseSchema
        >>> diff_catalogs(DatabaseSchema(), DatabaseSchema())
        []
    """
    plan = _Plan()
    _diff_schemas(source, target, plan)
    _diff_types(source, target, plan)
    _diff_tables(source, target, plan)
    _diff_functions(source, target, plan)
    _diff_views(source, target, plan)
    return plan.statements()
