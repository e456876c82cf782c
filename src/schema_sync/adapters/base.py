"""Database client protocol definitions.

Defines the ``Queryable`` and ``DatabaseClient`` Protocols that the live
adapter and the shadow engine both satisfy.  All methods are ``async def``
-- the library is async-first.

Usage:
    from schema_sync.adapters.base import DatabaseClient

    async def do_work(client: DatabaseClient) -> None:
        rows = await client.query("SELECT nspname FROM pg_namespace")
        await client.execute("CREATE INDEX idx_name ON users (name)")
        await client.close()
"""

from typing import Any, Protocol


class Queryable(Protocol):
    """Anything that can run a read query and return rows as dicts.

    The catalog introspector only needs this, so it works unchanged against
    the live pool and the shadow database.
    """

    async def query(self, sql: str, params: dict[str, Any] | None = None) -> list[dict]:
        """Run a query and return every row.

        Args:
            sql: SQL text.
            params: Optional dict of named parameters.  The placeholder style
                is driver specific; catalog queries pass none.

        Returns:
            List of dicts, one per row.  Empty list if no rows.
        """
        ...


class DatabaseClient(Queryable, Protocol):
    """Database client interface for the target database.

    All methods are async -- callers must ``await`` every operation.
    """

    async def execute(self, sql: str, params: dict[str, Any] | None = None) -> None:
        """Execute a single SQL statement (DDL or other non-query operations).

        Args:
            sql: Raw SQL statement to execute.
            params: Optional dict of named parameters for the SQL statement.

        Example:
            await client.execute(
                "ALTER TABLE users ADD COLUMN email VARCHAR(255)"
            )
        """
        ...

    async def execute_script(self, sql: str) -> None:
        """Execute a multi-statement SQL script without parameters.

        Used for seed files and other user-authored scripts that may contain
        several statements, ``DO`` blocks or dollar-quoted bodies.
        """
        ...

    async def close(self) -> None:
        """Close database connection and clean up resources."""
        ...
