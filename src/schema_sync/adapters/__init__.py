"""Database adapters package.

Provides the ``DatabaseClient`` Protocol and the async PostgreSQL adapter
used for the target database.

Usage:
    from schema_sync.adapters import DatabaseClient, AsyncPostgresAdapter
"""

from schema_sync.adapters.base import DatabaseClient, Queryable
from schema_sync.adapters.postgres import AsyncPostgresAdapter

__all__ = [
    "DatabaseClient",
    "Queryable",
    "AsyncPostgresAdapter",
]
