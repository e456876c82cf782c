"""Diff Oracle: structural comparison of two databases.

``DiffOracle`` is the contract the engine depends on.  The default
``IntrospectionDiffOracle`` introspects both sides into ``DatabaseSchema``
snapshots, fingerprints them, and generates statements with
``diff_catalogs``.  Its fingerprint is the SHA-256 of the snapshot's
canonical JSON, so any change to the user-owned schema changes it.

Usage:
    from schema_sync.schema.oracle import IntrospectionDiffOracle

    oracle = IntrospectionDiffOracle()
    plan = await oracle.compare(live, shadow, PlatformRules())
    if plan is None:
        print("No changes")
"""

import logging
from typing import Protocol

from schema_sync.adapters.base import Queryable
from schema_sync.schema.comparator import diff_catalogs
from schema_sync.schema.introspector import SchemaIntrospector
from schema_sync.schema.models import DatabaseSchema, PlatformRules
from schema_sync.sync.models import DiffPlan

logger = logging.getLogger(__name__)


class DiffOracle(Protocol):
    """Computes plans and fingerprints between two databases."""

    async def compare(
        self, source: Queryable, target: Queryable, rules: PlatformRules
    ) -> DiffPlan | None:
        """Plan the statements that turn *source* into *target*.

        Args:
            source: The "from" database.
            target: The "to" database (desired state).
            rules: Platform-managed schemas/roles to leave out.

        Returns:
            ``DiffPlan`` with both fingerprints, or None if the databases
            already match.
        """
        ...

    async def fingerprint(self, db: Queryable, rules: PlatformRules) -> str:
        """Opaque value that changes whenever the user-owned schema changes."""
        ...


class IntrospectionDiffOracle:
    """Default oracle built on catalog introspection.

    Example:
        oracle = IntrospectionDiffOracle()
        fp = await oracle.fingerprint(adapter, PlatformRules())
    """

    async def snapshot(self, db: Queryable, rules: PlatformRules) -> DatabaseSchema:
        return await SchemaIntrospector(db, rules).introspect()

    async def fingerprint(self, db: Queryable, rules: PlatformRules) -> str:
        return (await self.snapshot(db, rules)).fingerprint()

    async def compare(
        self, source: Queryable, target: Queryable, rules: PlatformRules
    ) -> DiffPlan | None:
        source_schema = await self.snapshot(source, rules)
        target_schema = await self.snapshot(target, rules)

        statements = diff_catalogs(source_schema, target_schema)
        logger.debug("Oracle produced %d raw statements", len(statements))
        if not statements:
            return None

        return DiffPlan(
            statements=statements,
            source_fingerprint=source_schema.fingerprint(),
            target_fingerprint=target_schema.fingerprint(),
        )
