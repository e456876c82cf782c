"""Shadow State Builder.

Materializes desired state in a fresh shadow database:

1. Create an isolated engine instance.
2. Seed the platform baseline (roles, default privileges, publication).
3. Seed the auth subsystem's migrations.
4. Create custom schemas found as top-level directories of the file tree.
5. Apply the user's schema files in dependency order.

Errors in steps 2-4 are ignored when benign and fatal otherwise.  In step 5
only "already exists" is tolerated.  Any fatal error aborts the build and the
shadow is destroyed; a partially seeded shadow is never handed out.

For pull, ``build(None)`` stops after step 3: the shadow represents an
empty project, so diffing it against live yields the live schema itself.

Usage:
    from schema_sync.shadow.builder import ShadowStateBuilder

    builder = ShadowStateBuilder(lambda: PostgresShadowEngine(admin_url))
    async with builder.build(files) as shadow:
        rows = await shadow.query("SELECT 1 AS ok")
"""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from pathlib import Path

from schema_sync.errors import SchemaFileError, ShadowSeedError, sanitize_error
from schema_sync.schema.files import (
    SchemaFile,
    find_custom_schemas,
    generate_schema_creation_sql,
    order_schema_files,
)
from schema_sync.schema.models import PlatformRules
from schema_sync.shadow.baseline import (
    baseline_statements,
    is_benign_seeding_error,
    is_tolerated_file_error,
    load_auth_migrations,
)
from schema_sync.shadow.engine import ShadowEngine

logger = logging.getLogger(__name__)


class ShadowStateBuilder:
    """Builds seeded shadow databases from schema files.

    Args:
        engine_factory: Returns a new, not yet created ``ShadowEngine``.
            Called once per build.
        auth_migrations_dir: External auth migration set.  ``None`` uses
            the bundled migrations.
        rules: Platform roles and publications seeded into every shadow.
    """

    def __init__(
        self,
        engine_factory: Callable[[], ShadowEngine],
        auth_migrations_dir: Path | None = None,
        rules: PlatformRules | None = None,
    ) -> None:
        self._engine_factory = engine_factory
        self._auth_migrations_dir = auth_migrations_dir
        self._rules = rules or PlatformRules()

    @asynccontextmanager
    async def build(self, files: list[SchemaFile] | None) -> AsyncIterator[ShadowEngine]:
        """Create, seed and yield a shadow; destroy it on exit.

        Args:
            files: Schema files to apply, or ``None`` for a baseline-only
                shadow.

        Raises:
            ShadowSeedError: On any structural seeding failure.
        """
        engine = self._engine_factory()
        try:
            await engine.create()
            await self.seed(engine, files)
            yield engine
        finally:
            await engine.destroy()

    async def seed(self, engine: ShadowEngine, files: list[SchemaFile] | None) -> None:
        """Run every seeding stage against an already created engine."""
        await self._seed_baseline(engine)
        await self._seed_auth_migrations(engine)
        if files is None:
            logger.debug("Baseline-only shadow ready")
            return

        ordered = order_schema_files(files)
        await self._create_custom_schemas(engine, ordered)
        await self._apply_schema_files(engine, ordered)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _seed_baseline(self, engine: ShadowEngine) -> None:
        statements = baseline_statements(self._rules)
        skipped = 0
        for statement in statements:
            try:
                await engine.exec(statement)
            except Exception as e:
                if not is_benign_seeding_error(e):
                    raise ShadowSeedError("baseline", sanitize_error(e)) from e
                skipped += 1
                logger.debug("Baseline: ignored benign error: %s", sanitize_error(e))
        logger.debug(
            "Platform baseline applied (%d statements, %d skipped)",
            len(statements),
            skipped,
        )

    async def _seed_auth_migrations(self, engine: ShadowEngine) -> None:
        migrations = load_auth_migrations(self._auth_migrations_dir)
        logger.debug("Seeding %d auth migrations", len(migrations))

        for index, (name, sql) in enumerate(migrations, start=1):
            try:
                await engine.exec(sql)
            except Exception as e:
                if not is_benign_seeding_error(e):
                    raise ShadowSeedError(
                        "auth_migrations",
                        f"migration {index}/{len(migrations)} failed: {sanitize_error(e)}",
                        path=name,
                    ) from e
                logger.debug("Auth migration %s: ignored benign error: %s", name, sanitize_error(e))

    async def _create_custom_schemas(self, engine: ShadowEngine, files: list[SchemaFile]) -> None:
        schemas = find_custom_schemas(files)
        if not schemas:
            return

        logger.debug("Creating custom schemas: %s", ", ".join(schemas))
        try:
            await engine.exec(generate_schema_creation_sql(schemas))
        except Exception as e:
            if not is_benign_seeding_error(e):
                raise ShadowSeedError("custom_schemas", sanitize_error(e)) from e

    async def _apply_schema_files(self, engine: ShadowEngine, files: list[SchemaFile]) -> None:
        logger.debug("Applying %d schema files", len(files))
        logger.debug("Order: %s", ", ".join(f.path for f in files))

        for schema_file in files:
            try:
                await engine.exec(schema_file.content)
            except Exception as e:
                if not is_tolerated_file_error(e):
                    raise SchemaFileError(schema_file.path, sanitize_error(e)) from e
                logger.debug("%s: ignored: %s", schema_file.path, sanitize_error(e))
            else:
                logger.debug("Applied %s", schema_file.path)
