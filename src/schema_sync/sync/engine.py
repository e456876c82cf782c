"""Schema sync engine: plan, push and pull orchestration.

``SchemaSyncEngine`` ties the pieces together:

- ``plan()`` builds a shadow from the local schema files, diffs live against
  it, and filters the result down to actionable statements.
- ``apply(plan)`` hands a plan to the fingerprint-checked applier.
- ``push()`` is plan + apply, followed by seeding when the apply succeeded.
- ``pull()`` diffs a baseline-only shadow against live and writes the result
  as categorized schema files.

Every public operation returns a typed result instead of raising for
database, seeding or oracle errors, so a CLI or watch loop can keep going.

Usage:
    from schema_sync.sync.engine import SchemaSyncEngine

    engine = SchemaSyncEngine.from_config(config, profile="dev")
    try:
        result = await engine.push()
        print(result.apply.status if result.apply else "no changes")
    finally:
        await engine.close()
"""

import logging
from pathlib import Path

from schema_sync.adapters.base import DatabaseClient, Queryable
from schema_sync.config.loader import Settings, get_settings
from schema_sync.config.models import ProjectConfig, SeedSettings
from schema_sync.errors import PlanError, SchemaSyncError, sanitize_error
from schema_sync.factory import ConnectionRegistry, get_active_profile, resolve_url
from schema_sync.schema.files import SchemaFile, find_sql_files
from schema_sync.schema.filter import filter_statements
from schema_sync.schema.models import PlatformRules
from schema_sync.schema.oracle import DiffOracle, IntrospectionDiffOracle
from schema_sync.shadow.builder import ShadowStateBuilder
from schema_sync.shadow.engine import PostgresShadowEngine
from schema_sync.sync.applier import PlanApplier
from schema_sync.sync.events import EventKind, EventSink, NullEventSink
from schema_sync.sync.models import (
    ActionableStatement,
    ApplyResult,
    ApplyStatus,
    DiffPlan,
    DiffResult,
    PullResult,
    PushResult,
    SeedResult,
)
from schema_sync.sync.puller import generate_pull_files, write_pull_files
from schema_sync.sync.seed import apply_seed_files

logger = logging.getLogger(__name__)

PREVIEW_STATEMENTS = 3
PREVIEW_CHARS = 80


def _preview(statements: list[str]) -> list[str]:
    return [" ".join(s.split())[:PREVIEW_CHARS] for s in statements[:PREVIEW_STATEMENTS]]


class SchemaSyncEngine:
    """Synchronizes a directory of schema files with a live database.

    Args:
        live_url: Connection string of the target database.
        schema_dir: Root of the schema file tree.
        builder: Shadow builder.
        oracle: Diff oracle (default: ``IntrospectionDiffOracle``).
        rules: Platform rules (default: Supabase-managed schemas and roles).
        events: Progress sink (default: discard).
        registry: Live pool registry (default: a new one owned by the engine).
        seed: Seed file settings.
    """

    def __init__(
        self,
        live_url: str,
        schema_dir: Path,
        builder: ShadowStateBuilder,
        oracle: DiffOracle | None = None,
        rules: PlatformRules | None = None,
        events: EventSink | None = None,
        registry: ConnectionRegistry | None = None,
        seed: SeedSettings | None = None,
    ) -> None:
        self._live_url = live_url
        self.schema_dir = schema_dir
        self.builder = builder
        self.oracle = oracle or IntrospectionDiffOracle()
        self.rules = rules or PlatformRules()
        self.events = events or NullEventSink()
        self.registry = registry or ConnectionRegistry()
        self.seed_settings = seed or SeedSettings()
        self.applier = PlanApplier(self.oracle, self.builder, self.rules)

    @classmethod
    def from_config(
        cls,
        config: ProjectConfig,
        profile: str | None = None,
        schema_dir: Path | None = None,
        events: EventSink | None = None,
        settings: Settings | None = None,
    ) -> "SchemaSyncEngine":
        """Build an engine from project config and environment settings.

        Raises:
            ProfileNotFoundError: If no usable profile is configured.
            SchemaSyncError: If no shadow server URL is configured.
        """
        settings = settings or get_settings()
        _, db_profile = get_active_profile(config, profile, settings)

        shadow_url = settings.shadow_url or config.schema_.shadow_url
        if not shadow_url:
            raise SchemaSyncError(
                "No shadow server configured.\n"
                "Set [schema].shadow_url in schema-sync.toml or SCHEMA_SYNC_SHADOW_URL."
            )

        auth_dir = config.schema_.auth_migrations_dir
        rules = PlatformRules()
        builder = ShadowStateBuilder(
            lambda: PostgresShadowEngine(shadow_url),
            auth_migrations_dir=Path(auth_dir) if auth_dir else None,
            rules=rules,
        )
        return cls(
            live_url=resolve_url(db_profile),
            schema_dir=schema_dir or Path(config.schema_.dir),
            builder=builder,
            rules=rules,
            events=events,
            seed=config.seed,
        )

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    @property
    def live(self) -> DatabaseClient:
        """Pooled client for the current target."""
        return self.registry.get(self._live_url)

    async def _acquire_live(self) -> DatabaseClient:
        live = self.live
        await self.registry.release_retired()
        return live

    def retarget(self, live_url: str) -> None:
        """Point the engine at another database.

        The old pool is disposed before the next operation runs.
        """
        self._live_url = live_url

    def load_files(self) -> list[SchemaFile]:
        return find_sql_files(self.schema_dir)

    async def close(self) -> None:
        await self.registry.close()

    # ------------------------------------------------------------------
    # Plan
    # ------------------------------------------------------------------

    async def _compare(self, source: Queryable, target: Queryable) -> DiffPlan | None:
        try:
            return await self.oracle.compare(source, target, self.rules)
        except SchemaSyncError:
            raise
        except Exception as e:
            raise PlanError(f"Diff failed: {sanitize_error(e)}") from e

    async def plan(self) -> DiffResult:
        """Diff the live database against the local schema files.

        Returns:
            DiffResult with the filtered plan, or ``error`` set on failure.
        """
        try:
            live = await self._acquire_live()
            files = self.load_files()
            async with self.builder.build(files) as shadow:
                raw = await self._compare(live, shadow)
        except SchemaSyncError as e:
            logger.error("Plan failed: %s", e)
            return DiffResult(error=str(e))
        except Exception as e:
            logger.error("Plan failed: %s", sanitize_error(e))
            return DiffResult(error=sanitize_error(e))

        raw_statements = raw.statements if raw else []
        actionable = filter_statements(raw_statements, self.rules)
        filtered_count = len(raw_statements) - len(actionable)

        if not actionable:
            result = DiffResult(filtered_count=filtered_count)
        else:
            result = DiffResult(
                has_changes=True,
                statements=[ActionableStatement.from_sql(s) for s in actionable],
                plan=DiffPlan(
                    statements=actionable,
                    source_fingerprint=raw.source_fingerprint,
                    target_fingerprint=raw.target_fingerprint,
                ),
                filtered_count=filtered_count,
            )

        self.events.emit(
            EventKind.PLAN_COMPUTED,
            f"{len(actionable)} statement(s), {filtered_count} filtered",
            statement_count=len(actionable),
            filtered_count=filtered_count,
            preview=_preview(actionable),
        )
        return result

    async def create_plan(self) -> DiffPlan | None:
        """Filtered plan, or None when live already matches the files.

        Raises:
            SchemaSyncError: If planning failed.
        """
        result = await self.plan()
        if result.error:
            raise SchemaSyncError(result.error)
        return result.plan

    # ------------------------------------------------------------------
    # Apply / push
    # ------------------------------------------------------------------

    async def apply(self, plan: DiffPlan | dict | None) -> ApplyResult:
        """Apply a plan created by ``plan()`` / ``create_plan()``."""
        total = len(plan.statements) if isinstance(plan, DiffPlan) else 0
        self.events.emit(EventKind.APPLY_STARTED, f"Applying {total} statement(s)", total=total)

        try:
            result = await self.applier.apply(plan, await self._acquire_live(), self.load_files())
        except Exception as e:
            result = ApplyResult(status=ApplyStatus.FAILED, total_statements=total, error=sanitize_error(e))

        if result.status == ApplyStatus.FINGERPRINT_MISMATCH:
            self.events.emit(
                EventKind.FINGERPRINT_CONFLICT,
                "Live database changed since the plan was created; re-plan and try again",
                expected=result.expected_fingerprint,
                actual=result.actual_fingerprint,
            )
        elif result.success:
            self.events.emit(
                EventKind.APPLY_SUCCEEDED,
                f"{result.status.value}: {result.statements_applied} statement(s)",
                status=result.status.value,
                statement_count=result.statements_applied,
            )
        else:
            self.events.emit(
                EventKind.APPLY_FAILED,
                result.error or result.status.value,
                status=result.status.value,
                statements_applied=result.statements_applied,
                total_statements=result.total_statements,
            )
        return result

    async def push(self, dry_run: bool = False, seed: bool | None = None) -> PushResult:
        """Plan, apply, then seed.

        Args:
            dry_run: Only plan.
            seed: Run seed files after a successful apply.  ``None`` uses
                ``[seed].enabled``.
        """
        diff = await self.plan()
        if not diff.success or dry_run:
            return PushResult(diff=diff, dry_run=dry_run)

        if diff.has_changes:
            applied = await self.apply(diff.plan)
        else:
            applied = ApplyResult(status=ApplyStatus.ALREADY_APPLIED)

        run_seed = self.seed_settings.enabled if seed is None else seed
        seeded = await self.seed() if run_seed and applied.success else None
        return PushResult(diff=diff, apply=applied, seed=seeded)

    async def seed(self) -> SeedResult:
        """Execute the configured seed files against live."""
        try:
            result = await apply_seed_files(
                await self._acquire_live(), self.seed_settings.paths, self.schema_dir.parent
            )
        except Exception as e:
            result = SeedResult(errors=[sanitize_error(e)])

        self.events.emit(
            EventKind.SEED_COMPLETED,
            f"{len(result.files_applied)} seed file(s), {len(result.errors)} error(s)",
            files=result.files_applied,
            errors=result.errors,
        )
        return result

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    async def pull(self, dry_run: bool = False) -> PullResult:
        """Write the live schema into categorized files under ``schema_dir``.

        Nothing is written when ``dry_run`` is set or when anything fails.
        """
        try:
            live = await self._acquire_live()
            async with self.builder.build(None) as shadow:
                raw = await self._compare(shadow, live)

            statements = filter_statements(raw.statements if raw else [], self.rules)
            files = generate_pull_files(statements)
            if not dry_run:
                write_pull_files(self.schema_dir, files)
        except SchemaSyncError as e:
            logger.error("Pull failed: %s", e)
            return PullResult(error=str(e), dry_run=dry_run)
        except Exception as e:
            logger.error("Pull failed: %s", sanitize_error(e))
            return PullResult(error=sanitize_error(e), dry_run=dry_run)

        result = PullResult(
            success=True,
            files=files,
            statement_count=sum(f.statement_count for f in files),
            dry_run=dry_run,
        )
        self.events.emit(
            EventKind.PULL_COMPLETED,
            f"{len(files)} file(s), {result.statement_count} statement(s)",
            files=result.paths,
            dry_run=dry_run,
        )
        return result

