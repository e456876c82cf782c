"""Plan Applier -- fingerprint-checked plan execution.

Applies a filtered ``DiffPlan`` to the live database.  Before any statement
runs, the live fingerprint is compared with the one captured at plan time;
if they differ nothing is executed.  Statements then run one by one in plan
order.  There is no surrounding transaction: a failure mid-plan leaves the
statements before it applied, and the result reports how many.

Usage:
    from schema_sync.sync.applier import PlanApplier

    applier = PlanApplier(oracle, builder)
    result = await applier.apply(plan, live, files)
    if result.status == ApplyStatus.FINGERPRINT_MISMATCH:
        print("Live database changed, re-plan and try again")
"""

import logging
from typing import Any

from pydantic import ValidationError

from schema_sync.adapters.base import DatabaseClient
from schema_sync.errors import SchemaSyncError, sanitize_error
from schema_sync.schema.files import SchemaFile
from schema_sync.schema.models import PlatformRules
from schema_sync.schema.oracle import DiffOracle
from schema_sync.shadow.builder import ShadowStateBuilder
from schema_sync.sync.models import ApplyResult, ApplyStatus, DiffPlan

logger = logging.getLogger(__name__)


def validate_plan(plan: DiffPlan | dict[str, Any] | None) -> DiffPlan | str:
    """Coerce *plan* to a ``DiffPlan`` or describe why it is unusable.

    Returns:
        The validated plan, or an error message.
    """
    if plan is None:
        return "Plan is missing"
    if isinstance(plan, dict):
        try:
            plan = DiffPlan.model_validate(plan)
        except ValidationError as e:
            return f"Plan is malformed: {e.error_count()} validation error(s)"

    if not plan.statements:
        return plan
    if not plan.source_fingerprint:
        return "Plan has no source fingerprint"
    if any(not s.strip() for s in plan.statements):
        return "Plan contains an empty statement"
    return plan


class PlanApplier:
    """Applies plans under an optimistic-concurrency check.

    Args:
        oracle: Diff oracle used for fingerprints.
        builder: Shadow builder used to re-seed desired state.
        rules: Platform rules passed to the oracle.
    """

    def __init__(
        self,
        oracle: DiffOracle,
        builder: ShadowStateBuilder,
        rules: PlatformRules | None = None,
    ) -> None:
        self._oracle = oracle
        self._builder = builder
        self._rules = rules or PlatformRules()

    async def apply(
        self,
        plan: DiffPlan | dict[str, Any] | None,
        live: DatabaseClient,
        files: list[SchemaFile],
    ) -> ApplyResult:
        """Apply *plan* to *live*.

        Args:
            plan: Filtered plan from ``SchemaSyncEngine.plan()`` (or its
                JSON form).
            live: Target database.
            files: The schema files the plan was created from.  They are
                re-seeded into a fresh shadow to confirm the desired state
                has not changed since planning.

        Returns:
            ``ApplyResult`` with a terminal status.  Never raises for
            database or seeding errors.
        """
        checked = validate_plan(plan)
        if isinstance(checked, str):
            logger.warning("Invalid plan: %s", checked)
            return ApplyResult(status=ApplyStatus.INVALID_PLAN, error=checked)
        plan = checked

        total = len(plan.statements)
        if plan.is_empty:
            return ApplyResult(status=ApplyStatus.ALREADY_APPLIED)

        try:
            async with self._builder.build(files) as shadow:
                shadow_fingerprint = await self._oracle.fingerprint(shadow, self._rules)
                if plan.target_fingerprint and shadow_fingerprint != plan.target_fingerprint:
                    return ApplyResult(
                        status=ApplyStatus.INVALID_PLAN,
                        total_statements=total,
                        error="Schema files changed since the plan was created; re-plan",
                    )

                live_fingerprint = await self._oracle.fingerprint(live, self._rules)
        except SchemaSyncError as e:
            return ApplyResult(status=ApplyStatus.FAILED, total_statements=total, error=str(e))
        except Exception as e:
            return ApplyResult(
                status=ApplyStatus.FAILED, total_statements=total, error=sanitize_error(e)
            )

        if plan.target_fingerprint and live_fingerprint == plan.target_fingerprint:
            logger.info("Live database already matches the plan target")
            return ApplyResult(status=ApplyStatus.ALREADY_APPLIED, total_statements=total)

        if live_fingerprint != plan.source_fingerprint:
            logger.warning("Fingerprint mismatch: live database changed since planning")
            return ApplyResult(
                status=ApplyStatus.FINGERPRINT_MISMATCH,
                total_statements=total,
                expected_fingerprint=plan.source_fingerprint,
                actual_fingerprint=live_fingerprint,
            )

        return await self.execute(plan, live)

    async def execute(self, plan: DiffPlan, live: DatabaseClient) -> ApplyResult:
        """Run every statement in order, stopping at the first error."""
        result = ApplyResult(status=ApplyStatus.APPLIED, total_statements=len(plan.statements))

        for statement in plan.statements:
            try:
                await live.execute(statement)
            except Exception as e:
                result.status = ApplyStatus.FAILED
                result.error = sanitize_error(e)
                logger.error(
                    "Statement %d/%d failed: %s",
                    result.statements_applied + 1,
                    result.total_statements,
                    result.error,
                )
                return result
            result.statements_applied += 1

        logger.info("Applied %d statements", result.statements_applied)
        return result
