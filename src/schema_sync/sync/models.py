"""Pydantic models for plans and operation results.

This module contains sync-domain models:
- Plans: DiffPlan, ActionableStatement, DiffResult
- Apply: ApplyStatus, ApplyResult
- Pull: PulledFile, PullResult
- Seed and push: SeedResult, PushResult

Catalog snapshot models live in schema_sync.schema.models.
"""

from enum import Enum

from pydantic import BaseModel, Field

from schema_sync.schema.filter import StatementKind, classify


# ============================================================================
# Plans
# ============================================================================


class DiffPlan(BaseModel):
    """Statements that move a database from one state to another.

    Attributes:
        statements: SQL statements in execution order.
        source_fingerprint: Fingerprint of the "from" database when the plan
            was created.  Apply refuses to run if the live database no longer
            has this fingerprint.
        target_fingerprint: Fingerprint of the desired ("to") state.
    """

    statements: list[str] = Field(default_factory=list)
    source_fingerprint: str = ""
    target_fingerprint: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.statements


class ActionableStatement(BaseModel):
    """A statement that survived filtering, with its object category.

    Example:
        >>> s = ActionableStatement.from_sql("CREATE INDEX idx ON foo (id)")
        >>> s.kind
        <StatementKind.INDEX: 'indexes'>
    """

    sql: str
    kind: StatementKind

    @classmethod
    def from_sql(cls, sql: str) -> "ActionableStatement":
        return cls(sql=sql, kind=classify(sql))


class DiffResult(BaseModel):
    """Result of planning local files against the live database.

    Attributes:
        has_changes: True if at least one actionable statement remains.
        statements: Actionable statements with their categories.
        plan: Filtered plan to hand to apply, None when there is nothing to do.
        filtered_count: Raw statements removed by the statement filter.
        error: Error message if planning failed.
    """

    has_changes: bool = False
    statements: list[ActionableStatement] = Field(default_factory=list)
    plan: DiffPlan | None = None
    filtered_count: int = 0
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def sql(self) -> list[str]:
        return [s.sql for s in self.statements]


# ============================================================================
# Apply
# ============================================================================


class ApplyStatus(str, Enum):
    """Terminal outcome of applying a plan."""

    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    FINGERPRINT_MISMATCH = "fingerprint_mismatch"
    INVALID_PLAN = "invalid_plan"
    FAILED = "failed"


class ApplyResult(BaseModel):
    """Result of applying a plan to the live database.

    Attributes:
        status: Terminal status.
        statements_applied: Statements that executed successfully.
        total_statements: Statements in the plan.
        error: Sanitized error for ``failed`` / ``invalid_plan``.
        expected_fingerprint: Fingerprint the plan was created against
            (``fingerprint_mismatch`` only).
        actual_fingerprint: Fingerprint found on the live database
            (``fingerprint_mismatch`` only).
    """

    status: ApplyStatus
    statements_applied: int = 0
    total_statements: int = 0
    error: str | None = None
    expected_fingerprint: str | None = None
    actual_fingerprint: str | None = None

    @property
    def success(self) -> bool:
        """True if the live database now matches the plan's target."""
        return self.status in (ApplyStatus.APPLIED, ApplyStatus.ALREADY_APPLIED)

    @property
    def is_retryable(self) -> bool:
        """True if re-planning and applying again is the expected remedy."""
        return self.status == ApplyStatus.FINGERPRINT_MISMATCH


# ============================================================================
# Pull
# ============================================================================


class PulledFile(BaseModel):
    """One generated schema file.

    Attributes:
        path: Path relative to the schema directory (``public/tables.sql``).
        schema_name: Database schema the statements belong to.
        kind: Object category.
        statement_count: Statements in the file.
        content: Full file text.
    """

    path: str
    schema_name: str
    kind: StatementKind
    statement_count: int
    content: str


class PullResult(BaseModel):
    """Result of pulling the live schema into local files.

    Attributes:
        success: True if files were generated (and written, unless dry run).
        files: Generated files, sorted by path.
        statement_count: Total statements across files.
        dry_run: True if nothing was written.
        error: Error message if pull failed.
    """

    success: bool = False
    files: list[PulledFile] = Field(default_factory=list)
    statement_count: int = 0
    dry_run: bool = False
    error: str | None = None

    @property
    def paths(self) -> list[str]:
        return [f.path for f in self.files]


# ============================================================================
# Seed and push
# ============================================================================


class SeedResult(BaseModel):
    """Result of executing seed files after a successful apply.

    Attributes:
        files_applied: Seed files that ran (benign errors included).
        errors: ``"<file>: <sanitized error>"`` for each failing file.
    """

    files_applied: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


class PushResult(BaseModel):
    """Result of plan + apply (+ seed) in one call.

    Attributes:
        diff: The plan that was computed.
        apply: Apply outcome; None for dry runs and failed plans.
        seed: Seed outcome; None when seeding was skipped.
        dry_run: True if nothing was applied.
    """

    diff: DiffResult
    apply: ApplyResult | None = None
    seed: SeedResult | None = None
    dry_run: bool = False

    @property
    def success(self) -> bool:
        if not self.diff.success:
            return False
        if self.apply is not None and not self.apply.success:
            return False
        return self.seed is None or self.seed.success
