"""Plan, apply, pull and watch.

Only the result models are re-exported here; import the engine from
``schema_sync.sync.engine`` (or the top-level package).
"""

from schema_sync.sync.models import (
    ActionableStatement,
    ApplyResult,
    ApplyStatus,
    DiffPlan,
    DiffResult,
    PulledFile,
    PullResult,
    PushResult,
    SeedResult,
)

__all__ = [
    "ActionableStatement",
    "ApplyResult",
    "ApplyStatus",
    "DiffPlan",
    "DiffResult",
    "PulledFile",
    "PullResult",
    "PushResult",
    "SeedResult",
]
