"""Seed-file executor.

Runs idempotent seed SQL against the live database after a successful
apply.  Each file is executed as one script.  Benign errors (duplicate key,
already exists) still count the file as applied; any other error is recorded
and execution moves on to the next file.

Usage:
    from schema_sync.sync.seed import apply_seed_files

    result = await apply_seed_files(live, ["./seed.sql", "seeds/*.sql"], Path("supabase"))
"""

import logging
from pathlib import Path

from schema_sync.adapters.base import DatabaseClient
from schema_sync.errors import sanitize_error
from schema_sync.shadow.baseline import is_benign_seeding_error
from schema_sync.sync.models import SeedResult

logger = logging.getLogger(__name__)


def resolve_seed_paths(patterns: list[str], base_dir: Path) -> list[Path]:
    """Expand literal paths and ``*`` globs relative to *base_dir*.

    Missing literal paths are skipped.  The result is de-duplicated and
    sorted by path.
    """
    found: set[Path] = set()
    for pattern in patterns:
        pattern = pattern.removeprefix("./")
        if any(ch in pattern for ch in "*?["):
            found.update(p for p in base_dir.glob(pattern) if p.is_file())
            continue
        path = base_dir / pattern
        if path.is_file():
            found.add(path)
        else:
            logger.debug("Seed file not found: %s", path)
    return sorted(found)


async def apply_seed_files(
    client: DatabaseClient,
    patterns: list[str],
    base_dir: Path,
) -> SeedResult:
    """Execute every seed file matching *patterns*.

    Args:
        client: Live database.
        patterns: Paths or globs from ``[seed].paths``.
        base_dir: Directory the patterns are relative to.

    Returns:
        SeedResult with applied files and per-file errors.
    """
    result = SeedResult()

    for path in resolve_seed_paths(patterns, base_dir):
        name = path.relative_to(base_dir).as_posix() if path.is_relative_to(base_dir) else str(path)
        try:
            await client.execute_script(path.read_text(encoding="utf-8"))
        except OSError as e:
            result.errors.append(f"{name}: {sanitize_error(e)}")
            continue
        except Exception as e:
            if not is_benign_seeding_error(e):
                result.errors.append(f"{name}: {sanitize_error(e)}")
                logger.warning("Seed %s failed: %s", name, sanitize_error(e))
                continue
            logger.debug("Seed %s: ignored benign error: %s", name, sanitize_error(e))
        result.files_applied.append(name)

    return result
