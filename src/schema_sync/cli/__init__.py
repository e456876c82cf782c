"""CLI for schema synchronization.

Usage:
    schema-sync profiles
    schema-sync plan
    SCHEMA_SYNC_PROFILE=staging schema-sync push --dry-run
    schema-sync push --no-seed
    schema-sync pull
    schema-sync seed
    schema-sync watch --debounce 750

Commands:
    profiles  - List available profiles
    plan      - Show the statements a push would run
    push      - Plan and apply local schema files to the database
    pull      - Write the live schema into local schema files
    seed      - Run seed files against the database
    watch     - Push whenever schema files or the config change

Exit codes: 0 on success, 1 on failure, 2 when the live database changed
between planning and applying (re-run to re-plan).
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from schema_sync.config.loader import find_config_file, get_settings, load_project_config
from schema_sync.config.models import ProjectConfig
from schema_sync.errors import ProfileNotFoundError, SchemaSyncError
from schema_sync.factory import get_active_profile, get_active_profile_name, resolve_url
from schema_sync.sync.engine import SchemaSyncEngine
from schema_sync.sync.events import ConsoleEventSink, EventSink, JsonEventSink
from schema_sync.sync.models import ApplyStatus, DiffResult, PullResult, PushResult, SeedResult
from schema_sync.sync.watch import SchemaWatcher

console = Console()

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_RETRY = 2


# ============================================================================
# Helpers
# ============================================================================


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose or get_settings().verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _config_path(args: argparse.Namespace) -> Path:
    return Path(args.config) if args.config else find_config_file()


def _load_config(args: argparse.Namespace) -> ProjectConfig:
    return load_project_config(_config_path(args))


def _make_sink(args: argparse.Namespace) -> EventSink:
    return JsonEventSink() if args.json else ConsoleEventSink(console)


def _build_engine(args: argparse.Namespace) -> SchemaSyncEngine:
    """Engine for the selected profile.

    Raises:
        FileNotFoundError: If the config file is missing.
        ValueError: If the config file is invalid.
        SchemaSyncError: If no profile or shadow server is configured.
    """
    return SchemaSyncEngine.from_config(
        _load_config(args),
        profile=args.profile,
        schema_dir=Path(args.schema_dir) if args.schema_dir else None,
        events=_make_sink(args),
    )


def _print_diff(result: DiffResult) -> None:
    if result.error:
        console.print(f"[bold red]x[/bold red] {escape(result.error)}")
        return
    if not result.has_changes:
        console.print("[bold green]v[/bold green] No changes")
        if result.filtered_count:
            console.print(f"  [dim]{result.filtered_count} platform statement(s) filtered[/dim]")
        return

    table = Table(title="Planned Statements", show_header=True, header_style="bold")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Kind")
    table.add_column("Statement")
    for index, statement in enumerate(result.statements, start=1):
        table.add_row(str(index), statement.kind.value, escape(statement.sql))
    console.print(table)
    if result.filtered_count:
        console.print(f"[dim]{result.filtered_count} platform statement(s) filtered[/dim]")


def _push_exit_code(result: PushResult) -> int:
    if result.apply is not None and result.apply.status == ApplyStatus.FINGERPRINT_MISMATCH:
        return EXIT_RETRY
    return EXIT_OK if result.success else EXIT_FAILED


def _print_push(result: PushResult) -> None:
    _print_diff(result.diff)
    if result.dry_run:
        console.print("\n[dim]Dry run: nothing applied.[/dim]")
        return

    applied = result.apply
    if applied is None:
        return
    if applied.status == ApplyStatus.APPLIED:
        console.print(f"[bold green]v[/bold green] Applied {applied.statements_applied} statement(s)")
    elif applied.status == ApplyStatus.ALREADY_APPLIED:
        console.print("[bold green]v[/bold green] Already up to date")
    elif applied.status == ApplyStatus.FINGERPRINT_MISMATCH:
        console.print("[yellow]Live database changed since planning. Re-run to re-plan.[/yellow]")
    else:
        console.print(
            f"[bold red]x[/bold red] {applied.status.value} after "
            f"{applied.statements_applied}/{applied.total_statements} statement(s): {escape(applied.error or '')}"
        )

    if result.seed is not None:
        _print_seed(result.seed)


def _print_pull(result: PullResult) -> None:
    if not result.success:
        console.print(f"[bold red]x[/bold red] {escape(result.error)}")
        return
    if not result.files:
        console.print("[bold green]v[/bold green] Nothing to pull")
        return

    table = Table(title="Schema Files", show_header=True, header_style="bold")
    table.add_column("File")
    table.add_column("Statements", justify="right")
    for pulled in result.files:
        table.add_row(pulled.path, str(pulled.statement_count))
    console.print(table)
    if result.dry_run:
        console.print("[dim]Dry run: no files written.[/dim]")


def _print_seed(result: SeedResult) -> None:
    for name in result.files_applied:
        console.print(f"  [green]v[/green] seed {name}")
    for error in result.errors:
        console.print(f"  [red]x[/red] seed {escape(error)}")


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_plan(args: argparse.Namespace) -> int:
    try:
        engine = _build_engine(args)
    except (FileNotFoundError, ValueError, SchemaSyncError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return EXIT_FAILED

    try:
        result = await engine.plan()
    finally:
        await engine.close()

    if args.json:
        print(result.model_dump_json())
    else:
        _print_diff(result)
    return EXIT_OK if result.success else EXIT_FAILED


async def _async_push(args: argparse.Namespace) -> int:
    try:
        engine = _build_engine(args)
    except (FileNotFoundError, ValueError, SchemaSyncError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return EXIT_FAILED

    try:
        result = await engine.push(dry_run=args.dry_run, seed=args.seed)
    finally:
        await engine.close()

    if args.json:
        print(result.model_dump_json())
    else:
        _print_push(result)
    return _push_exit_code(result)


async def _async_pull(args: argparse.Namespace) -> int:
    try:
        engine = _build_engine(args)
    except (FileNotFoundError, ValueError, SchemaSyncError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return EXIT_FAILED

    try:
        result = await engine.pull(dry_run=args.dry_run)
    finally:
        await engine.close()

    if args.json:
        print(result.model_dump_json(exclude={"files": {"__all__": {"content"}}}))
    else:
        _print_pull(result)
    return EXIT_OK if result.success else EXIT_FAILED


async def _async_seed(args: argparse.Namespace) -> int:
    try:
        engine = _build_engine(args)
    except (FileNotFoundError, ValueError, SchemaSyncError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return EXIT_FAILED

    try:
        result = await engine.seed()
    finally:
        await engine.close()

    if args.json:
        print(result.model_dump_json())
    else:
        _print_seed(result)
    return EXIT_OK if result.success else EXIT_FAILED


async def _async_watch(args: argparse.Namespace) -> int:
    try:
        config = _load_config(args)
        engine = SchemaSyncEngine.from_config(
            config,
            profile=args.profile,
            schema_dir=Path(args.schema_dir) if args.schema_dir else None,
            events=_make_sink(args),
        )
    except (FileNotFoundError, ValueError, SchemaSyncError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return EXIT_FAILED

    async def sync() -> None:
        if args.dry_run:
            result = await engine.plan()
            if not args.json:
                _print_diff(result)
        else:
            result = await engine.push()
            if not args.json:
                _print_push(result)

    async def reload_config() -> None:
        fresh = _load_config(args)
        _, profile = get_active_profile(fresh, args.profile)
        engine.retarget(resolve_url(profile))
        engine.seed_settings = fresh.seed

    watcher = SchemaWatcher(
        sync,
        engine.schema_dir,
        config_path=_config_path(args),
        on_config_change=reload_config,
        debounce_ms=args.debounce if args.debounce is not None else config.watch.debounce_ms,
        step_ms=config.watch.step_ms,
        events=engine.events,
    )

    if not args.json:
        console.print(f"Watching [cyan]{engine.schema_dir}[/cyan] (Ctrl+C to stop)", style="dim")
    try:
        await sync()
        await watcher.run()
    finally:
        await engine.close()
    return EXIT_OK


# ============================================================================
# Command wrappers
# ============================================================================


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from schema-sync.toml.

    Reads only local config -- no database calls.

    Returns:
        0 on success, 1 if the config is missing or invalid.
    """
    try:
        config = _load_config(args)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return EXIT_FAILED

    try:
        current = get_active_profile_name(config, args.profile)
    except ProfileNotFoundError:
        current = None

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Provider")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        table.add_row(
            marker,
            f"[bold cyan]{name}[/bold cyan]" if name == current else name,
            profile.provider,
            profile.description or "",
        )

    console.print(table)
    if current:
        console.print("\n[bold green]*[/bold green] = active profile")
    return EXIT_OK


def cmd_plan(args: argparse.Namespace) -> int:
    """Show the statements a push would run."""
    return asyncio.run(_async_plan(args))


def cmd_push(args: argparse.Namespace) -> int:
    """Plan and apply local schema files."""
    return asyncio.run(_async_push(args))


def cmd_pull(args: argparse.Namespace) -> int:
    """Write the live schema into local files."""
    return asyncio.run(_async_pull(args))


def cmd_seed(args: argparse.Namespace) -> int:
    """Run seed files against the database."""
    return asyncio.run(_async_seed(args))


def cmd_watch(args: argparse.Namespace) -> int:
    """Push on every change until interrupted."""
    try:
        return asyncio.run(_async_watch(args))
    except KeyboardInterrupt:
        return EXIT_OK


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="schema-sync",
        description="Declarative schema synchronization for Postgres",
    )
    parser.add_argument("--profile", "-p", help="Database profile (overrides SCHEMA_SYNC_PROFILE)")
    parser.add_argument("--config", "-c", help="Path to schema-sync.toml")
    parser.add_argument("--schema-dir", help="Schema file directory (overrides [schema].dir)")
    parser.add_argument("--json", action="store_true", help="Emit newline-delimited JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_profiles = subparsers.add_parser("profiles", help="List available profiles")
    p_profiles.set_defaults(func=cmd_profiles)

    p_plan = subparsers.add_parser("plan", help="Show the statements a push would run")
    p_plan.set_defaults(func=cmd_plan)

    p_push = subparsers.add_parser("push", help="Apply local schema files to the database")
    p_push.add_argument("--dry-run", action="store_true", help="Plan only")
    p_push.add_argument(
        "--seed",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Run seed files after a successful apply (default: [seed].enabled)",
    )
    p_push.set_defaults(func=cmd_push)

    p_pull = subparsers.add_parser("pull", help="Write the live schema into local files")
    p_pull.add_argument("--dry-run", action="store_true", help="List files without writing")
    p_pull.set_defaults(func=cmd_pull)

    p_seed = subparsers.add_parser("seed", help="Run seed files against the database")
    p_seed.set_defaults(func=cmd_seed)

    p_watch = subparsers.add_parser("watch", help="Push on every schema or config change")
    p_watch.add_argument("--dry-run", action="store_true", help="Plan only on each change")
    p_watch.add_argument("--debounce", type=int, help="Debounce in milliseconds")
    p_watch.set_defaults(func=cmd_watch)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
