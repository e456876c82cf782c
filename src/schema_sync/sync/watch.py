"""Watch mode: re-sync whenever schema files or the config change.

File events come from ``watchfiles.awatch``, which groups raw filesystem
events into short batches.  Each change lands in a pending set and
(re)starts a debounce timer.  When the timer fires, one sync runs with
everything pending at that moment.  Changes that arrive while a sync is in
flight are folded into the next pending set, which is flushed once the
current sync finishes, so a burst of edits produces one sync.

Usage:
    from schema_sync.sync.watch import SchemaWatcher

    watcher = SchemaWatcher(engine.push, Path("supabase/schema"))
    await watcher.run()
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from pathlib import Path
from typing import Any

from watchfiles import Change, DefaultFilter, awatch

from schema_sync.errors import SchemaSyncError, sanitize_error
from schema_sync.sync.events import EventKind, EventSink, NullEventSink

logger = logging.getLogger(__name__)


class SchemaFileFilter(DefaultFilter):
    """Accept ``.sql`` files under the schema directory and the config file.

    Editor and VCS noise (``.git``, swap files, ``__pycache__`` ...) is
    dropped by ``DefaultFilter``.
    """

    def __init__(self, schema_dir: Path, config_path: Path | None = None) -> None:
        super().__init__()
        self.schema_dir = schema_dir
        self.config_path = config_path

    def __call__(self, change: Change, path: str) -> bool:
        candidate = Path(path)
        if self.config_path is not None and candidate == self.config_path:
            return True
        return (
            candidate.suffix == ".sql"
            and candidate.is_relative_to(self.schema_dir)
            and super().__call__(change, path)
        )


class SchemaWatcher:
    """Debounced, single-flight sync trigger.

    Args:
        sync: Coroutine function that runs one sync (``engine.push``).
        schema_dir: Directory to watch for ``.sql`` changes.
        config_path: Config file to watch; None to skip.
        on_config_change: Awaited before the sync when the config changed,
            e.g. to reload profiles and retarget the engine.
        debounce_ms: Quiet period before a flush.
        step_ms: How long ``awatch`` gathers raw events into one batch.
        force_polling: Passed to ``awatch``; None lets watchfiles decide.
        events: Progress sink.
    """

    def __init__(
        self,
        sync: Callable[[], Awaitable[Any]],
        schema_dir: Path,
        config_path: Path | None = None,
        on_config_change: Callable[[], Awaitable[None]] | None = None,
        debounce_ms: int = 500,
        step_ms: int = 50,
        force_polling: bool | None = None,
        events: EventSink | None = None,
    ) -> None:
        self._sync = sync
        self.schema_dir = schema_dir.resolve()
        self.config_path = config_path.resolve() if config_path is not None else None
        self._on_config_change = on_config_change
        self.debounce = debounce_ms / 1000
        self.step_ms = step_ms
        self.force_polling = force_polling
        self.events = events or NullEventSink()
        self.watch_filter = SchemaFileFilter(self.schema_dir, self.config_path)

        self.pending_schema_changes: set[str] = set()
        self.pending_config_change = False
        self.is_applying = False
        self.sync_count = 0

        self._timer: asyncio.TimerHandle | None = None
        self._flush_tasks: set[asyncio.Task] = set()

    @property
    def has_pending(self) -> bool:
        return bool(self.pending_schema_changes) or self.pending_config_change

    def watch_roots(self) -> list[Path]:
        """Existing directories to hand to ``awatch``.

        The config file is watched through its directory so editors that
        replace the file on save are still seen.  The schema directory is
        not watched separately when it already sits below that directory.

        Raises:
            FileNotFoundError: If none of the paths exist.
        """
        roots = [self.schema_dir]
        if self.config_path is not None:
            parent = self.config_path.parent
            if self.schema_dir.is_relative_to(parent):
                roots = [parent]
            else:
                roots.append(parent)

        existing = [root for root in roots if root.is_dir()]
        if not existing:
            raise FileNotFoundError(f"Nothing to watch: {self.schema_dir} does not exist")
        return existing

    # ------------------------------------------------------------------
    # Change handling
    # ------------------------------------------------------------------

    def handle_changes(self, changes: Iterable[tuple[Change, str]]) -> None:
        """Record one ``awatch`` batch as pending changes."""
        config_changed = False
        for _, raw in sorted(changes, key=lambda change: change[1]):
            path = Path(raw)
            if self.config_path is not None and path == self.config_path:
                config_changed = True
            elif path.suffix == ".sql" and path.is_relative_to(self.schema_dir):
                self.notify_schema_change(path.relative_to(self.schema_dir).as_posix())
        if config_changed:
            self.notify_config_change()

    def notify_schema_change(self, path: str) -> None:
        self.pending_schema_changes.add(path)
        self.events.emit(EventKind.FILE_CHANGED, path, path=path)
        self._schedule_flush()

    def notify_config_change(self) -> None:
        self.pending_config_change = True
        self.events.emit(EventKind.FILE_CHANGED, "config changed", path=str(self.config_path))
        self._schedule_flush()

    # ------------------------------------------------------------------
    # Debounce / flush
    # ------------------------------------------------------------------

    def _schedule_flush(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce, self._start_flush)

    def _start_flush(self) -> None:
        self._timer = None
        task = asyncio.get_running_loop().create_task(self.flush())
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_done)

    def _flush_done(self, task: asyncio.Task) -> None:
        self._flush_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Watch flush crashed: %s", sanitize_error(error))

    async def flush(self) -> bool:
        """Run one sync for everything pending.

        Returns:
            True if a sync ran, False if one was already in flight or
            nothing was pending.
        """
        if self.is_applying or not self.has_pending:
            return False

        self.is_applying = True
        changed = sorted(self.pending_schema_changes)
        config_changed = self.pending_config_change
        self.pending_schema_changes.clear()
        self.pending_config_change = False

        try:
            if config_changed and self._on_config_change is not None:
                await self._on_config_change()
            self.events.emit(
                EventKind.SYNC_STARTED,
                f"{len(changed)} file(s) changed" + (", config changed" if config_changed else ""),
                files=changed,
                config_changed=config_changed,
            )
            await self._sync()
            self.sync_count += 1
        except (SchemaSyncError, ValueError, OSError) as e:
            logger.error("Sync failed: %s", sanitize_error(e))
        finally:
            self.is_applying = False

        if self.has_pending:
            self._schedule_flush()
        return True

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Watch until *stop* is set (or forever)."""
        stop = stop or asyncio.Event()
        roots = self.watch_roots()
        logger.info("Watching %s", ", ".join(str(root) for root in roots))
        try:
            async for changes in awatch(
                *roots,
                watch_filter=self.watch_filter,
                debounce=self.step_ms * 2,
                step=self.step_ms,
                stop_event=stop,
                force_polling=self.force_polling,
            ):
                self.handle_changes(changes)
        finally:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if self._flush_tasks:
                await asyncio.gather(*self._flush_tasks, return_exceptions=True)
