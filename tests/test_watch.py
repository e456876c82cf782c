"""Tests for the debounced watch loop."""

import asyncio
import logging
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from watchfiles import Change

from schema_sync.errors import SchemaSyncError
from schema_sync.sync.events import EventKind, RecordingEventSink
from schema_sync.sync.watch import SchemaFileFilter, SchemaWatcher


def _fake_awatch(*batches: set[tuple[Change, str]]):
    """Stand-in for ``watchfiles.awatch``: yields *batches*, then waits for stop."""
    calls: list[tuple[tuple, dict]] = []

    async def fake(*paths, **kwargs):
        calls.append((paths, kwargs))
        for batch in batches:
            yield batch
        await kwargs["stop_event"].wait()

    return fake, calls


# ============================================================================
# Test: Filter and roots
# ============================================================================


class TestSchemaFileFilter:
    """Verify which paths reach the watcher."""

    def test_sql_under_schema_dir(self, tmp_path: Path) -> None:
        """Only .sql files below the schema directory pass."""
        schema_dir = tmp_path / "schema"
        watch_filter = SchemaFileFilter(schema_dir)

        assert watch_filter(Change.modified, str(schema_dir / "public" / "tables.sql"))
        assert not watch_filter(Change.modified, str(schema_dir / "README.md"))
        assert not watch_filter(Change.modified, str(tmp_path / "seed.sql"))

    def test_config_file(self, tmp_path: Path) -> None:
        """The config file passes even though it is not SQL."""
        config = tmp_path / "schema-sync.toml"
        watch_filter = SchemaFileFilter(tmp_path / "schema", config)

        assert watch_filter(Change.modified, str(config))
        assert not watch_filter(Change.modified, str(tmp_path / "other.toml"))


class TestWatchRoots:
    """Verify the directories handed to awatch."""

    def test_schema_below_config_directory(self, tmp_path: Path) -> None:
        """One recursive watch on the project root covers both."""
        (tmp_path / "schema").mkdir()
        watcher = SchemaWatcher(AsyncMock(), tmp_path / "schema", config_path=tmp_path / "schema-sync.toml")
        assert watcher.watch_roots() == [tmp_path.resolve()]

    def test_separate_directories(self, tmp_path: Path) -> None:
        """Unrelated directories are both watched."""
        (tmp_path / "schema").mkdir()
        (tmp_path / "conf").mkdir()
        watcher = SchemaWatcher(
            AsyncMock(), tmp_path / "schema", config_path=tmp_path / "conf" / "schema-sync.toml"
        )
        assert watcher.watch_roots() == [(tmp_path / "schema").resolve(), (tmp_path / "conf").resolve()]

    def test_nothing_exists(self, tmp_path: Path) -> None:
        """A missing schema directory with no config cannot be watched."""
        watcher = SchemaWatcher(AsyncMock(), tmp_path / "missing")
        with pytest.raises(FileNotFoundError, match="Nothing to watch"):
            watcher.watch_roots()


# ============================================================================
# Test: Change handling
# ============================================================================


class TestHandleChanges:
    """Verify awatch batches become pending changes."""

    @pytest.mark.asyncio
    async def test_edit_add_and_delete(self, tmp_path: Path) -> None:
        """Edits, additions and deletions are all pending, relative to the schema dir."""
        watcher = SchemaWatcher(AsyncMock(), tmp_path, debounce_ms=60_000)
        root = watcher.schema_dir

        watcher.handle_changes({
            (Change.modified, str(root / "public" / "tables.sql")),
            (Change.deleted, str(root / "old.sql")),
            (Change.added, str(root / "new.sql")),
            (Change.modified, str(root / "notes.txt")),
        })

        assert watcher.pending_schema_changes == {"public/tables.sql", "old.sql", "new.sql"}
        assert not watcher.pending_config_change

    @pytest.mark.asyncio
    async def test_config_change(self, tmp_path: Path) -> None:
        """A changed config file is tracked separately."""
        config = tmp_path / "schema-sync.toml"
        events = RecordingEventSink()
        watcher = SchemaWatcher(
            AsyncMock(), tmp_path / "schema", config_path=config, debounce_ms=60_000, events=events
        )

        watcher.handle_changes({(Change.modified, str(config.resolve()))})

        assert watcher.pending_config_change
        assert watcher.pending_schema_changes == set()
        assert events.kinds == [EventKind.FILE_CHANGED]

    @pytest.mark.asyncio
    async def test_empty_batch(self, tmp_path: Path) -> None:
        """An empty batch records nothing."""
        watcher = SchemaWatcher(AsyncMock(), tmp_path)
        watcher.handle_changes(set())
        assert not watcher.has_pending


# ============================================================================
# Test: Flush
# ============================================================================


class TestFlush:
    """Verify debounce and single-flight behavior."""

    @pytest.mark.asyncio
    async def test_burst_collapses_to_one_sync(self, tmp_path: Path) -> None:
        """Several changes inside the debounce window cause one sync."""
        sync = AsyncMock()
        events = RecordingEventSink()
        watcher = SchemaWatcher(sync, tmp_path, debounce_ms=20, events=events)

        for name in ("a.sql", "b.sql", "c.sql"):
            watcher.notify_schema_change(name)
        await asyncio.sleep(0.2)

        sync.assert_awaited_once()
        assert watcher.sync_count == 1
        assert not watcher.has_pending
        started = [e for e in events.events if e.kind == EventKind.SYNC_STARTED]
        assert len(started) == 1
        assert started[0].data["files"] == ["a.sql", "b.sql", "c.sql"]

    @pytest.mark.asyncio
    async def test_changes_during_sync_trigger_one_more(self, tmp_path: Path) -> None:
        """A change during an in-flight sync is flushed after it finishes."""
        release = asyncio.Event()
        calls = 0

        async def sync() -> None:
            nonlocal calls
            calls += 1
            if calls == 1:
                await release.wait()

        watcher = SchemaWatcher(sync, tmp_path, debounce_ms=10)
        watcher.notify_schema_change("a.sql")
        await asyncio.sleep(0.05)
        assert watcher.is_applying

        watcher.notify_schema_change("b.sql")
        watcher.notify_schema_change("c.sql")
        assert await watcher.flush() is False

        release.set()
        await asyncio.sleep(0.1)

        assert calls == 2
        assert watcher.sync_count == 2
        assert not watcher.is_applying

    @pytest.mark.asyncio
    async def test_nothing_pending(self, tmp_path: Path) -> None:
        """Flushing with nothing pending is a no-op."""
        sync = AsyncMock()
        watcher = SchemaWatcher(sync, tmp_path)
        assert await watcher.flush() is False
        sync.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_config_reload_runs_before_sync(self, tmp_path: Path) -> None:
        """The config hook runs first, then the sync."""
        order: list[str] = []

        async def reload() -> None:
            order.append("reload")

        async def sync() -> None:
            order.append("sync")

        watcher = SchemaWatcher(sync, tmp_path, on_config_change=reload, debounce_ms=60_000)
        watcher.pending_config_change = True

        assert await watcher.flush() is True
        assert order == ["reload", "sync"]
        assert not watcher.pending_config_change

    @pytest.mark.asyncio
    async def test_sync_error_keeps_watching(self, tmp_path: Path) -> None:
        """A failed sync is logged; the watcher stays usable."""
        sync = AsyncMock(side_effect=SchemaSyncError("shadow unavailable"))
        watcher = SchemaWatcher(sync, tmp_path, debounce_ms=60_000)
        watcher.pending_schema_changes.add("a.sql")

        assert await watcher.flush() is True
        assert watcher.sync_count == 0
        assert not watcher.is_applying

    @pytest.mark.asyncio
    async def test_crashed_flush_is_logged(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """An unexpected error in a timer-started flush is retrieved and logged."""
        sync = AsyncMock(side_effect=RuntimeError("boom"))
        watcher = SchemaWatcher(sync, tmp_path, debounce_ms=10)

        with caplog.at_level(logging.ERROR, logger="schema_sync.sync.watch"):
            watcher.notify_schema_change("a.sql")
            await asyncio.sleep(0.1)

        assert "Watch flush crashed: boom" in caplog.text
        assert not watcher.is_applying


# ============================================================================
# Test: run
# ============================================================================


class TestRun:
    """Verify the awatch-driven loop."""

    @pytest.mark.asyncio
    async def test_batch_triggers_sync_then_stops(self, tmp_path: Path) -> None:
        """A batch from awatch leads to one sync; run() returns once stopped."""
        (tmp_path / "schema").mkdir()
        sync = AsyncMock()
        watcher = SchemaWatcher(sync, tmp_path / "schema", debounce_ms=10, step_ms=25)
        batch = {(Change.modified, str(watcher.schema_dir / "tables.sql"))}
        fake, calls = _fake_awatch(batch)
        stop = asyncio.Event()

        async def stop_after_sync() -> None:
            for _ in range(100):
                if sync.await_count:
                    break
                await asyncio.sleep(0.01)
            stop.set()

        with patch("schema_sync.sync.watch.awatch", fake):
            await asyncio.gather(watcher.run(stop), stop_after_sync())

        sync.assert_awaited_once()
        paths, kwargs = calls[0]
        assert paths == (watcher.schema_dir,)
        assert kwargs["stop_event"] is stop
        assert kwargs["step"] == 25
        assert kwargs["watch_filter"] is watcher.watch_filter

    @pytest.mark.asyncio
    async def test_stop_waits_for_running_sync(self, tmp_path: Path) -> None:
        """A sync already running when stop is set is awaited, not abandoned."""
        (tmp_path / "schema").mkdir()
        finished = asyncio.Event()

        async def sync() -> None:
            await asyncio.sleep(0.05)
            finished.set()

        watcher = SchemaWatcher(sync, tmp_path / "schema", debounce_ms=1)
        fake, _ = _fake_awatch({(Change.added, str(watcher.schema_dir / "a.sql"))})
        stop = asyncio.Event()

        async def stop_soon() -> None:
            while not watcher.is_applying:
                await asyncio.sleep(0.005)
            stop.set()

        with patch("schema_sync.sync.watch.awatch", fake):
            await asyncio.wait_for(asyncio.gather(watcher.run(stop), stop_soon()), timeout=5)

        assert finished.is_set()
