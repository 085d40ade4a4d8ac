"""
Tests for the storage watcher and the sync index.

These tests verify:
1. The watcher reports added/changed/removed files, not the initial contents
2. Hidden temp files never surface as events
3. Each applied update fires exactly one notification (no debouncing)
4. Stale-generation updates are no-ops
5. Command removals jump ahead of queued watch updates for the same id
"""

from pathlib import Path
from typing import List

import pytest

from linenotes.errors import StorageError, WatchError
from linenotes.index import IndexUpdate, SyncIndex
from linenotes.models import UpdateSource, WatchEvent, WatchEventKind
from linenotes.store import AnnotationStore
from linenotes.watcher import StorageWatcher


@pytest.fixture
def store(tmp_path: Path) -> AnnotationStore:
    store = AnnotationStore(tmp_path / ".linenotes")
    store.ensure_root()
    return store


@pytest.fixture
def index(store: AnnotationStore) -> SyncIndex:
    return SyncIndex(store)


# -----------------------------------------------------------------------------
# Watcher
# -----------------------------------------------------------------------------

class TestStorageWatcher:
    """Tests for polling change detection."""

    def _watcher(self, store: AnnotationStore, events: List[WatchEvent]) -> StorageWatcher:
        watcher = StorageWatcher(store.storage_root, on_event=events.append, interval=60)
        watcher.prime()
        return watcher

    def test_initial_files_not_reported(self, store: AnnotationStore):
        store.write("existing", "content")
        events: List[WatchEvent] = []
        watcher = self._watcher(store, events)

        assert watcher.poll_once() == []
        assert events == []

    def test_added_changed_removed(self, store: AnnotationStore):
        store.write("keep", "v1")
        store.write("gone", "bye")
        events: List[WatchEvent] = []
        watcher = self._watcher(store, events)

        store.write("new", "hello")
        store.write("keep", "v2 with a different size")
        store.delete("gone")
        watcher.poll_once()

        assert [(e.kind, e.name) for e in events] == [
            (WatchEventKind.REMOVED, "gone"),
            (WatchEventKind.CHANGED, "keep"),
            (WatchEventKind.ADDED, "new"),
        ]

    def test_same_size_rewrite_is_reported(self, store: AnnotationStore):
        """Atomic rename gives a new inode even when size and mtime match."""
        store.write("id1", "aaaa")
        events: List[WatchEvent] = []
        watcher = self._watcher(store, events)

        store.write("id1", "bbbb")
        watcher.poll_once()

        assert [(e.kind, e.name) for e in events] == [(WatchEventKind.CHANGED, "id1")]

    def test_hidden_files_ignored(self, store: AnnotationStore):
        events: List[WatchEvent] = []
        watcher = self._watcher(store, events)

        (store.storage_root / ".id1.tmp").write_text("partial")
        watcher.poll_once()

        assert events == []

    def test_no_events_after_stop(self, store: AnnotationStore):
        events: List[WatchEvent] = []
        watcher = self._watcher(store, events)
        watcher.stop()

        store.write("late", "content")

        assert watcher.poll_once() == []
        assert events == []

    def test_missing_directory_raises_watch_error(self, tmp_path: Path):
        watcher = StorageWatcher(tmp_path / "absent", on_event=lambda e: None)

        with pytest.raises(WatchError):
            watcher.prime()

    def test_callback_failure_does_not_stop_delivery(self, store: AnnotationStore):
        delivered: List[str] = []

        def on_event(event: WatchEvent) -> None:
            if event.name == "bad":
                raise RuntimeError("boom")
            delivered.append(event.name)

        watcher = StorageWatcher(store.storage_root, on_event=on_event)
        watcher.prime()
        store.write("bad", "x")
        store.write("good", "y")
        watcher.poll_once()

        assert delivered == ["good"]

    def test_unsettled_event_is_reported_again(self, store: AnnotationStore):
        """A callback returning False gets the same change on the next scan."""
        attempts: List[str] = []

        def on_event(event: WatchEvent) -> bool:
            attempts.append(event.name)
            return len(attempts) > 1

        watcher = StorageWatcher(store.storage_root, on_event=on_event)
        watcher.prime()
        store.write("h1", "content")

        assert watcher.poll_once() == []
        assert [(e.kind, e.name) for e in watcher.poll_once()] == [(WatchEventKind.ADDED, "h1")]
        assert watcher.poll_once() == []
        assert attempts == ["h1", "h1"]

    def test_start_keeps_existing_baseline(self, store: AnnotationStore):
        events: List[WatchEvent] = []
        watcher = StorageWatcher(store.storage_root, on_event=events.append, interval=60)
        watcher.prime()
        store.write("between", "written after the baseline")

        watcher.start()
        try:
            watcher.poll_once()
        finally:
            watcher.stop()

        assert [(e.kind, e.name) for e in events] == [(WatchEventKind.ADDED, "between")]

    def test_thread_starts_and_stops(self, store: AnnotationStore):
        watcher = StorageWatcher(store.storage_root, on_event=lambda e: None, interval=0.01)

        watcher.start()
        assert watcher.is_running

        watcher.stop()
        assert not watcher.is_running
        assert watcher.is_stopped


# -----------------------------------------------------------------------------
# Index
# -----------------------------------------------------------------------------

class TestSyncIndex:
    """Tests for SyncIndex."""

    def test_load_replaces_entries_and_notifies_once(self, index: SyncIndex):
        calls = []
        index.subscribe(lambda: calls.append(1))

        index.load({"a": "A", "b": "B"})

        assert index.snapshot() == {"a": "A", "b": "B"}
        assert len(calls) == 1

    def test_watch_added_reads_content_from_store(self, store: AnnotationStore, index: SyncIndex):
        store.write("h1", "note one")

        index.apply_watch_event(WatchEvent(kind=WatchEventKind.ADDED, name="h1"), index.generation)

        assert index.get("h1") == "note one"

    def test_watch_changed_upserts(self, store: AnnotationStore, index: SyncIndex):
        index.load({"h1": "old"})
        store.write("h1", "new")

        index.apply_watch_event(WatchEvent(kind=WatchEventKind.CHANGED, name="h1"), index.generation)

        assert index.get("h1") == "new"

    def test_watch_removed_deletes(self, index: SyncIndex):
        index.load({"h1": "x"})

        index.apply_watch_event(WatchEvent(kind=WatchEventKind.REMOVED, name="h1"), index.generation)

        assert "h1" not in index

    def test_added_event_for_vanished_file_drops_entry(self, index: SyncIndex):
        index.load({"h1": "stale"})

        index.apply_watch_event(WatchEvent(kind=WatchEventKind.ADDED, name="h1"), index.generation)

        assert "h1" not in index

    def test_burst_yields_one_notification_per_event(self, store: AnnotationStore, index: SyncIndex):
        calls = []
        index.subscribe(lambda: calls.append(1))
        for name in ("a", "b", "c"):
            store.write(name, name)
            index.apply_watch_event(WatchEvent(kind=WatchEventKind.ADDED, name=name), index.generation)

        assert len(calls) == 3

    def test_stale_generation_is_noop(self, store: AnnotationStore, index: SyncIndex):
        old_generation = index.generation
        index.reset()
        store.write("h1", "late")
        calls = []
        index.subscribe(lambda: calls.append(1))

        applied = index.apply_watch_event(
            WatchEvent(kind=WatchEventKind.ADDED, name="h1"), old_generation
        )

        assert applied is False
        assert "h1" not in index
        assert calls == []

    def test_reset_clears_and_bumps_generation(self, index: SyncIndex):
        index.load({"h1": "x"})
        before = index.generation

        after = index.reset()

        assert after == before + 1
        assert len(index) == 0

    def test_remove_now_is_synchronous(self, index: SyncIndex):
        index.load({"h1": "x"})
        seen = []
        index.subscribe(lambda: seen.append(index.get("h1")))

        index.remove_now("h1")

        assert "h1" not in index
        assert seen == [None]

    def test_command_removal_discards_queued_watch_updates(
        self, store: AnnotationStore, index: SyncIndex
    ):
        """A watch upsert queued behind a delete must not resurrect the entry."""
        store.write("h1", "content")
        index.load({"h1": "content"})
        generation = index.generation
        order = []

        def observer():
            order.append(index.get("h1"))
            if len(order) == 1:
                # Queued while the first update is still being drained
                index.submit(IndexUpdate(UpdateSource.WATCH, WatchEventKind.CHANGED, "h1", generation))
                index.submit(IndexUpdate(UpdateSource.COMMAND, WatchEventKind.REMOVED, "h1", generation))

        index.subscribe(observer)
        index.submit(IndexUpdate(UpdateSource.WATCH, WatchEventKind.ADDED, "other", generation))

        assert "h1" not in index
        # update for "other", then the command removal; the queued watch update is dropped
        assert order == ["content", None]

    def test_failing_observer_does_not_block_others(self, index: SyncIndex):
        calls = []

        def broken():
            raise RuntimeError("render failed")

        index.subscribe(broken)
        index.subscribe(lambda: calls.append(1))

        index.load({"a": "A"})

        assert calls == [1]

    def test_unsubscribe(self, index: SyncIndex):
        calls = []
        unsubscribe = index.subscribe(lambda: calls.append(1))
        unsubscribe()

        index.load({"a": "A"})

        assert calls == []

    def test_watcher_feeds_index(self, store: AnnotationStore, index: SyncIndex):
        """Two files dropped into the directory both become reachable."""
        generation = index.generation
        watcher = StorageWatcher(
            store.storage_root,
            on_event=lambda e: index.apply_watch_event(e, generation),
        )
        watcher.prime()

        (store.storage_root / "h1").write_text("first note\nbody")
        (store.storage_root / "h2").write_text("second note")
        watcher.poll_once()

        assert index.get("h1") == "first note\nbody"
        assert index.get("h2") == "second note"

    def _failing_reads(self, monkeypatch, store: AnnotationStore) -> None:
        def unreadable(identifier):
            raise StorageError(f"Failed to read annotation {identifier}: busy")

        monkeypatch.setattr(store, "read", unreadable)

    def test_unreadable_new_file_is_retried(
        self, store: AnnotationStore, index: SyncIndex, monkeypatch
    ):
        generation = index.generation
        watcher = StorageWatcher(
            store.storage_root,
            on_event=lambda e: index.apply_watch_event(e, generation),
        )
        watcher.prime()
        store.write("h1", "new note")

        self._failing_reads(monkeypatch, store)
        assert watcher.poll_once() == []
        assert "h1" not in index

        monkeypatch.undo()
        watcher.poll_once()

        assert index.get("h1") == "new note"

    def test_unreadable_changed_file_is_retried(
        self, store: AnnotationStore, index: SyncIndex, monkeypatch
    ):
        store.write("h1", "old")
        index.load({"h1": "old"})
        generation = index.generation
        watcher = StorageWatcher(
            store.storage_root,
            on_event=lambda e: index.apply_watch_event(e, generation),
        )
        watcher.prime()
        store.write("h1", "new and longer")

        self._failing_reads(monkeypatch, store)
        watcher.poll_once()
        assert index.get("h1") == "old"

        monkeypatch.undo()
        watcher.poll_once()

        assert index.get("h1") == "new and longer"

    def test_unreadable_update_reports_false_without_notifying(
        self, store: AnnotationStore, index: SyncIndex, monkeypatch
    ):
        store.write("h1", "x")
        calls = []
        index.subscribe(lambda: calls.append(1))
        self._failing_reads(monkeypatch, store)

        applied = index.apply_watch_event(
            WatchEvent(kind=WatchEventKind.ADDED, name="h1"), index.generation
        )

        assert applied is False
        assert calls == []
