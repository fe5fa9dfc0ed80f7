"""
Unit tests for SnapshotStore with the in-memory document store.

Tests cover:
- Capture (layout, metadata, word count, same-second captures)
- Listing (order, corrupt and unreadable entries)
- Metadata updates (pinning)
- Deletion
- History relocation on rename
- Retention after capture
"""

import asyncio
import gc
from datetime import datetime

import pytest

from novelist.snapshot_engine.errors import CaptureError, MetadataUpdateError
from novelist.snapshot_engine.retention import RetentionRules
from novelist.snapshot_engine.snapshot.envelope import decode, encode
from novelist.snapshot_engine.snapshot.models import SnapshotMetadata
from novelist.snapshot_engine.snapshot.store import (
    SnapshotStore,
    sanitize_document_path,
    snapshot_filename,
)
from novelist.snapshot_engine.store import InMemoryDocumentStore, StoreError

DOC = "Manuscript/Chapter 1.md"
DOC_DIR = ".novelist/snapshots/Manuscript/Chapter 1.md"
BODY = "---\ntags: draft\n---\nIt was a dark night."


def ms(*args) -> int:
    return int(datetime(*args).timestamp() * 1000)


class Clock:
    """Settable clock for deterministic entry names."""

    def __init__(self, now: int) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


class TestCapture:
    """Tests for create_snapshot."""

    @pytest.fixture
    def store(self):
        store = InMemoryDocumentStore()
        store.add_document(DOC, BODY)
        return store

    @pytest.fixture
    def clock(self):
        return Clock(ms(2024, 1, 10, 9, 0, 0))

    @pytest.fixture
    def snapshots(self, store, clock):
        return SnapshotStore(store, clock=clock)

    @pytest.mark.asyncio
    async def test_creates_entry_in_document_folder(self, store, snapshots):
        snapshot = await snapshots.create_snapshot(DOC, note="Before edits")

        assert snapshot.path == f"{DOC_DIR}/2024-01-10-090000.md"
        assert store.all_files(".novelist") == [snapshot.path]

    @pytest.mark.asyncio
    async def test_entry_holds_metadata_and_verbatim_body(self, store, snapshots, clock):
        snapshot = await snapshots.create_snapshot(DOC, note="Before edits")

        expected = SnapshotMetadata(
            original_path=DOC,
            timestamp=clock.now,
            note="Before edits",
            word_count=5,
            is_pinned=False,
        )
        assert store.get_file(snapshot.path) == encode(expected, BODY)
        assert snapshot.metadata == expected

    @pytest.mark.asyncio
    async def test_word_count_excludes_front_matter(self, snapshots):
        snapshot = await snapshots.create_snapshot(DOC)

        assert snapshot.word_count == 5
        assert snapshot.note == ""

    @pytest.mark.asyncio
    async def test_same_second_captures_get_suffix(self, snapshots):
        first = await snapshots.create_snapshot(DOC)
        second = await snapshots.create_snapshot(DOC)
        third = await snapshots.create_snapshot(DOC)

        assert first.path.endswith("/2024-01-10-090000.md")
        assert second.path.endswith("/2024-01-10-090000-1.md")
        assert third.path.endswith("/2024-01-10-090000-2.md")
        assert len(await snapshots.get_snapshots(DOC)) == 3

    @pytest.mark.asyncio
    async def test_concurrent_captures_release_their_lock(self, snapshots):
        first, second = await asyncio.gather(
            snapshots.create_snapshot(DOC), snapshots.create_snapshot(DOC)
        )
        gc.collect()

        assert first.path != second.path
        assert len(snapshots._locks) == 0

    @pytest.mark.asyncio
    async def test_missing_document_raises_capture_error(self, store, snapshots):
        with pytest.raises(CaptureError) as exc_info:
            await snapshots.create_snapshot("Missing.md")

        assert exc_info.value.document == "Missing.md"
        assert isinstance(exc_info.value.__cause__, StoreError)
        assert store.all_files(".novelist") == []

    @pytest.mark.asyncio
    async def test_write_failure_raises_capture_error(self, store, snapshots):
        store.inject_failure("write_text", StoreError("disk full"))

        with pytest.raises(CaptureError):
            await snapshots.create_snapshot(DOC)

    @pytest.mark.asyncio
    async def test_custom_snapshot_root(self, store, clock):
        snapshots = SnapshotStore(store, snapshot_root="History", clock=clock)

        snapshot = await snapshots.create_snapshot(DOC)

        assert snapshot.path.startswith("History/Manuscript/Chapter 1.md/")

    def test_sanitize_document_path(self):
        assert sanitize_document_path('Notes/What? Why*.md') == "Notes/What_ Why_.md"
        assert sanitize_document_path("Notes\\Draft.md") == "Notes/Draft.md"

    def test_snapshot_filename(self):
        assert snapshot_filename(ms(2024, 1, 10, 22, 0, 5)) == "2024-01-10-220005.md"


class TestListing:
    """Tests for get_snapshots."""

    @pytest.fixture
    def store(self):
        store = InMemoryDocumentStore()
        store.add_document(DOC, BODY)
        return store

    @pytest.fixture
    def clock(self):
        return Clock(ms(2024, 1, 10, 9))

    @pytest.fixture
    def snapshots(self, store, clock):
        return SnapshotStore(store, clock=clock)

    @pytest.mark.asyncio
    async def test_no_history(self, snapshots):
        assert await snapshots.get_snapshots(DOC) == []

    @pytest.mark.asyncio
    async def test_newest_first(self, snapshots, clock):
        for hour, note in ((9, "first"), (14, "second"), (22, "third")):
            clock.now = ms(2024, 1, 10, hour)
            await snapshots.create_snapshot(DOC, note=note)

        listed = await snapshots.get_snapshots(DOC)

        assert [s.note for s in listed] == ["third", "second", "first"]

    @pytest.mark.asyncio
    async def test_corrupt_entries_are_skipped(self, store, snapshots):
        good = await snapshots.create_snapshot(DOC, note="good")
        store.add_document(f"{DOC_DIR}/garbage.md", "not an envelope at all")
        store.add_document(f"{DOC_DIR}/empty.md", "")
        store.add_document(f"{DOC_DIR}/notes.txt", "ignored suffix")

        listed = await snapshots.get_snapshots(DOC)

        assert [s.path for s in listed] == [good.path]

    @pytest.mark.asyncio
    async def test_unreadable_entry_is_skipped(self, store, snapshots, clock):
        await snapshots.create_snapshot(DOC, note="readable")
        clock.now = ms(2024, 1, 11, 9)
        await snapshots.create_snapshot(DOC, note="unreadable")
        store.inject_failure("read_text", StoreError("permission denied"), path_contains="2024-01-11")

        listed = await snapshots.get_snapshots(DOC)

        assert [s.note for s in listed] == ["readable"]

    @pytest.mark.asyncio
    async def test_degraded_entry_is_listed(self, store, snapshots):
        store.add_document(
            f"{DOC_DIR}/2024-01-09-080000.md",
            '---\n{\n  "timestamp": 1704787200000,\n  "note": "hand edited",\n---\n\nOld body',
        )

        listed = await snapshots.get_snapshots(DOC)

        assert len(listed) == 1
        assert listed[0].note == "hand edited"
        assert listed[0].original_path == DOC
        assert listed[0].word_count == 0

    @pytest.mark.asyncio
    async def test_read_snapshot_body(self, snapshots):
        snapshot = await snapshots.create_snapshot(DOC)

        assert await snapshots.read_snapshot_body(snapshot) == BODY

    @pytest.mark.asyncio
    async def test_compare_with_current(self, store, snapshots):
        snapshot = await snapshots.create_snapshot(DOC)
        await store.overwrite_document(DOC, BODY + "\nThe end came quickly.")

        diff = await snapshots.compare_with_current(DOC, snapshot)

        assert diff.has_changes
        assert diff.added_lines == 1
        assert diff.removed_lines == 0
        assert diff.word_delta == 4


class TestMetadataUpdates:
    """Tests for pinning, deletion and metadata rewrites."""

    @pytest.fixture
    def store(self):
        store = InMemoryDocumentStore()
        store.add_document(DOC, BODY)
        return store

    @pytest.fixture
    def snapshots(self, store):
        return SnapshotStore(store, clock=Clock(ms(2024, 1, 10, 9)))

    @pytest.mark.asyncio
    async def test_pin_persists_and_keeps_body(self, store, snapshots):
        snapshot = await snapshots.create_snapshot(DOC, note="keeper")

        pinned = await snapshots.pin_snapshot(snapshot)

        assert pinned.is_pinned
        assert pinned.note == "keeper"
        listed = await snapshots.get_snapshots(DOC)
        assert listed[0].is_pinned
        assert await snapshots.read_snapshot_body(listed[0]) == BODY

    @pytest.mark.asyncio
    async def test_unpin(self, snapshots):
        snapshot = await snapshots.pin_snapshot(await snapshots.create_snapshot(DOC))

        unpinned = await snapshots.unpin_snapshot(snapshot)

        assert not unpinned.is_pinned
        assert not (await snapshots.get_snapshots(DOC))[0].is_pinned

    @pytest.mark.asyncio
    async def test_pin_repairs_degraded_metadata(self, store, snapshots):
        path = f"{DOC_DIR}/2024-01-09-080000.md"
        store.add_document(path, '---\n{ "timestamp": 1704787200000,\n---\n\nOld body')
        snapshot = (await snapshots.get_snapshots(DOC))[0]

        await snapshots.pin_snapshot(snapshot)

        decoded = decode(store.get_file(path))
        assert decoded.is_complete
        assert decoded.metadata.is_pinned
        assert decoded.body == "Old body"

    @pytest.mark.asyncio
    async def test_update_failure_raises(self, store, snapshots):
        snapshot = await snapshots.create_snapshot(DOC)
        store.inject_failure("write_text", StoreError("read-only"))

        with pytest.raises(MetadataUpdateError) as exc_info:
            await snapshots.pin_snapshot(snapshot)

        assert exc_info.value.snapshot_path == snapshot.path

    @pytest.mark.asyncio
    async def test_delete(self, snapshots):
        snapshot = await snapshots.create_snapshot(DOC)

        assert await snapshots.delete_snapshot(snapshot) is True
        assert await snapshots.delete_snapshot(snapshot) is False
        assert await snapshots.get_snapshots(DOC) == []


class TestRename:
    """Tests for history relocation."""

    @pytest.fixture
    def store(self):
        store = InMemoryDocumentStore()
        store.add_document("Draft.md", "first words")
        return store

    @pytest.fixture
    def clock(self):
        return Clock(ms(2024, 1, 10, 9))

    @pytest.fixture
    def snapshots(self, store, clock):
        return SnapshotStore(store, clock=clock)

    @pytest.mark.asyncio
    async def test_history_follows_document(self, store, snapshots):
        await snapshots.create_snapshot("Draft.md", note="before rename")

        moved = await snapshots.handle_source_rename("Draft.md", "Book/Final.md")

        assert moved is True
        assert await snapshots.get_snapshots("Draft.md") == []
        listed = await snapshots.get_snapshots("Book/Final.md")
        assert [s.note for s in listed] == ["before rename"]
        # Provenance is not rewritten
        assert listed[0].original_path == "Draft.md"
        assert not await store.exists(".novelist/snapshots/Draft.md")

    @pytest.mark.asyncio
    async def test_no_history_is_a_no_op(self, snapshots):
        assert await snapshots.handle_source_rename("Other.md", "Renamed.md") is False

    @pytest.mark.asyncio
    async def test_same_path_is_a_no_op(self, snapshots):
        await snapshots.create_snapshot("Draft.md")

        assert await snapshots.handle_source_rename("Draft.md", "Draft.md") is False

    @pytest.mark.asyncio
    async def test_merge_into_existing_history(self, store, snapshots):
        store.add_document("Final.md", "other words")
        await snapshots.create_snapshot("Draft.md", note="draft")
        await snapshots.create_snapshot("Final.md", note="final")

        await snapshots.handle_source_rename("Draft.md", "Final.md")

        listed = await snapshots.get_snapshots("Final.md")
        assert sorted(s.note for s in listed) == ["draft", "final"]
        assert sorted(p.rsplit("/", 1)[1] for p in store.all_files(".novelist")) == [
            "2024-01-10-090000-1.md",
            "2024-01-10-090000.md",
        ]
        assert not await store.exists(".novelist/snapshots/Draft.md")


class TestRetentionOnCapture:
    """Tests for automatic pruning after a capture."""

    @pytest.fixture
    def store(self):
        store = InMemoryDocumentStore()
        store.add_document(DOC, BODY)
        return store

    @pytest.mark.asyncio
    async def test_capture_prunes_when_enabled(self, store):
        clock = Clock(ms(2023, 5, 1, 10))
        snapshots = SnapshotStore(store, retention=RetentionRules(), clock=clock)
        await snapshots.create_snapshot(DOC, note="ancient")

        clock.now = ms(2024, 2, 1, 10)
        await snapshots.create_snapshot(DOC, note="fresh")

        assert [s.note for s in await snapshots.get_snapshots(DOC)] == ["fresh"]

    @pytest.mark.asyncio
    async def test_capture_does_not_prune_when_disabled(self, store):
        clock = Clock(ms(2023, 5, 1, 10))
        rules = RetentionRules(enabled=False)
        snapshots = SnapshotStore(store, retention=rules, clock=clock)
        await snapshots.create_snapshot(DOC, note="ancient")

        clock.now = ms(2024, 2, 1, 10)
        await snapshots.create_snapshot(DOC, note="fresh")

        assert len(await snapshots.get_snapshots(DOC)) == 2
        assert await snapshots.prune(DOC, now_ms=clock.now) == 1

    @pytest.mark.asyncio
    async def test_retention_failure_does_not_fail_capture(self, store):
        clock = Clock(ms(2023, 5, 1, 10))
        snapshots = SnapshotStore(store, retention=RetentionRules(), clock=clock)
        await snapshots.create_snapshot(DOC, note="ancient")
        store.inject_failure("list_entries", StoreError("flaky listing"), times=1)

        clock.now = ms(2024, 2, 1, 10)
        snapshot = await snapshots.create_snapshot(DOC, note="fresh")

        assert snapshot.note == "fresh"
        assert len(await snapshots.get_snapshots(DOC)) == 2

    @pytest.mark.asyncio
    async def test_pinned_survives_capture_pruning(self, store):
        clock = Clock(ms(2023, 5, 1, 10))
        snapshots = SnapshotStore(store, retention=RetentionRules(), clock=clock)
        await snapshots.pin_snapshot(await snapshots.create_snapshot(DOC, note="pinned"))

        clock.now = ms(2024, 2, 1, 10)
        await snapshots.create_snapshot(DOC, note="fresh")

        assert [s.note for s in await snapshots.get_snapshots(DOC)] == ["fresh", "pinned"]
