"""
Integration tests for restoring documents from snapshots.

Tests cover:
- Successful restore with a pre-restore backup
- Backup failure leaves the document untouched
- Missing or unwritable targets
- Restore under aggressive retention
"""

from datetime import datetime

import pytest

from novelist.snapshot_engine.errors import RestoreError
from novelist.snapshot_engine.retention import RetentionRules
from novelist.snapshot_engine.snapshot.models import PRE_RESTORE_NOTE
from novelist.snapshot_engine.snapshot.store import SnapshotStore
from novelist.snapshot_engine.store import InMemoryDocumentStore, StoreError
from novelist.snapshot_engine.tools.restore import RestoreCoordinator

DOC = "Draft.md"


def ms(*args) -> int:
    return int(datetime(*args).timestamp() * 1000)


class Clock:
    def __init__(self, now: int) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


class TestRestore:
    """Tests for RestoreCoordinator."""

    @pytest.fixture
    def store(self):
        store = InMemoryDocumentStore()
        store.add_document(DOC, "Original opening.")
        return store

    @pytest.fixture
    def clock(self):
        return Clock(ms(2024, 1, 10, 9))

    @pytest.fixture
    def snapshots(self, store, clock):
        return SnapshotStore(store, clock=clock)

    @pytest.fixture
    def notices(self):
        return []

    @pytest.fixture
    def coordinator(self, snapshots, notices):
        return RestoreCoordinator(snapshots, notify=notices.append)

    async def _edit_after_snapshot(self, store, snapshots, clock):
        snapshot = await snapshots.create_snapshot(DOC, note="v1")
        await store.overwrite_document(DOC, "Rewritten opening, much longer now.")
        clock.now = ms(2024, 1, 10, 10)
        return snapshot

    @pytest.mark.asyncio
    async def test_restore_replaces_body_and_backs_up(
        self, store, snapshots, clock, coordinator, notices
    ):
        snapshot = await self._edit_after_snapshot(store, snapshots, clock)

        result = await coordinator.restore(DOC, snapshot)

        assert result.success
        assert result.error is None
        assert result.snapshot_used == snapshot.path
        assert store.get_file(DOC) == "Original opening."
        assert result.backup.note == PRE_RESTORE_NOTE
        assert await snapshots.read_snapshot_body(result.backup) == (
            "Rewritten opening, much longer now."
        )
        assert [s.note for s in await snapshots.get_snapshots(DOC)] == [PRE_RESTORE_NOTE, "v1"]
        assert notices == []

    @pytest.mark.asyncio
    async def test_backup_failure_leaves_document_untouched(
        self, store, snapshots, clock, coordinator, notices
    ):
        snapshot = await self._edit_after_snapshot(store, snapshots, clock)
        store.inject_failure("write_text", StoreError("disk full"))

        result = await coordinator.restore(DOC, snapshot)

        assert not result.success
        assert result.backup is None
        assert isinstance(result.error, RestoreError)
        assert result.error.step == "backup"
        assert store.get_file(DOC) == "Rewritten opening, much longer now."
        assert len(notices) == 1

    @pytest.mark.asyncio
    async def test_missing_snapshot_entry(self, store, snapshots, clock, coordinator, notices):
        snapshot = await self._edit_after_snapshot(store, snapshots, clock)
        await snapshots.delete_snapshot(snapshot)

        result = await coordinator.restore(DOC, snapshot)

        assert not result.success
        assert result.error.step == "read"
        assert result.backup is not None
        assert store.get_file(DOC) == "Rewritten opening, much longer now."
        assert notices and "Restore failed" in notices[0]

    @pytest.mark.asyncio
    async def test_overwrite_failure_is_reported(self, store, snapshots, clock, coordinator):
        snapshot = await self._edit_after_snapshot(store, snapshots, clock)
        store.inject_failure("overwrite_document", StoreError("read-only vault"))

        result = await coordinator.restore(DOC, snapshot)

        assert not result.success
        assert result.error.step == "overwrite"
        assert isinstance(result.error.__cause__, StoreError)
        assert result.backup is not None

    @pytest.mark.asyncio
    async def test_failing_notice_callback_does_not_raise(self, store, snapshots, clock):
        snapshot = await self._edit_after_snapshot(store, snapshots, clock)
        await snapshots.delete_snapshot(snapshot)

        def broken_notify(message):
            raise RuntimeError("ui gone")

        result = await RestoreCoordinator(snapshots, notify=broken_notify).restore(DOC, snapshot)

        assert not result.success

    @pytest.mark.asyncio
    async def test_restore_survives_pruning_of_target(self, store):
        """The backup capture may prune the target; the restore still completes."""
        clock = Clock(ms(2024, 1, 1, 9))
        snapshots = SnapshotStore(
            store, retention=RetentionRules(keep_daily=0, keep_weekly=0, keep_monthly=0), clock=clock
        )
        snapshot = await snapshots.create_snapshot(DOC, note="v1")
        await store.overwrite_document(DOC, "Second draft.")
        clock.now = ms(2024, 1, 2, 9)

        result = await RestoreCoordinator(snapshots).restore(DOC, snapshot)

        assert result.success
        assert store.get_file(DOC) == "Original opening."
        assert not await store.exists(snapshot.path)
        assert [s.note for s in await snapshots.get_snapshots(DOC)] == [PRE_RESTORE_NOTE]
