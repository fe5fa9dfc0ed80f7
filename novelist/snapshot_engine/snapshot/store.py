"""
Snapshot store for Novelist documents.

The SnapshotStore creates, lists, updates and deletes point-in-time copies
of a document, and moves a document's history when the document is
renamed. It is the only component allowed to write snapshot entries.

Storage layout (vault-relative):
    <snapshot_root>/<sanitized document path>/<YYYY-MM-DD-HHmmss>.md

    e.g. .novelist/snapshots/Manuscript/Chapter 1.md/2024-01-10-220000.md

Each entry is an envelope (see envelope.py) holding the metadata and the
captured body.

Invariants:
    - Each document maps to exactly one snapshot directory
    - Entry bodies are immutable; only the pin flag is ever rewritten
    - originalPath inside an entry is never rewritten, even on rename
    - Listing never fails because of one corrupt entry
    - Capture and metadata-update failures are logged and re-raised

How to change safely:
    - Keep the directory derivation stable, or existing history is orphaned
    - Test listing against hand-edited and truncated entries
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
import weakref
from datetime import datetime
from typing import TYPE_CHECKING, Callable, List, Optional

from ..errors import CaptureError, MetadataUpdateError
from ..store.base import (
    DocumentStore,
    StoreError,
    base_name,
    join_path,
    normalize_path,
    parent_path,
)
from .diff import SnapshotDiff, diff_snapshot
from .envelope import count_words, decode, decode_body, encode, strip_front_matter
from .models import Snapshot, SnapshotMetadata

if TYPE_CHECKING:
    from ..retention.pruner import RetentionRules

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_ROOT = ".novelist/snapshots"
SNAPSHOT_SUFFIX = ".md"
FILENAME_FORMAT = "%Y-%m-%d-%H%M%S"

_ILLEGAL_DIR_CHARS = re.compile(r'[:*?"<>|]')


def sanitize_document_path(document: str) -> str:
    """Replace characters that are illegal or confusing in folder names."""
    return _ILLEGAL_DIR_CHARS.sub("_", normalize_path(document))


def snapshot_filename(timestamp_ms: int, suffix: str = SNAPSHOT_SUFFIX) -> str:
    """Entry filename for a capture instant, at one-second resolution (local time)."""
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime(FILENAME_FORMAT) + suffix


def _now_ms() -> int:
    return int(time.time() * 1000)


class SnapshotStore:
    """CRUD over the snapshot entries of documents.

    Attributes:
        store: Host document store
        snapshot_root: Vault-relative folder holding all snapshot history
        retention: Rules applied after every capture, if enabled

    Example:
        >>> snapshots = SnapshotStore(LocalDocumentStore("/vault"))
        >>> snap = await snapshots.create_snapshot("Draft.md", note="Before edits")
        >>> [s.note for s in await snapshots.get_snapshots("Draft.md")]
        ['Before edits']
    """

    def __init__(
        self,
        store: DocumentStore,
        snapshot_root: str = DEFAULT_SNAPSHOT_ROOT,
        retention: Optional["RetentionRules"] = None,
        suffix: str = SNAPSHOT_SUFFIX,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        """Initialize the snapshot store.

        Args:
            store: Host document store
            snapshot_root: Root folder for snapshot history
            retention: Optional retention rules, applied when enabled
            suffix: Entry file suffix
            clock: Returns the current time in Unix ms
        """
        from ..retention.pruner import RetentionPolicy

        self.store = store
        self.snapshot_root = normalize_path(snapshot_root)
        self.retention = retention
        self.suffix = suffix
        self.clock = clock
        self.retention_policy = RetentionPolicy(self)

        # Entries vanish once no capture holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def snapshot_dir_for(self, document: str) -> str:
        """Snapshot directory of a document."""
        return join_path(self.snapshot_root, sanitize_document_path(document))

    # -------------------------------------------------------------------------
    # Capture
    # -------------------------------------------------------------------------

    async def create_snapshot(self, document: str, note: Optional[str] = None) -> Snapshot:
        """Capture the current body of a document.

        Args:
            document: Source document path
            note: Optional annotation

        Returns:
            The created Snapshot

        Raises:
            CaptureError: If the document cannot be read or the entry
                cannot be written
        """
        document = normalize_path(document)
        snapshot_dir = self.snapshot_dir_for(document)
        logger.info(f"Creating snapshot for {document}")

        async with self._lock_for(snapshot_dir):
            try:
                if not await self.store.exists(self.snapshot_root):
                    await self.store.make_directory(self.snapshot_root)
                if not await self.store.exists(snapshot_dir):
                    await self.store.make_directory(snapshot_dir)

                body = await self.store.read_document(document)
                timestamp = self.clock()
                metadata = SnapshotMetadata(
                    original_path=document,
                    timestamp=timestamp,
                    note=note or "",
                    word_count=count_words(strip_front_matter(body)),
                    is_pinned=False,
                )

                snapshot_path = await self._free_entry_path(
                    snapshot_dir, snapshot_filename(timestamp, self.suffix)
                )
                await self.store.write_text(snapshot_path, encode(metadata, body))

            except StoreError as e:
                logger.error(f"Failed to create snapshot for {document}: {e}", exc_info=True)
                raise CaptureError(
                    f"Failed to create snapshot for {document}: {e}",
                    document=document,
                ) from e

        snapshot = Snapshot.from_metadata(snapshot_path, metadata)
        logger.info(
            "Created snapshot",
            extra={
                "document": document,
                "snapshot_path": snapshot_path,
                "timestamp": timestamp,
                "word_count": metadata.word_count,
            },
        )

        if self.retention is not None and self.retention.enabled:
            try:
                await self.retention_policy.prune(document, self.retention, now_ms=timestamp)
            except Exception as e:
                # Capture stands even if pruning fails
                logger.error(f"Retention pass failed for {document}: {e}", exc_info=True)

        return snapshot

    async def _free_entry_path(self, snapshot_dir: str, filename: str) -> str:
        """First entry path in snapshot_dir not already taken.

        Captures within the same second get a -1, -2, ... suffix.
        """
        stem = filename[: -len(self.suffix)] if filename.endswith(self.suffix) else filename
        candidate = join_path(snapshot_dir, filename)
        counter = 0
        while await self.store.exists(candidate):
            counter += 1
            candidate = join_path(snapshot_dir, f"{stem}-{counter}{self.suffix}")
        return candidate

    def _lock_for(self, snapshot_dir: str) -> asyncio.Lock:
        lock = self._locks.get(snapshot_dir)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[snapshot_dir] = lock
        return lock

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    async def get_snapshots(self, document: str) -> List[Snapshot]:
        """List the snapshots of a document, newest first.

        Entries that cannot be read, or that have no recoverable timestamp,
        are logged and skipped.

        Args:
            document: Source document path

        Returns:
            Snapshots sorted by timestamp descending ([] if no history)
        """
        document = normalize_path(document)
        snapshot_dir = self.snapshot_dir_for(document)

        if not await self.store.exists(snapshot_dir):
            return []

        listing = await self.store.list_entries(snapshot_dir)
        snapshots: List[Snapshot] = []

        for path in listing.files:
            if not path.endswith(self.suffix):
                continue

            try:
                raw = await self.store.read_text(path)
            except StoreError as e:
                logger.warning(f"Skipping unreadable snapshot {path}: {e}")
                continue

            decoded = decode(raw, fallback_path=document)
            if decoded.metadata is None:
                logger.warning(
                    f"Skipping snapshot {path}: no recoverable timestamp",
                    extra={"snapshot_path": path, "code": "DECODE_WARNING"},
                )
                continue
            if not decoded.structured:
                logger.warning(
                    f"Snapshot {path} has malformed metadata, recovered fields individually",
                    extra={
                        "snapshot_path": path,
                        "code": "DECODE_WARNING",
                        "degraded_fields": decoded.degraded_fields,
                    },
                )

            snapshots.append(Snapshot.from_metadata(path, decoded.metadata))

        return sorted(snapshots, key=lambda s: (s.timestamp, s.path), reverse=True)

    async def read_snapshot_body(self, snapshot: Snapshot) -> str:
        """Captured body of a snapshot, envelope stripped.

        Raises:
            StoreError: If the entry cannot be read
        """
        raw = await self.store.read_text(snapshot.path)
        return decode_body(raw)

    async def compare_with_current(self, document: str, snapshot: Snapshot) -> SnapshotDiff:
        """Diff a snapshot against the live body of a document."""
        snapshot_body = await self.read_snapshot_body(snapshot)
        current_body = await self.store.read_document(document)
        return diff_snapshot(
            snapshot_body,
            current_body,
            snapshot_label=base_name(snapshot.path),
            current_label=normalize_path(document),
        )

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    async def update_snapshot_metadata(
        self,
        snapshot: Snapshot,
        is_pinned: Optional[bool] = None,
    ) -> Snapshot:
        """Rewrite the metadata of an entry, leaving its body untouched.

        Only the fields passed are changed.

        Args:
            snapshot: Entry to update
            is_pinned: New pin flag, or None to leave it

        Returns:
            The updated Snapshot

        Raises:
            MetadataUpdateError: If the entry cannot be read or written
        """
        try:
            raw = await self.store.read_text(snapshot.path)
            decoded = decode(raw, fallback_path=snapshot.original_path)
            metadata = decoded.metadata or snapshot.metadata

            if is_pinned is not None:
                metadata = SnapshotMetadata(
                    original_path=metadata.original_path,
                    timestamp=metadata.timestamp,
                    note=metadata.note,
                    word_count=metadata.word_count,
                    is_pinned=is_pinned,
                )

            await self.store.write_text(snapshot.path, encode(metadata, decoded.body))

        except StoreError as e:
            logger.error(f"Failed to update snapshot {snapshot.path}: {e}", exc_info=True)
            raise MetadataUpdateError(
                f"Failed to update snapshot {snapshot.path}: {e}",
                snapshot_path=snapshot.path,
            ) from e

        logger.info(
            "Updated snapshot metadata",
            extra={"snapshot_path": snapshot.path, "is_pinned": metadata.is_pinned},
        )
        return Snapshot.from_metadata(snapshot.path, metadata)

    async def pin_snapshot(self, snapshot: Snapshot) -> Snapshot:
        return await self.update_snapshot_metadata(snapshot, is_pinned=True)

    async def unpin_snapshot(self, snapshot: Snapshot) -> Snapshot:
        return await self.update_snapshot_metadata(snapshot, is_pinned=False)

    async def delete_snapshot(self, snapshot: Snapshot) -> bool:
        """Delete an entry.

        Returns:
            True if an entry was removed, False if it did not exist
        """
        if not await self.store.exists(snapshot.path):
            return False
        await self.store.remove_entry(snapshot.path)
        logger.info(f"Deleted snapshot: {snapshot.path}")
        return True

    async def prune(self, document: str, now_ms: Optional[int] = None) -> int:
        """Apply the configured retention rules to a document now.

        Returns:
            Number of snapshots deleted (0 when no rules are configured)
        """
        if self.retention is None:
            return 0
        return await self.retention_policy.prune(document, self.retention, now_ms=now_ms)

    # -------------------------------------------------------------------------
    # Rename
    # -------------------------------------------------------------------------

    async def handle_source_rename(self, old_path: str, new_path: str) -> bool:
        """Move a document's snapshot history after the document was renamed.

        Entries keep their original originalPath. When the destination
        history folder already exists, entries are merged into it.

        Args:
            old_path: Document path before the rename
            new_path: Document path after the rename

        Returns:
            True if history was moved, False if there was none
        """
        old_dir = self.snapshot_dir_for(old_path)
        new_dir = self.snapshot_dir_for(new_path)

        if old_dir == new_dir or not await self.store.exists(old_dir):
            return False

        logger.info(f"Moving snapshot history from {old_dir} to {new_dir}")

        new_parent = parent_path(new_dir)
        if new_parent and not await self.store.exists(new_parent):
            await self.store.make_directory(new_parent)

        if not await self.store.exists(new_dir):
            await self.store.rename_entry(old_dir, new_dir)
            return True

        await self._merge_history(old_dir, new_dir)
        return True

    async def _merge_history(self, old_dir: str, new_dir: str) -> None:
        listing = await self.store.list_entries(old_dir)
        for path in listing.files:
            target = await self._free_entry_path(new_dir, base_name(path))
            await self.store.rename_entry(path, target)

        remaining = await self.store.list_entries(old_dir)
        if remaining.files or remaining.folders:
            logger.warning(
                f"Left {old_dir} in place after merge, it still has entries",
                extra={"files": remaining.files, "folders": remaining.folders},
            )
            return
        await self.store.remove_entry(old_dir)
