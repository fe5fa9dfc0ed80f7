"""
Snapshot data types.

A snapshot entry on disk is an envelope (see envelope.py): a metadata block
followed by the captured document body. SnapshotMetadata is what the block
holds; Snapshot is a listed entry, i.e. metadata plus the entry's path.

Invariants:
    - timestamp is Unix milliseconds and is the primary ordering key
    - original_path is provenance: it is never rewritten after capture
    - Only is_pinned may change after creation
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict

# Envelope keys. These are the on-disk names and must stay stable.
KEY_ORIGINAL_PATH = "originalPath"
KEY_TIMESTAMP = "timestamp"
KEY_NOTE = "note"
KEY_WORD_COUNT = "snapshotWordCount"
KEY_IS_PINNED = "isPinned"

PRE_RESTORE_NOTE = "Pre-Restore Auto-Backup"


@dataclass(frozen=True)
class SnapshotMetadata:
    """Metadata block of a snapshot entry.

    Attributes:
        original_path: Source document path at capture time
        timestamp: Capture instant (Unix ms)
        note: Free-text annotation
        word_count: Word count of the body, source front matter excluded
        is_pinned: Pinned snapshots are never pruned
    """

    original_path: str
    timestamp: int
    note: str = ""
    word_count: int = 0
    is_pinned: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the envelope's key layout."""
        return {
            KEY_ORIGINAL_PATH: self.original_path,
            KEY_TIMESTAMP: self.timestamp,
            KEY_NOTE: self.note,
            KEY_WORD_COUNT: self.word_count,
            KEY_IS_PINNED: self.is_pinned,
        }


@dataclass(frozen=True)
class Snapshot:
    """A snapshot entry as listed by the snapshot store.

    Attributes:
        path: Storage location of the entry (lifecycle key)
        original_path: Source document path at capture time
        timestamp: Capture instant (Unix ms)
        note: Free-text annotation
        word_count: Word count at capture time
        is_pinned: Excluded from retention when True
    """

    path: str
    original_path: str
    timestamp: int
    note: str = ""
    word_count: int = 0
    is_pinned: bool = False

    @classmethod
    def from_metadata(cls, path: str, metadata: SnapshotMetadata) -> Snapshot:
        return cls(
            path=path,
            original_path=metadata.original_path,
            timestamp=metadata.timestamp,
            note=metadata.note,
            word_count=metadata.word_count,
            is_pinned=metadata.is_pinned,
        )

    @property
    def metadata(self) -> SnapshotMetadata:
        return SnapshotMetadata(
            original_path=self.original_path,
            timestamp=self.timestamp,
            note=self.note,
            word_count=self.word_count,
            is_pinned=self.is_pinned,
        )

    @property
    def captured_at(self) -> datetime:
        """Capture instant as a naive local datetime."""
        return datetime.fromtimestamp(self.timestamp / 1000)

    def with_pinned(self, is_pinned: bool) -> Snapshot:
        return replace(self, is_pinned=is_pinned)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization (CLI --json output)."""
        return {
            "path": self.path,
            "original_path": self.original_path,
            "timestamp": self.timestamp,
            "note": self.note,
            "word_count": self.word_count,
            "is_pinned": self.is_pinned,
        }

    def __str__(self) -> str:
        return f"Snapshot({self.path}, ts={self.timestamp})"
