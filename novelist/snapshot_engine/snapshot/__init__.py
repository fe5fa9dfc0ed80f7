"""
Snapshot module for Novelist documents.

This module keeps point-in-time copies of documents inside the vault for:
- Manual checkpoints with a note
- Automatic session and daily checkpoints
- Comparing and restoring earlier versions

Invariants:
    - Snapshot entries are plain text envelopes a user can open and edit
    - A document's history lives in exactly one folder under the snapshot root
    - Listing tolerates corrupt and hand-edited entries
"""

from .auto import DAILY_NOTE, SESSION_END_NOTE, SESSION_START_NOTE, AutoSnapshotService
from .diff import SnapshotDiff, diff_snapshot
from .envelope import DecodedEnvelope, count_words, decode, decode_body, encode
from .models import PRE_RESTORE_NOTE, Snapshot, SnapshotMetadata
from .store import DEFAULT_SNAPSHOT_ROOT, SnapshotStore, sanitize_document_path

__all__ = [
    # Types
    "Snapshot",
    "SnapshotMetadata",
    "SnapshotDiff",
    "DecodedEnvelope",
    # Store
    "SnapshotStore",
    "DEFAULT_SNAPSHOT_ROOT",
    "sanitize_document_path",
    # Envelope
    "encode",
    "decode",
    "decode_body",
    "count_words",
    # Comparison
    "diff_snapshot",
    # Automatic snapshots
    "AutoSnapshotService",
    "SESSION_START_NOTE",
    "SESSION_END_NOTE",
    "DAILY_NOTE",
    "PRE_RESTORE_NOTE",
]
