"""
Restore tool for Novelist documents.

Rolls a document back to the body captured in one of its snapshots.

The restore process:
1. Read the chosen snapshot entry
2. Snapshot the live document ("Pre-Restore Auto-Backup")
3. Strip the envelope from the chosen entry
4. Overwrite the live document with the captured body

Usage:
    novelist-snapshots restore --vault <dir> --document <path> --snapshot <entry path>

Invariants:
    - The live document is always snapshotted before it is overwritten
    - If the backup or the read/decode step fails, the document is not touched
    - Failures are reported through RestoreResult and the notice callback,
      never raised to the caller

How to change safely:
    - Keep the backup step ahead of every write to the live document
    - Test restore with missing and corrupt snapshot entries
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..errors import RestoreError
from ..snapshot.envelope import decode_body
from ..snapshot.models import PRE_RESTORE_NOTE, Snapshot
from ..snapshot.store import SnapshotStore
from ..store.base import normalize_path

logger = logging.getLogger(__name__)


@dataclass
class RestoreResult:
    """Result of a restore operation.

    Attributes:
        success: Whether the document now holds the snapshot's body
        document: Restored document path
        snapshot_used: Path of the snapshot that was restored
        backup: Pre-restore backup snapshot, if one was taken
        duration_ms: Total restore duration
        error: RestoreError describing the failure, if any
    """

    success: bool
    document: str
    snapshot_used: Optional[str]
    backup: Optional[Snapshot]
    duration_ms: int
    error: Optional[RestoreError] = None


def _log_notice(message: str) -> None:
    logger.warning(message)


class RestoreCoordinator:
    """Restores documents from their snapshots.

    Example:
        >>> coordinator = RestoreCoordinator(snapshot_store)
        >>> result = await coordinator.restore("Draft.md", snapshots[2])
        >>> if not result.success:
        ...     print(result.error)
    """

    def __init__(
        self,
        snapshot_store: SnapshotStore,
        notify: Callable[[str], None] = _log_notice,
    ) -> None:
        """Initialize the coordinator.

        Args:
            snapshot_store: Store holding the document's history
            notify: Receives a user-facing message when a restore fails
        """
        self.snapshot_store = snapshot_store
        self.notify = notify

    async def restore(self, document: str, snapshot: Snapshot) -> RestoreResult:
        """Restore a document to a snapshot's body.

        Args:
            document: Live document to overwrite
            snapshot: Snapshot to restore

        Returns:
            RestoreResult indicating success/failure
        """
        start_time = time.time()
        document = normalize_path(document)
        logger.info(f"Restoring snapshot {snapshot.path} to {document}")

        # The entry is read before the backup so that the retention pass run
        # by the backup capture cannot remove it underneath us.
        raw_snapshot: Optional[str] = None
        read_error: Optional[Exception] = None
        try:
            raw_snapshot = await self.snapshot_store.store.read_text(snapshot.path)
        except Exception as e:
            read_error = e

        backup: Optional[Snapshot] = None
        try:
            backup = await self.snapshot_store.create_snapshot(document, note=PRE_RESTORE_NOTE)
        except Exception as e:
            return self._failed(
                document, snapshot, None, start_time,
                RestoreError(
                    f"Restore aborted, could not back up {document}: {e}",
                    document=document,
                    snapshot_path=snapshot.path,
                    step="backup",
                ),
                e,
            )

        if read_error is not None or raw_snapshot is None:
            return self._failed(
                document, snapshot, backup, start_time,
                RestoreError(
                    f"Snapshot not readable: {snapshot.path}: {read_error}",
                    document=document,
                    snapshot_path=snapshot.path,
                    step="read",
                ),
                read_error,
            )

        try:
            body = decode_body(raw_snapshot)
            await self.snapshot_store.store.overwrite_document(document, body)
        except Exception as e:
            return self._failed(
                document, snapshot, backup, start_time,
                RestoreError(
                    f"Failed to overwrite {document}: {e}",
                    document=document,
                    snapshot_path=snapshot.path,
                    step="overwrite",
                ),
                e,
            )

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "Restore complete",
            extra={
                "document": document,
                "snapshot_path": snapshot.path,
                "backup_path": backup.path,
                "duration_ms": duration_ms,
            },
        )
        return RestoreResult(
            success=True,
            document=document,
            snapshot_used=snapshot.path,
            backup=backup,
            duration_ms=duration_ms,
        )

    def _failed(
        self,
        document: str,
        snapshot: Snapshot,
        backup: Optional[Snapshot],
        start_time: float,
        error: RestoreError,
        cause: Optional[BaseException],
    ) -> RestoreResult:
        error.__cause__ = cause
        logger.error(f"Restore failed: {error}", exc_info=cause)
        try:
            self.notify(f"Restore failed: {error.message}")
        except Exception as e:
            logger.error(f"Restore notice callback failed: {e}")
        return RestoreResult(
            success=False,
            document=document,
            snapshot_used=None,
            backup=backup,
            duration_ms=int((time.time() - start_time) * 1000),
            error=error,
        )
