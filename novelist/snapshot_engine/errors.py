"""
Error types for the Novelist snapshot engine.

This module defines the exceptions raised by snapshot operations:
- SnapshotEngineError: Base exception
- CaptureError: Snapshot creation failed
- MetadataUpdateError: Rewriting an entry's metadata failed
- DecodeWarning: A snapshot entry could not be fully parsed
- RestoreError: A restore step failed

Invariants:
    - All errors inherit from SnapshotEngineError
    - Errors include context for debugging
    - The original cause is chained (raise ... from e)

How to change safely:
    - Add new error types as subclasses, keep existing codes stable
    - Callers match on type or code, never on message text
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SnapshotEngineError(Exception):
    """Base exception for all snapshot engine errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SNAPSHOT_ENGINE_ERROR"
        self.details = details or {}


class CaptureError(SnapshotEngineError):
    """Creating a snapshot failed.

    Raised when:
    - The live document cannot be read
    - The snapshot directory cannot be created
    - The snapshot entry cannot be written
    """

    def __init__(self, message: str, document: Optional[str] = None) -> None:
        super().__init__(message, code="CAPTURE_ERROR", details={"document": document})
        self.document = document


class MetadataUpdateError(SnapshotEngineError):
    """Rewriting a snapshot's metadata failed."""

    def __init__(self, message: str, snapshot_path: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="METADATA_UPDATE_ERROR",
            details={"snapshot_path": snapshot_path},
        )
        self.snapshot_path = snapshot_path


class DecodeWarning(SnapshotEngineError):
    """A snapshot entry could not be fully parsed.

    Non-fatal: listings skip the entry and carry on. Only raised when no
    timestamp could be recovered; other missing fields degrade to defaults.
    """

    def __init__(self, message: str, snapshot_path: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="DECODE_WARNING",
            details={"snapshot_path": snapshot_path},
        )
        self.snapshot_path = snapshot_path


class RestoreError(SnapshotEngineError):
    """A restore step failed.

    The restore coordinator reports this through its result and notice
    callback instead of raising it to the caller.
    """

    def __init__(
        self,
        message: str,
        document: Optional[str] = None,
        snapshot_path: Optional[str] = None,
        step: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="RESTORE_ERROR",
            details={"document": document, "snapshot_path": snapshot_path, "step": step},
        )
        self.document = document
        self.snapshot_path = snapshot_path
        self.step = step
