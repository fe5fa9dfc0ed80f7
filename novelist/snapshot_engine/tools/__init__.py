"""
CLI tools for snapshot administration.

This module provides:
- restore: Roll a document back to one of its snapshots
- snapshot_cli: Create, list, pin, prune, diff and restore from a shell

Invariants:
    - Tools work directly on the vault (no running engine required)
    - A restore always backs up the live document first
"""

from .restore import RestoreCoordinator, RestoreResult
from .snapshot_cli import SnapshotCLI

__all__ = ["RestoreCoordinator", "RestoreResult", "SnapshotCLI"]
