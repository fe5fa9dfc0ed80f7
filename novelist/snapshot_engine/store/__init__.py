"""
Document store abstraction for the snapshot engine.

This module provides a pluggable interface to the host's document store:
- Local filesystem (a vault directory on disk)
- In-memory (for testing)

The document store is owned by the host. Snapshot entries are ordinary
text files inside a hidden folder of the vault.

Invariants:
    - Paths are vault-relative and '/'-separated
    - Folder creation is idempotent
    - Store failures surface as StoreError subclasses

How to change safely:
    - New backends must implement DocumentStore protocol
    - Run the integration suite against every backend
"""

from .base import (
    DocumentStore,
    EntryDecodeError,
    EntryExistsError,
    EntryNotFoundError,
    ListResult,
    StoreError,
    create_document_store,
    join_path,
    normalize_path,
    parent_path,
)
from .local import LocalDocumentStore
from .memory import InMemoryDocumentStore

__all__ = [
    # Protocol and types
    "DocumentStore",
    "ListResult",
    "StoreError",
    "EntryNotFoundError",
    "EntryExistsError",
    "EntryDecodeError",
    # Paths
    "normalize_path",
    "join_path",
    "parent_path",
    # Factory
    "create_document_store",
    # Implementations
    "LocalDocumentStore",
    "InMemoryDocumentStore",
]
