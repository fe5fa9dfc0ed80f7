"""
Base protocol and types for the document store abstraction.

This module defines the DocumentStore protocol that all backends must
implement, along with path helpers and store errors.

The document store is owned by the host application. The snapshot engine
only ever reaches it through this protocol, which keeps the engine
testable against the in-memory backend.

Invariants:
    - Paths are vault-relative and '/'-separated (see normalize_path)
    - make_directory() is idempotent and creates missing parents
    - Every method may suspend; callers must not assume atomicity
      across two awaits

How to change safely:
    - Protocol changes require updating all implementations
    - Add new methods with a default implementation in every backend
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import (
    List,
    Protocol,
    runtime_checkable,
    TYPE_CHECKING,
)
import logging
import re

if TYPE_CHECKING:
    from ..config import EngineConfig

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base exception for document store operations."""
    pass


class EntryNotFoundError(StoreError):
    """The requested file or folder does not exist."""
    pass


class EntryExistsError(StoreError):
    """The destination of a create or rename is already taken."""
    pass


class EntryDecodeError(StoreError):
    """A file exists but is not valid UTF-8 text."""
    pass


_SLASHES = re.compile(r"/+")


def normalize_path(path: str) -> str:
    """Normalize a vault-relative path.

    Converts backslashes to '/', collapses repeated separators and strips
    leading/trailing separators. The vault root is the empty string.

    Example:
        >>> normalize_path("/.novelist//snapshots/")
        '.novelist/snapshots'
    """
    path = path.replace("\\", "/")
    path = _SLASHES.sub("/", path)
    return path.strip("/")


def join_path(*parts: str) -> str:
    """Join vault-relative path segments and normalize the result."""
    return normalize_path("/".join(p for p in parts if p))


def parent_path(path: str) -> str:
    """Parent folder of a vault-relative path ('' for top-level entries)."""
    path = normalize_path(path)
    if "/" not in path:
        return ""
    return path.rsplit("/", 1)[0]


def base_name(path: str) -> str:
    """Last segment of a vault-relative path."""
    return normalize_path(path).rsplit("/", 1)[-1]


@dataclass
class ListResult:
    """Direct children of a folder.

    Attributes:
        files: Full vault-relative paths of files
        folders: Full vault-relative paths of sub-folders
    """
    files: List[str] = field(default_factory=list)
    folders: List[str] = field(default_factory=list)


@runtime_checkable
class DocumentStore(Protocol):
    """Protocol for document store backends.

    Example:
        >>> store = LocalDocumentStore("/path/to/vault")
        >>> await store.make_directory(".novelist/snapshots")
        >>> await store.write_text(".novelist/snapshots/a.md", "hello")
        >>> (await store.list_entries(".novelist/snapshots")).files
        ['.novelist/snapshots/a.md']
    """

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Whether a file or folder exists at path."""
        ...

    @abstractmethod
    async def make_directory(self, path: str) -> None:
        """Create a folder (and missing parents). No-op if it exists.

        Raises:
            EntryExistsError: If a file occupies the path
            StoreError: For other failures
        """
        ...

    @abstractmethod
    async def read_text(self, path: str) -> str:
        """Read a file as text.

        Raises:
            EntryNotFoundError: If the file does not exist
        """
        ...

    @abstractmethod
    async def write_text(self, path: str, content: str) -> None:
        """Create or replace a file with the given text.

        The parent folder must exist.

        Raises:
            EntryNotFoundError: If the parent folder does not exist
            StoreError: For other failures
        """
        ...

    @abstractmethod
    async def list_entries(self, path: str) -> ListResult:
        """List the direct children of a folder.

        Raises:
            EntryNotFoundError: If the folder does not exist
        """
        ...

    @abstractmethod
    async def remove_entry(self, path: str) -> None:
        """Remove a file, or a folder together with its contents.

        Raises:
            EntryNotFoundError: If nothing exists at path
        """
        ...

    @abstractmethod
    async def rename_entry(self, old_path: str, new_path: str) -> None:
        """Move a file or folder to a new path.

        Raises:
            EntryNotFoundError: If old_path or the parent of new_path is missing
            EntryExistsError: If new_path is already taken
        """
        ...

    @abstractmethod
    async def read_document(self, document: str) -> str:
        """Read the live body of a user document."""
        ...

    @abstractmethod
    async def overwrite_document(self, document: str, body: str) -> None:
        """Replace the live body of an existing user document.

        Raises:
            EntryNotFoundError: If the document does not exist
        """
        ...

    @abstractmethod
    async def list_documents(self, suffix: str = ".md") -> List[str]:
        """List every document in the vault whose name ends with suffix."""
        ...


def create_document_store(config: "EngineConfig") -> DocumentStore:
    """Factory function to create a document store from configuration.

    Args:
        config: Engine configuration

    Returns:
        Appropriate DocumentStore implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend
    from .local import LocalDocumentStore
    from .memory import InMemoryDocumentStore

    if config.storage.backend == StoreBackend.LOCAL:
        return LocalDocumentStore(config.storage.vault_dir)
    elif config.storage.backend == StoreBackend.MEMORY:
        logger.warning("Using in-memory document store, snapshots will not persist")
        return InMemoryDocumentStore()
    else:
        raise ValueError(f"Unsupported store backend: {config.storage.backend}")
