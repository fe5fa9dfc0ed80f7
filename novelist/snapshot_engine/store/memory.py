"""
In-memory document store implementation for testing.

This module provides a simple in-memory vault for:
- Unit tests
- Integration tests
- Local development without touching the disk

Invariants:
    - All data is lost on process exit
    - Same folder semantics as the local backend (explicit folders,
      writes require an existing parent)
    - Safe to use from multiple coroutines

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with DocumentStore protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional, Set
import logging

from .base import (
    EntryExistsError,
    EntryNotFoundError,
    ListResult,
    normalize_path,
    parent_path,
)

logger = logging.getLogger(__name__)


@dataclass
class InjectedFailure:
    """A failure armed for a store operation (testing helper)."""
    operation: str
    exception: Exception
    path_contains: Optional[str] = None
    remaining: Optional[int] = None

    def matches(self, operation: str, path: str) -> bool:
        if operation != self.operation:
            return False
        if self.path_contains is not None and self.path_contains not in path:
            return False
        return self.remaining is None or self.remaining > 0


class InMemoryDocumentStore:
    """In-memory implementation of DocumentStore for testing.

    Files are kept in a dict keyed by normalized path; folders are tracked
    explicitly so that "folder exists but is empty" is representable.

    Example:
        >>> store = InMemoryDocumentStore()
        >>> store.add_document("Manuscript/Chapter 1.md", "It was a dark night.")
        >>> await store.read_document("Manuscript/Chapter 1.md")
        'It was a dark night.'
    """

    def __init__(self) -> None:
        self._files: Dict[str, str] = {}
        self._folders: Set[str] = set()
        self._lock = asyncio.Lock()
        self._failures: List[InjectedFailure] = []

    async def exists(self, path: str) -> bool:
        path = normalize_path(path)
        self._check_failure("exists", path)
        return path == "" or path in self._files or path in self._folders

    async def make_directory(self, path: str) -> None:
        path = normalize_path(path)
        self._check_failure("make_directory", path)
        async with self._lock:
            if path in self._files:
                raise EntryExistsError(f"A file already exists at {path}")
            current = path
            while current:
                self._folders.add(current)
                current = parent_path(current)

    async def read_text(self, path: str) -> str:
        path = normalize_path(path)
        self._check_failure("read_text", path)
        if path not in self._files:
            raise EntryNotFoundError(f"File not found: {path}")
        return self._files[path]

    async def write_text(self, path: str, content: str) -> None:
        path = normalize_path(path)
        self._check_failure("write_text", path)
        async with self._lock:
            parent = parent_path(path)
            if parent and parent not in self._folders:
                raise EntryNotFoundError(f"Folder not found: {parent}")
            if path in self._folders:
                raise EntryExistsError(f"A folder already exists at {path}")
            self._files[path] = content

        logger.debug("Wrote in-memory file", extra={"path": path, "size": len(content)})

    async def list_entries(self, path: str) -> ListResult:
        path = normalize_path(path)
        self._check_failure("list_entries", path)
        if path and path not in self._folders:
            raise EntryNotFoundError(f"Folder not found: {path}")
        result = ListResult()
        for file_path in sorted(self._files):
            if parent_path(file_path) == path:
                result.files.append(file_path)
        for folder in sorted(self._folders):
            if parent_path(folder) == path:
                result.folders.append(folder)
        return result

    async def remove_entry(self, path: str) -> None:
        path = normalize_path(path)
        self._check_failure("remove_entry", path)
        async with self._lock:
            if path in self._files:
                del self._files[path]
                return
            if path not in self._folders:
                raise EntryNotFoundError(f"Nothing to remove at {path}")
            prefix = path + "/"
            for file_path in [p for p in self._files if p.startswith(prefix)]:
                del self._files[file_path]
            self._folders = {
                f for f in self._folders if f != path and not f.startswith(prefix)
            }

    async def rename_entry(self, old_path: str, new_path: str) -> None:
        old_path = normalize_path(old_path)
        new_path = normalize_path(new_path)
        self._check_failure("rename_entry", old_path)
        async with self._lock:
            if new_path in self._files or new_path in self._folders:
                raise EntryExistsError(f"Destination already exists: {new_path}")
            new_parent = parent_path(new_path)
            if new_parent and new_parent not in self._folders:
                raise EntryNotFoundError(f"Folder not found: {new_parent}")

            if old_path in self._files:
                self._files[new_path] = self._files.pop(old_path)
                return
            if old_path not in self._folders:
                raise EntryNotFoundError(f"Nothing to rename at {old_path}")

            prefix = old_path + "/"
            for file_path in [p for p in self._files if p.startswith(prefix)]:
                self._files[new_path + file_path[len(old_path):]] = self._files.pop(file_path)
            moved = {f for f in self._folders if f == old_path or f.startswith(prefix)}
            self._folders -= moved
            self._folders |= {new_path + f[len(old_path):] for f in moved}

    async def read_document(self, document: str) -> str:
        return await self.read_text(document)

    async def overwrite_document(self, document: str, body: str) -> None:
        document = normalize_path(document)
        self._check_failure("overwrite_document", document)
        if document not in self._files:
            raise EntryNotFoundError(f"Document not found: {document}")
        self._files[document] = body

    async def list_documents(self, suffix: str = ".md") -> List[str]:
        self._check_failure("list_documents", "")
        return sorted(
            p for p in self._files
            if p.endswith(suffix) and not any(part.startswith(".") for part in p.split("/"))
        )

    # Testing helpers

    def add_document(self, path: str, body: str) -> str:
        """Create a document and its parent folders synchronously (testing helper).

        Returns:
            The normalized document path
        """
        path = normalize_path(path)
        current = parent_path(path)
        while current:
            self._folders.add(current)
            current = parent_path(current)
        self._files[path] = body
        return path

    def get_file(self, path: str) -> Optional[str]:
        """Get file content or None (testing helper)."""
        return self._files.get(normalize_path(path))

    def all_files(self, prefix: str = "") -> List[str]:
        """All file paths under a prefix (testing helper)."""
        prefix = normalize_path(prefix)
        return sorted(
            p for p in self._files if not prefix or p == prefix or p.startswith(prefix + "/")
        )

    def inject_failure(
        self,
        operation: str,
        exception: Exception,
        path_contains: Optional[str] = None,
        times: Optional[int] = None,
    ) -> None:
        """Make an operation raise for testing error handling.

        Args:
            operation: Method name, e.g. "write_text" or "remove_entry"
            exception: Exception instance to raise
            path_contains: Only fail when the path contains this substring
            times: Fail this many times, then recover (None = forever)
        """
        self._failures.append(
            InjectedFailure(
                operation=operation,
                exception=exception,
                path_contains=path_contains,
                remaining=times,
            )
        )

    def clear_failures(self) -> None:
        """Disarm all injected failures (testing helper)."""
        self._failures.clear()

    def _check_failure(self, operation: str, path: str) -> None:
        for failure in self._failures:
            if failure.matches(operation, path):
                if failure.remaining is not None:
                    failure.remaining -= 1
                raise failure.exception
