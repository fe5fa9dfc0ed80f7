"""
Local filesystem document store.

Maps the DocumentStore protocol onto a vault directory on disk. This is the
production backend when the engine runs beside a vault folder.

Invariants:
    - Every path resolves inside the vault directory (no '..' escapes)
    - write_text() is atomic: content goes to a temp file in the same
      folder and is moved into place with os.replace()
    - Text is read and written as UTF-8 without newline translation
    - Hidden folders (name starting with '.') are not listed as documents

How to change safely:
    - Keep blocking filesystem calls inside the executor
    - Map OS errors onto the StoreError hierarchy, never leak OSError
"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable, List

from .base import (
    EntryDecodeError,
    EntryExistsError,
    EntryNotFoundError,
    ListResult,
    StoreError,
    join_path,
    normalize_path,
)

logger = logging.getLogger(__name__)


class LocalDocumentStore:
    """DocumentStore backed by a directory on disk.

    Blocking filesystem work runs in the default executor so the event
    loop is never stalled by a slow disk.

    Attributes:
        root: Vault directory

    Example:
        >>> store = LocalDocumentStore("/home/me/vault")
        >>> body = await store.read_document("Manuscript/Chapter 1.md")
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    async def exists(self, path: str) -> bool:
        return await self._run(self._resolve(path).exists)

    async def make_directory(self, path: str) -> None:
        await self._run(self._make_directory, self._resolve(path))

    async def read_text(self, path: str) -> str:
        return await self._run(self._read_text, self._resolve(path))

    async def write_text(self, path: str, content: str) -> None:
        target = self._resolve(path)
        await self._run(self._write_text, target, content)
        logger.debug("Wrote file", extra={"path": normalize_path(path), "size": len(content)})

    async def list_entries(self, path: str) -> ListResult:
        return await self._run(self._list_entries, normalize_path(path))

    async def remove_entry(self, path: str) -> None:
        await self._run(self._remove_entry, self._resolve(path))

    async def rename_entry(self, old_path: str, new_path: str) -> None:
        await self._run(self._rename_entry, self._resolve(old_path), self._resolve(new_path))

    async def read_document(self, document: str) -> str:
        return await self.read_text(document)

    async def overwrite_document(self, document: str, body: str) -> None:
        target = self._resolve(document)
        if not await self._run(target.is_file):
            raise EntryNotFoundError(f"Document not found: {normalize_path(document)}")
        await self._run(self._write_text, target, body)

    async def list_documents(self, suffix: str = ".md") -> List[str]:
        return await self._run(self._list_documents, suffix)

    # Blocking helpers (run in executor)

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.get_event_loop().run_in_executor(
                None, functools.partial(func, *args)
            )
        except StoreError:
            raise
        except FileNotFoundError as e:
            raise EntryNotFoundError(str(e)) from e
        except FileExistsError as e:
            raise EntryExistsError(str(e)) from e
        except OSError as e:
            raise StoreError(f"Filesystem operation failed: {e}") from e

    def _resolve(self, path: str) -> Path:
        relative = normalize_path(path)
        resolved = (self.root / relative).resolve() if relative else self.root
        if resolved != self.root and self.root not in resolved.parents:
            raise StoreError(f"Path escapes the vault: {path}")
        return resolved

    def _relative(self, target: Path) -> str:
        return normalize_path(target.relative_to(self.root).as_posix())

    def _make_directory(self, target: Path) -> None:
        if target.is_file():
            raise EntryExistsError(f"A file already exists at {self._relative(target)}")
        target.mkdir(parents=True, exist_ok=True)

    def _read_text(self, target: Path) -> str:
        if not target.is_file():
            raise EntryNotFoundError(f"File not found: {self._relative(target)}")
        try:
            with open(target, "r", encoding="utf-8", newline="") as f:
                return f.read()
        except UnicodeDecodeError as e:
            raise EntryDecodeError(f"Not valid UTF-8: {self._relative(target)} ({e})") from e

    def _write_text(self, target: Path, content: str) -> None:
        if not target.parent.is_dir():
            raise EntryNotFoundError(f"Folder not found: {self._relative(target.parent)}")
        if target.is_dir():
            raise EntryExistsError(f"A folder already exists at {self._relative(target)}")

        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".tmp-", suffix=target.suffix)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _list_entries(self, relative: str) -> ListResult:
        folder = self._resolve(relative)
        if not folder.is_dir():
            raise EntryNotFoundError(f"Folder not found: {relative}")
        result = ListResult()
        for child in sorted(folder.iterdir()):
            child_path = join_path(relative, child.name)
            if child.is_dir():
                result.folders.append(child_path)
            elif not child.name.startswith(".tmp-"):
                result.files.append(child_path)
        return result

    def _remove_entry(self, target: Path) -> None:
        if target == self.root:
            raise StoreError("Refusing to remove the vault root")
        if target.is_dir():
            shutil.rmtree(target)
        elif target.exists():
            target.unlink()
        else:
            raise EntryNotFoundError(f"Nothing to remove at {self._relative(target)}")

    def _rename_entry(self, source: Path, destination: Path) -> None:
        if not source.exists():
            raise EntryNotFoundError(f"Nothing to rename at {self._relative(source)}")
        if destination.exists():
            raise EntryExistsError(f"Destination already exists: {self._relative(destination)}")
        if not destination.parent.is_dir():
            raise EntryNotFoundError(
                f"Folder not found: {self._relative(destination.parent)}"
            )
        os.rename(source, destination)

    def _list_documents(self, suffix: str) -> List[str]:
        documents = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for name in sorted(filenames):
                if name.endswith(suffix) and not name.startswith("."):
                    documents.append(self._relative(Path(dirpath) / name))
        return documents
