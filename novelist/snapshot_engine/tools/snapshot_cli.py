"""
Snapshot CLI tool for Novelist vaults.

This tool manages document snapshots directly on a vault directory:
- create: Snapshot a document, with an optional note
- list: List a document's snapshots, newest first
- pin / unpin: Protect a snapshot from retention
- delete: Remove one snapshot
- prune: Apply retention rules to a document's history
- restore: Roll a document back to a snapshot (backs it up first)
- diff: Compare a snapshot with the live document
- rename: Move history after a document was renamed outside the engine

Usage:
    novelist-snapshots --vault ~/Novel create "Manuscript/Chapter 1.md" --note "Before edits"
    novelist-snapshots --vault ~/Novel list "Manuscript/Chapter 1.md" --json
    novelist-snapshots --vault ~/Novel restore "Manuscript/Chapter 1.md" 2024-01-10-220000.md

Snapshots are referred to by entry path or by entry filename.

Invariants:
    - Failed operations cause non-zero exit code
    - --json output is stable for scripting
    - Nothing outside the vault directory is touched

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep output format stable for scripts
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import List, Optional

from ..config import RetentionConfig
from ..errors import SnapshotEngineError
from ..retention import RetentionRules
from ..snapshot.diff import SnapshotDiff
from ..snapshot.models import Snapshot
from ..snapshot.store import DEFAULT_SNAPSHOT_ROOT, SnapshotStore
from ..store import LocalDocumentStore, StoreError
from ..store.base import base_name, normalize_path
from .restore import RestoreCoordinator, RestoreResult

logger = logging.getLogger(__name__)


class SnapshotNotFoundError(SnapshotEngineError):
    """No snapshot of the document matches the given reference."""

    def __init__(self, document: str, reference: str) -> None:
        super().__init__(
            f"No snapshot '{reference}' for {document}",
            code="SNAPSHOT_NOT_FOUND",
            details={"document": document, "reference": reference},
        )


class SnapshotCLI:
    """CLI tool for snapshot management.

    Example:
        >>> cli = SnapshotCLI(SnapshotStore(LocalDocumentStore("/vault")))
        >>> await cli.create("Draft.md", note="Before edits")
        >>> await cli.list_snapshots("Draft.md")
    """

    def __init__(self, snapshot_store: SnapshotStore) -> None:
        self.snapshot_store = snapshot_store

    async def create(self, document: str, note: Optional[str] = None) -> Snapshot:
        return await self.snapshot_store.create_snapshot(document, note=note)

    async def list_snapshots(self, document: str) -> List[Snapshot]:
        return await self.snapshot_store.get_snapshots(document)

    async def find(self, document: str, reference: str) -> Snapshot:
        """Resolve a snapshot by entry path or entry filename.

        Raises:
            SnapshotNotFoundError: If nothing matches
        """
        reference = normalize_path(reference)
        for snapshot in await self.snapshot_store.get_snapshots(document):
            if snapshot.path == reference or base_name(snapshot.path) == reference:
                return snapshot
        raise SnapshotNotFoundError(document, reference)

    async def pin(self, document: str, reference: str, pinned: bool = True) -> Snapshot:
        snapshot = await self.find(document, reference)
        return await self.snapshot_store.update_snapshot_metadata(snapshot, is_pinned=pinned)

    async def delete(self, document: str, reference: str) -> bool:
        snapshot = await self.find(document, reference)
        return await self.snapshot_store.delete_snapshot(snapshot)

    async def prune(self, document: str, rules: RetentionRules) -> int:
        return await self.snapshot_store.retention_policy.prune(document, rules)

    async def restore(self, document: str, reference: str) -> RestoreResult:
        snapshot = await self.find(document, reference)
        return await RestoreCoordinator(self.snapshot_store).restore(document, snapshot)

    async def diff(self, document: str, reference: str) -> SnapshotDiff:
        snapshot = await self.find(document, reference)
        return await self.snapshot_store.compare_with_current(document, snapshot)

    async def rename(self, old_path: str, new_path: str) -> bool:
        return await self.snapshot_store.handle_source_rename(old_path, new_path)


def _format_snapshot(snapshot: Snapshot) -> str:
    pin = "*" if snapshot.is_pinned else " "
    when = snapshot.captured_at.strftime("%Y-%m-%d %H:%M:%S")
    note = f"  {snapshot.note}" if snapshot.note else ""
    return f" {pin} {when}  {snapshot.word_count:>7} words  {base_name(snapshot.path)}{note}"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Novelist snapshot management tool")
    parser.add_argument(
        "--vault",
        default=os.getenv("NOVELIST_VAULT_DIR", "."),
        help="Vault directory (default: $NOVELIST_VAULT_DIR or .)",
    )
    parser.add_argument(
        "--snapshot-root",
        default=os.getenv("NOVELIST_SNAPSHOT_ROOT", DEFAULT_SNAPSHOT_ROOT),
        help="Vault-relative snapshot folder",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # create command
    create_parser = subparsers.add_parser("create", help="Snapshot a document")
    create_parser.add_argument("document", help="Vault-relative document path")
    create_parser.add_argument("--note", "-n", default=None, help="Annotation for the snapshot")

    # list command
    list_parser = subparsers.add_parser("list", help="List snapshots, newest first")
    list_parser.add_argument("document", help="Vault-relative document path")
    list_parser.add_argument("--json", action="store_true", help="Output JSON")

    # pin / unpin / delete / restore / diff commands
    for name, help_text in (
        ("pin", "Protect a snapshot from retention"),
        ("unpin", "Remove retention protection"),
        ("delete", "Delete a snapshot"),
        ("restore", "Restore a document to a snapshot"),
        ("diff", "Compare a snapshot with the live document"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("document", help="Vault-relative document path")
        sub.add_argument("snapshot", help="Snapshot entry path or filename")

    # prune command
    retention = RetentionConfig.from_env()
    prune_parser = subparsers.add_parser("prune", help="Apply retention rules")
    prune_parser.add_argument("document", help="Vault-relative document path")
    prune_parser.add_argument("--keep-daily", type=int, default=retention.keep_daily)
    prune_parser.add_argument("--keep-weekly", type=int, default=retention.keep_weekly)
    prune_parser.add_argument("--keep-monthly", type=int, default=retention.keep_monthly)

    # rename command
    rename_parser = subparsers.add_parser("rename", help="Move history to a new document path")
    rename_parser.add_argument("old", help="Document path before the rename")
    rename_parser.add_argument("new", help="Document path after the rename")

    return parser


async def _run(args: argparse.Namespace) -> int:
    snapshot_store = SnapshotStore(
        LocalDocumentStore(args.vault),
        snapshot_root=args.snapshot_root,
        retention=RetentionConfig.from_env().to_rules(),
    )
    cli = SnapshotCLI(snapshot_store)

    if args.command == "create":
        snapshot = await cli.create(args.document, note=args.note)
        print(f"Created snapshot {snapshot.path}")

    elif args.command == "list":
        snapshots = await cli.list_snapshots(args.document)
        if args.json:
            print(json.dumps([s.to_dict() for s in snapshots], indent=2))
        elif not snapshots:
            print(f"No snapshots for {args.document}")
        else:
            print(f"{len(snapshots)} snapshot(s) for {args.document}:")
            for snapshot in snapshots:
                print(_format_snapshot(snapshot))

    elif args.command in ("pin", "unpin"):
        snapshot = await cli.pin(args.document, args.snapshot, pinned=args.command == "pin")
        state = "Pinned" if snapshot.is_pinned else "Unpinned"
        print(f"{state} {snapshot.path}")

    elif args.command == "delete":
        if not await cli.delete(args.document, args.snapshot):
            print(f"Snapshot already gone: {args.snapshot}", file=sys.stderr)
            return 1
        print(f"Deleted {args.snapshot}")

    elif args.command == "prune":
        rules = RetentionRules(
            keep_daily=args.keep_daily,
            keep_weekly=args.keep_weekly,
            keep_monthly=args.keep_monthly,
        )
        removed = await cli.prune(args.document, rules)
        print(f"Pruned {removed} snapshot(s) of {args.document}")

    elif args.command == "restore":
        result = await cli.restore(args.document, args.snapshot)
        if not result.success:
            print(f"Restore FAILED: {result.error}", file=sys.stderr)
            return 1
        print(f"Restored {result.document} from {result.snapshot_used}")
        if result.backup is not None:
            print(f"Backup saved as {result.backup.path}")

    elif args.command == "diff":
        diff = await cli.diff(args.document, args.snapshot)
        if not diff.has_changes:
            print("No changes")
        else:
            print(str(diff))
            print(
                f"+{diff.added_lines} -{diff.removed_lines} lines, "
                f"{diff.word_delta:+d} words"
            )

    elif args.command == "rename":
        if await cli.rename(args.old, args.new):
            print(f"Moved snapshot history of {args.old} to {args.new}")
        else:
            print(f"No snapshot history for {args.old}")

    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point for the snapshot tool."""
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        code = asyncio.run(_run(args))
    except (SnapshotEngineError, StoreError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
