"""
Comparison between a snapshot and the live document.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from typing import List

from .envelope import count_words, strip_front_matter


@dataclass
class SnapshotDiff:
    """Line diff from a snapshot body to the current body.

    Attributes:
        unified: Unified diff lines (no trailing newlines)
        added_lines: Lines present only in the current body
        removed_lines: Lines present only in the snapshot body
        word_delta: Current word count minus snapshot word count
    """

    unified: List[str] = field(default_factory=list)
    added_lines: int = 0
    removed_lines: int = 0
    word_delta: int = 0

    @property
    def has_changes(self) -> bool:
        return self.added_lines > 0 or self.removed_lines > 0

    def __str__(self) -> str:
        return "\n".join(self.unified)


def diff_snapshot(
    snapshot_body: str,
    current_body: str,
    snapshot_label: str = "snapshot",
    current_label: str = "current",
    context: int = 3,
) -> SnapshotDiff:
    """Diff a snapshot body against the current body of its document."""
    unified = list(
        difflib.unified_diff(
            snapshot_body.splitlines(),
            current_body.splitlines(),
            fromfile=snapshot_label,
            tofile=current_label,
            n=context,
            lineterm="",
        )
    )

    added = removed = 0
    # unified[:2] are the ---/+++ file headers
    for line in unified[2:]:
        if line.startswith("+"):
            added += 1
        elif line.startswith("-"):
            removed += 1

    word_delta = count_words(strip_front_matter(current_body)) - count_words(
        strip_front_matter(snapshot_body)
    )
    return SnapshotDiff(
        unified=unified,
        added_lines=added,
        removed_lines=removed,
        word_delta=word_delta,
    )
