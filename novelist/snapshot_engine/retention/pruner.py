"""
Tiered retention for document snapshots.

The RetentionPolicy thins out a document's snapshot history using three
successive windows measured backward from "now":

    now ─────────── daily boundary ─────── weekly boundary ─────── monthly boundary ──── ...
         keep all       one per calendar day     one per calendar week      delete

    daily boundary   = now - keep_daily days
    weekly boundary  = now - keep_weekly weeks
    monthly boundary = now - keep_monthly calendar months

Within a day or week bucket the newest snapshot is the one kept: the list
is walked newest first and the first snapshot seen claims the bucket.

Invariants:
    - Pinned snapshots are never deleted
    - The newest snapshot of a document is never deleted
    - A history with only pinned snapshots is never touched
    - Pruning an already-pruned list (same "now") deletes nothing
    - One failed delete never stops the rest of the pass

How to change safely:
    - Keep plan() pure; all storage access goes through prune()
    - Day/week keys use local time, the same clock as entry filenames
"""

from __future__ import annotations

import calendar
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, List, Optional, Set

from ..snapshot.models import Snapshot

if TYPE_CHECKING:
    from ..snapshot.store import SnapshotStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetentionRules:
    """Widths of the three retention windows.

    Attributes:
        keep_daily: Days during which every snapshot is kept
        keep_weekly: Weeks during which one snapshot per day is kept
        keep_monthly: Months during which one snapshot per week is kept
        enabled: Whether captures trigger automatic pruning
    """

    keep_daily: int = 7
    keep_weekly: int = 4
    keep_monthly: int = 6
    enabled: bool = True

    def __post_init__(self) -> None:
        for name in ("keep_daily", "keep_weekly", "keep_monthly"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")


@dataclass
class PruneDecision:
    """Outcome of a retention pass before anything is deleted.

    Attributes:
        keep: Snapshots that survive (pinned included), newest first
        delete: Snapshots selected for deletion, newest first
    """

    keep: List[Snapshot] = field(default_factory=list)
    delete: List[Snapshot] = field(default_factory=list)


def subtract_months(moment: datetime, months: int) -> datetime:
    """Step back a number of calendar months, clamping the day of month.

    Example:
        >>> subtract_months(datetime(2024, 3, 31), 1)
        datetime.datetime(2024, 2, 29, 0, 0)
    """
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def day_key(timestamp_ms: int) -> str:
    """Calendar day bucket, e.g. '2024-01-10'."""
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d")


def week_key(timestamp_ms: int) -> str:
    """ISO calendar week bucket, e.g. '2024-W02'."""
    year, week, _ = datetime.fromtimestamp(timestamp_ms / 1000).isocalendar()
    return f"{year}-W{week:02d}"


def plan(
    snapshots: List[Snapshot],
    rules: RetentionRules,
    now_ms: Optional[int] = None,
) -> PruneDecision:
    """Decide which snapshots to keep and which to delete.

    Args:
        snapshots: A document's snapshots (any order)
        rules: Retention windows
        now_ms: Reference instant (Unix ms), defaults to the current time

    Returns:
        PruneDecision listing survivors and deletions
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)

    ordered = sorted(snapshots, key=lambda s: s.timestamp, reverse=True)
    decision = PruneDecision()

    unpinned = []
    for snapshot in ordered:
        if snapshot.is_pinned:
            decision.keep.append(snapshot)
        else:
            unpinned.append(snapshot)

    if not unpinned:
        return decision

    now = datetime.fromtimestamp(now_ms / 1000)
    daily_boundary = _to_ms(now - timedelta(days=rules.keep_daily))
    weekly_boundary = _to_ms(now - timedelta(weeks=rules.keep_weekly))
    monthly_boundary = _to_ms(subtract_months(now, rules.keep_monthly))

    seen_days: Set[str] = set()
    seen_weeks: Set[str] = set()

    for snapshot in unpinned:
        ts = snapshot.timestamp
        if ts > daily_boundary:
            decision.keep.append(snapshot)
        elif ts > weekly_boundary:
            key = day_key(ts)
            if key in seen_days:
                decision.delete.append(snapshot)
            else:
                seen_days.add(key)
                decision.keep.append(snapshot)
        elif ts > monthly_boundary:
            key = week_key(ts)
            if key in seen_weeks:
                decision.delete.append(snapshot)
            else:
                seen_weeks.add(key)
                decision.keep.append(snapshot)
        elif snapshot is ordered[0]:
            # Newest state of the document, even if every window is empty
            decision.keep.append(snapshot)
        else:
            decision.delete.append(snapshot)

    decision.keep.sort(key=lambda s: s.timestamp, reverse=True)
    return decision


def _to_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


class RetentionPolicy:
    """Applies RetentionRules to the snapshots held by a SnapshotStore.

    Example:
        >>> policy = RetentionPolicy(snapshot_store)
        >>> removed = await policy.prune("Manuscript/Chapter 1.md", RetentionRules())
    """

    def __init__(self, snapshot_store: "SnapshotStore") -> None:
        self.snapshot_store = snapshot_store

    async def prune(
        self,
        document: str,
        rules: RetentionRules,
        now_ms: Optional[int] = None,
    ) -> int:
        """Delete the snapshots of a document that fall outside the rules.

        Args:
            document: Source document path
            rules: Retention windows
            now_ms: Reference instant (Unix ms), defaults to the current time

        Returns:
            Number of snapshots actually deleted
        """
        snapshots = await self.snapshot_store.get_snapshots(document)
        decision = plan(snapshots, rules, now_ms)
        if not decision.delete:
            return 0

        removed = 0
        for snapshot in decision.delete:
            try:
                if await self.snapshot_store.delete_snapshot(snapshot):
                    removed += 1
            except Exception as e:
                logger.error(
                    f"Failed to prune snapshot {snapshot.path}: {e}",
                    exc_info=True,
                )

        logger.info(
            "Pruned snapshots",
            extra={
                "document": document,
                "removed": removed,
                "selected": len(decision.delete),
                "kept": len(decision.keep),
            },
        )
        return removed
