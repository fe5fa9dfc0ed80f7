"""
Automatic snapshots for Novelist documents.

The AutoSnapshotService captures snapshots without user action:
- Session start: every open document, when the engine starts
- Session end: every open document, when the engine stops
- Daily: every document in the vault, once per calendar day at daily_time

The daily timer wakes up every check_interval_seconds and compares the
wall clock to daily_time; the date of the last daily run is remembered so
a day is never captured twice.

Invariants:
    - One failing document never aborts a batch
    - The daily run fires at most once per calendar day
    - Documents under the snapshot root are never themselves snapshotted

How to change safely:
    - Keep batch captures concurrent (asyncio.gather), SnapshotStore
      serializes captures per document
    - Test the timer with an injected clock, not by sleeping
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional

from ..store.base import normalize_path
from .models import Snapshot
from .store import SnapshotStore

if TYPE_CHECKING:
    from ..config import AutoSnapshotConfig

logger = logging.getLogger(__name__)

SESSION_START_NOTE = "Auto-snapshot: Session Start"
SESSION_END_NOTE = "Auto-snapshot: Session End"
DAILY_NOTE = "Auto-snapshot: Daily"


class AutoSnapshotService:
    """Background service for session and daily snapshots.

    Attributes:
        snapshot_store: Store that writes the snapshots
        config: Auto-snapshot configuration

    Example:
        >>> service = AutoSnapshotService(snapshot_store, config.auto_snapshot)
        >>> task = asyncio.create_task(service.start())
        >>> ...
        >>> await service.stop()
    """

    def __init__(
        self,
        snapshot_store: SnapshotStore,
        config: AutoSnapshotConfig,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize the service.

        Args:
            snapshot_store: Store that writes the snapshots
            config: Auto-snapshot configuration
            now: Returns the current local time
        """
        self.snapshot_store = snapshot_store
        self.config = config
        self.now = now

        self._running = False
        self._session_started = False
        self._last_daily_run: Optional[date] = None

    @property
    def last_daily_run(self) -> Optional[date]:
        return self._last_daily_run

    async def start(self) -> None:
        """Take the session-start snapshot and run the daily timer.

        Returns immediately after the session-start snapshot when the daily
        timer is disabled.
        """
        if self._running:
            logger.warning("Auto-snapshot service already running")
            return

        self._running = True
        self._session_started = True
        logger.info(
            "Auto-snapshot service started",
            extra={
                "on_session_start": self.config.on_session_start,
                "on_session_end": self.config.on_session_end,
                "daily_enabled": self.config.daily_enabled,
                "daily_time": self.config.daily_time,
            },
        )

        if self.config.on_session_start:
            await self.snapshot_documents(self.config.documents, SESSION_START_NOTE)

        if not self.config.daily_enabled:
            return

        try:
            while self._running:
                await self.check_daily()
                await asyncio.sleep(self.config.check_interval_seconds)
        except asyncio.CancelledError:
            logger.info("Daily auto-snapshot timer cancelled")
        except Exception as e:
            logger.error(f"Daily auto-snapshot timer error: {e}", exc_info=True)
        finally:
            self._running = False

    async def stop(self) -> List[Snapshot]:
        """Stop the timer and take the session-end snapshot.

        Returns:
            Snapshots captured at session end
        """
        self._running = False
        if not self._session_started:
            return []
        self._session_started = False

        logger.info("Stopping auto-snapshot service")
        if not self.config.on_session_end:
            return []
        return await self.snapshot_documents(self.config.documents, SESSION_END_NOTE)

    async def check_daily(self, now: Optional[datetime] = None) -> bool:
        """Run the daily snapshot if it is due.

        Args:
            now: Current local time, defaults to the injected clock

        Returns:
            True if the daily snapshot ran
        """
        now = now or self.now()
        hour, minute = self.config.daily_hour_minute

        if (now.hour, now.minute) < (hour, minute):
            return False
        if self._last_daily_run == now.date():
            return False

        # Mark the day before capturing; a slow run must not start twice
        self._last_daily_run = now.date()
        documents = await self.snapshot_store.store.list_documents(self.snapshot_store.suffix)
        logger.info(f"Running daily auto-snapshot for {len(documents)} documents")
        await self.snapshot_documents(documents, DAILY_NOTE)
        return True

    async def snapshot_documents(self, documents: Iterable[str], note: str) -> List[Snapshot]:
        """Capture several documents concurrently.

        Failures are logged per document and do not stop the others.

        Returns:
            Snapshots that were captured
        """
        targets = [d for d in (normalize_path(d) for d in documents) if not self._is_history(d)]
        if not targets:
            return []

        results = await asyncio.gather(
            *(self.snapshot_store.create_snapshot(d, note=note) for d in targets),
            return_exceptions=True,
        )

        captured: List[Snapshot] = []
        for document, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.error(
                    f"Auto-snapshot failed for {document}: {result}",
                    extra={"document": document, "note": note},
                )
            else:
                captured.append(result)

        logger.info(
            "Auto-snapshot batch complete",
            extra={"note": note, "captured": len(captured), "failed": len(targets) - len(captured)},
        )
        return captured

    def _is_history(self, document: str) -> bool:
        root = self.snapshot_store.snapshot_root
        return document == root or document.startswith(root + "/")
