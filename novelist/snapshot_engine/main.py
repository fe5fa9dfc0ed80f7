"""
Novelist Snapshot Engine - Main entry point.

This module runs the snapshot engine beside a vault with all components:
- Document store (local vault directory or in-memory)
- Snapshot store (capture, listing, retention)
- Auto-snapshot service (session start/end, daily timer)

Usage:
    python -m novelist.snapshot_engine.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The session-end snapshot runs on every graceful shutdown
    - Configuration is validated before any file is touched

How to change safely:
    - Add new components with enable/disable flags
    - Test shutdown sequence thoroughly
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import json_log_formatter

from .config import EngineConfig
from .snapshot import AutoSnapshotService, SnapshotStore
from .store import DocumentStore, create_document_store

logger = logging.getLogger(__name__)


def setup_logging(config: EngineConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Engine configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


class Engine:
    """Snapshot engine orchestrator.

    Manages the lifecycle of all engine components:
    - Document store
    - Snapshot store with retention
    - Auto-snapshot service (background task)

    Attributes:
        config: Engine configuration
        store: Document store instance
        snapshot_store: Snapshot store instance
        auto_snapshot: Auto-snapshot service

    Example:
        >>> engine = Engine()
        >>> await engine.start()
        >>> # Engine is running until request_shutdown()
        >>> await engine.stop()
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        store: DocumentStore | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Optional engine configuration (loaded from env if not provided)
            store: Optional document store (built from config if not provided)
        """
        self.config = config or EngineConfig.from_env()
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in start())
        self.store: DocumentStore | None = store
        self.snapshot_store: SnapshotStore | None = None
        self.auto_snapshot: AutoSnapshotService | None = None

        # Background tasks
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the engine and wait for a shutdown request."""
        if self._running:
            logger.warning("Engine already running")
            return

        logger.info("Starting snapshot engine")
        self.config.log_config()

        try:
            if self.store is None:
                self.store = create_document_store(self.config)

            retention = self.config.retention.to_rules()
            self.snapshot_store = SnapshotStore(
                self.store,
                snapshot_root=self.config.storage.snapshot_root,
                retention=retention,
                suffix=self.config.storage.snapshot_suffix,
            )

            self.auto_snapshot = AutoSnapshotService(
                self.snapshot_store,
                self.config.auto_snapshot,
            )
            auto_task = asyncio.create_task(self.auto_snapshot.start())
            self._tasks.append(auto_task)

            self._running = True
            logger.info("Snapshot engine started successfully")

            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Engine startup failed: {e}", exc_info=True)
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the engine gracefully."""
        if not self._running and not self._tasks:
            return

        logger.info("Stopping snapshot engine")

        for task in self._tasks:
            task.cancel()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        if self.auto_snapshot:
            await self.auto_snapshot.stop()

        self._running = False
        logger.info("Snapshot engine stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    try:
        config = EngineConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    engine = Engine(config)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        engine.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(engine.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(engine.stop())
        loop.close()


if __name__ == "__main__":
    main()
