"""
Configuration management for the Novelist snapshot engine.

All configuration is done via environment variables, so the engine can run
beside a vault without a config file of its own. This module provides typed
configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local use
    - Retention is off unless explicitly enabled (pruning deletes data)
    - Invalid values fail fast in validate(), before any file is touched

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Never change the default snapshot root, existing history lives there
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Tuple

if TYPE_CHECKING:
    from .retention.pruner import RetentionRules

logger = logging.getLogger(__name__)

_DAILY_TIME = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class StoreBackend(Enum):
    """Supported document store backends."""

    LOCAL = "local"
    MEMORY = "memory"


@dataclass(frozen=True)
class StorageConfig:
    """Document store configuration.

    Attributes:
        backend: Which document store backend to use
        vault_dir: Vault directory (local backend)
        snapshot_root: Vault-relative folder for snapshot history
        snapshot_suffix: Suffix of snapshot entry files
    """

    backend: StoreBackend = StoreBackend.LOCAL
    vault_dir: str = "."
    snapshot_root: str = ".novelist/snapshots"
    snapshot_suffix: str = ".md"

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        backend_str = os.getenv("NOVELIST_STORE_BACKEND", "local").lower()
        try:
            backend = StoreBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid NOVELIST_STORE_BACKEND '{backend_str}'. Must be one of: local, memory"
            )
        return cls(
            backend=backend,
            vault_dir=os.getenv("NOVELIST_VAULT_DIR", "."),
            snapshot_root=os.getenv("NOVELIST_SNAPSHOT_ROOT", ".novelist/snapshots"),
            snapshot_suffix=os.getenv("NOVELIST_SNAPSHOT_SUFFIX", ".md"),
        )


@dataclass(frozen=True)
class RetentionConfig:
    """Retention configuration.

    Attributes:
        enabled: Whether every capture prunes the document's history
        keep_daily: Days during which every snapshot is kept
        keep_weekly: Weeks during which one snapshot per day is kept
        keep_monthly: Months during which one snapshot per week is kept
    """

    enabled: bool = False
    keep_daily: int = 7
    keep_weekly: int = 4
    keep_monthly: int = 6

    @classmethod
    def from_env(cls) -> RetentionConfig:
        """Load configuration from environment variables."""
        return cls(
            enabled=_env_bool("RETENTION_ENABLED", "false"),
            keep_daily=int(os.getenv("RETENTION_KEEP_DAILY", "7")),
            keep_weekly=int(os.getenv("RETENTION_KEEP_WEEKLY", "4")),
            keep_monthly=int(os.getenv("RETENTION_KEEP_MONTHLY", "6")),
        )

    def to_rules(self) -> RetentionRules:
        """Build the rules object used by the retention engine.

        Raises:
            ValueError: If any window is negative
        """
        from .retention.pruner import RetentionRules

        return RetentionRules(
            keep_daily=self.keep_daily,
            keep_weekly=self.keep_weekly,
            keep_monthly=self.keep_monthly,
            enabled=self.enabled,
        )


@dataclass(frozen=True)
class AutoSnapshotConfig:
    """Automatic snapshot configuration.

    Attributes:
        on_session_start: Snapshot open documents when the engine starts
        on_session_end: Snapshot open documents when the engine stops
        daily_enabled: Snapshot every document once a day
        daily_time: Local wall-clock time (HH:MM) of the daily snapshot
        check_interval_seconds: How often the daily timer checks the clock
        documents: Documents considered open for session snapshots
    """

    on_session_start: bool = False
    on_session_end: bool = False
    daily_enabled: bool = False
    daily_time: str = "23:00"
    check_interval_seconds: int = 60
    documents: Tuple[str, ...] = ()

    @classmethod
    def from_env(cls) -> AutoSnapshotConfig:
        """Load configuration from environment variables."""
        documents = os.getenv("AUTO_SNAPSHOT_DOCUMENTS", "")
        return cls(
            on_session_start=_env_bool("AUTO_SNAPSHOT_ON_START", "false"),
            on_session_end=_env_bool("AUTO_SNAPSHOT_ON_END", "false"),
            daily_enabled=_env_bool("AUTO_SNAPSHOT_DAILY", "false"),
            daily_time=os.getenv("AUTO_SNAPSHOT_DAILY_TIME", "23:00"),
            check_interval_seconds=int(os.getenv("AUTO_SNAPSHOT_CHECK_SECONDS", "60")),
            documents=tuple(d.strip() for d in documents.split(",") if d.strip()),
        )

    @property
    def daily_hour_minute(self) -> Tuple[int, int]:
        """daily_time as (hour, minute).

        Raises:
            ValueError: If daily_time is not HH:MM
        """
        match = _DAILY_TIME.match(self.daily_time)
        if not match:
            raise ValueError(f"Invalid daily snapshot time '{self.daily_time}', expected HH:MM")
        return int(match.group(1)), int(match.group(2))


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class EngineConfig:
    """Complete engine configuration.

    Attributes:
        storage: Document store configuration
        retention: Retention configuration
        auto_snapshot: Automatic snapshot configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    auto_snapshot: AutoSnapshotConfig = field(default_factory=AutoSnapshotConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            retention=RetentionConfig.from_env(),
            auto_snapshot=AutoSnapshotConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        self.retention.to_rules()
        self.auto_snapshot.daily_hour_minute

        if self.auto_snapshot.check_interval_seconds <= 0:
            raise ValueError("AUTO_SNAPSHOT_CHECK_SECONDS must be positive")

        if not self.storage.snapshot_root.strip("/"):
            raise ValueError("NOVELIST_SNAPSHOT_ROOT must not be the vault root")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if self.retention.keep_weekly * 7 < self.retention.keep_daily:
            logger.warning(
                "Weekly retention window is shorter than the daily window; "
                "the weekly tier will never apply"
            )

        if self.storage.backend == StoreBackend.LOCAL and not os.path.isdir(
            self.storage.vault_dir
        ):
            raise ValueError(f"Vault directory does not exist: {self.storage.vault_dir}")

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Engine configuration loaded",
            extra={
                "store_backend": self.storage.backend.value,
                "vault_dir": self.storage.vault_dir,
                "snapshot_root": self.storage.snapshot_root,
                "retention_enabled": self.retention.enabled,
                "keep_daily": self.retention.keep_daily,
                "keep_weekly": self.retention.keep_weekly,
                "keep_monthly": self.retention.keep_monthly,
                "auto_on_start": self.auto_snapshot.on_session_start,
                "auto_on_end": self.auto_snapshot.on_session_end,
                "auto_daily": self.auto_snapshot.daily_enabled,
                "log_level": self.observability.log_level,
            },
        )
