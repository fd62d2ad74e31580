"""Backup record models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from pathlib import PurePath


class BackupTrigger(StrEnum):
    """Reason a backup was taken."""

    DANGER_THRESHOLD = "danger_threshold"
    PERIODIC_AUTOMATIC = "periodic_automatic"
    MANUAL_SINGLE = "manual_single"
    MANUAL_BULK = "manual_bulk"
    PRE_RESTORE = "pre_restore"

    @property
    def is_automatic(self) -> bool:
        return self not in (BackupTrigger.MANUAL_SINGLE, BackupTrigger.MANUAL_BULK)


class BackupStatus(StrEnum):
    """Validation status of a stored backup."""

    VALID = "valid"
    CORRUPTED = "corrupted"
    MISSING = "missing"
    RESTORED = "restored"


@dataclass(frozen=True)
class BackupRecord:
    """A stored backup, derived entirely from its filename."""

    original_name: str  # e.g. "Amazon.d2s"
    backup_name: str  # physical file name inside the backup directory
    timestamp: datetime
    size_bytes: int = 0  # logical (uncompressed) size
    compressed: bool = False
    trigger: BackupTrigger | None = None  # unknown for listed records
    stored_size: int = 0  # physical size on disk
    status: BackupStatus = BackupStatus.VALID

    @property
    def is_automatic(self) -> bool:
        return self.trigger is not None and self.trigger.is_automatic

    @property
    def display_name(self) -> str:
        return f"{PurePath(self.original_name).stem} - {self.timestamp:%Y-%m-%d %H:%M:%S}"

    @property
    def compression_ratio(self) -> float:
        """Percentage of space saved by compression (0 when not compressed)."""
        if not self.compressed or self.size_bytes == 0:
            return 0.0
        return (1 - self.stored_size / self.size_bytes) * 100


@dataclass
class BackupResult:
    """Result of a backup operation."""

    success: bool = True
    record: BackupRecord | None = None
    error: str = ""
    duration: timedelta = timedelta(0)


@dataclass
class RestoreResult:
    """Result of a restore operation."""

    success: bool = True
    restored_file: str = ""
    pre_restore_record: BackupRecord | None = None
    error: str = ""
