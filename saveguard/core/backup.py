"""Backup store: timestamped save-file backups in one flat directory, with per-file locking."""

from __future__ import annotations

import os
import threading
import time
import zipfile
from contextlib import ExitStack
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable

from loguru import logger

from saveguard.core.codec import (
    ARCHIVE_SUFFIX,
    decode_backup_name,
    encode_backup_name,
    truncate_timestamp,
)
from saveguard.core.events import (
    BackupCompleted,
    BackupEvents,
    BackupFailed,
    BackupProgress,
    BackupStarted,
)
from saveguard.core.file_io import ARCHIVE_ERRORS, RetryingFileIO
from saveguard.core.keyed_lock import KeyedLock
from saveguard.core.retention import RetentionPolicy
from saveguard.models.backup_record import (
    BackupRecord,
    BackupResult,
    BackupStatus,
    BackupTrigger,
    RestoreResult,
)
from saveguard.models.save_file import SAVE_EXTENSION, is_save_file
from saveguard.utils import validate_directory_path

if TYPE_CHECKING:
    from saveguard.config import Config

DEFAULT_BACKUP_DIR_NAME = "Backups"


class BackupDirectoryError(Exception):
    """Raised when the backup directory cannot be created."""


def lock_key(name: str | Path) -> str:
    """Lock key for a save file: its case-folded file name."""
    return Path(name).name.casefold()


def _cooldown_key(path: str | Path) -> str:
    return os.path.normcase(os.path.abspath(path))


class BackupStore:
    """
    Create, list, restore and delete save-file backups.

    Every read-modify-write sequence on one save file runs under that file's
    keyed lock; different save files proceed in parallel. Backups are named
    ``<original>_<YYYYMMDD>_<HHMMSS[mmm]>.d2s[.zip]`` and that name is the
    only metadata stored.
    """

    def __init__(
        self,
        config: Config,
        save_dir: Path,
        file_io: RetryingFileIO | None = None,
        locks: KeyedLock | None = None,
        events: BackupEvents | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._config = config
        self._save_dir = Path(save_dir)
        self._io = file_io or RetryingFileIO()
        self._locks = locks or KeyedLock()
        self._events = events or BackupEvents()
        self._clock = clock
        self._last_backup: dict[str, datetime] = {}
        self._cooldown_lock = threading.Lock()

        self._backup_dir = self._resolve_backup_dir()
        try:
            self._backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BackupDirectoryError(
                f"Failed to create backup directory: {self._backup_dir}"
            ) from e

    def _resolve_backup_dir(self) -> Path:
        custom = self._config.custom_backup_path
        if custom:
            error = validate_directory_path(custom)
            if error is None:
                return Path(custom)
            logger.warning(f"Ignoring custom backup path {custom}: {error}")
        return self._save_dir / DEFAULT_BACKUP_DIR_NAME

    @property
    def backup_dir(self) -> Path:
        return self._backup_dir

    @property
    def events(self) -> BackupEvents:
        return self._events

    # ── Cooldown ──

    def last_backup_time(self, target_path: str | Path) -> datetime | None:
        with self._cooldown_lock:
            return self._last_backup.get(_cooldown_key(target_path))

    def can_create(self, target_path: str | Path, trigger: BackupTrigger) -> bool:
        """Manual triggers always pass; automatic ones respect the cooldown."""
        if not trigger.is_automatic:
            return True
        last = self.last_backup_time(target_path)
        if last is None:
            return True
        cooldown = timedelta(seconds=self._config.backup_cooldown_seconds)
        return self._clock() - last >= cooldown

    def _mark_backed_up(self, source: Path) -> None:
        with self._cooldown_lock:
            self._last_backup[_cooldown_key(source)] = self._clock()

    # ── Create ──

    def create(self, source_path: str | Path, trigger: BackupTrigger) -> BackupResult:
        """Back up one save file. Retention is applied before this returns."""
        source = Path(source_path)
        started = time.monotonic()

        with self._locks.acquire(lock_key(source)):
            self._events.emit(BackupStarted(source.name, trigger))
            result = self._perform_backup(source, trigger)

            if result.success and result.record is not None:
                self._mark_backed_up(source)
                self._apply_retention(result.record.original_name)
                self._events.emit(BackupCompleted(source.name, trigger))
            else:
                self._events.emit(BackupFailed(source.name, result.error))

            result.duration = timedelta(seconds=time.monotonic() - started)

        self._reclaim_idle_locks()
        return result

    def create_bulk(
        self, source_paths: Iterable[str | Path], trigger: BackupTrigger
    ) -> list[BackupResult]:
        """Back up several files one after another, reporting progress before each."""
        paths = [Path(p) for p in source_paths]
        results: list[BackupResult] = []
        for current, path in enumerate(paths, start=1):
            self._events.emit(BackupProgress(current, len(paths), path.name))
            results.append(self.create(path, trigger))
        return results

    def _perform_backup(self, source: Path, trigger: BackupTrigger) -> BackupResult:
        """Write one backup of *source*. Caller holds the lock for *source*."""
        if not is_save_file(source.name):
            return BackupResult(success=False, error=f"Not a save file: {source.name}")

        try:
            if not source.is_file():
                return BackupResult(success=False, error="Source file not found")

            original_size = source.stat().st_size
            compressed = bool(self._config.enable_compression)
            self._backup_dir.mkdir(parents=True, exist_ok=True)
            backup_name, timestamp = self._allocate_name(source.name, compressed)
            backup_path = self._backup_dir / backup_name

            if compressed:
                outcome = self._io.compress_into(source, backup_path)
            else:
                outcome = self._io.copy(source, backup_path)

            if not outcome.success:
                action = "compress" if compressed else "copy"
                return BackupResult(success=False, error=f"Failed to {action} file: {outcome.error}")

            record = BackupRecord(
                original_name=source.name,
                backup_name=backup_name,
                timestamp=timestamp,
                size_bytes=original_size,
                compressed=compressed,
                trigger=trigger,
                stored_size=backup_path.stat().st_size,
            )
        except OSError as e:
            logger.exception(f"Backup of {source.name} failed")
            return BackupResult(success=False, error=str(e))

        logger.info(f"Created backup: {backup_name} ({trigger})")
        return BackupResult(success=True, record=record)

    def _allocate_name(self, original_name: str, compressed: bool) -> tuple[str, datetime]:
        """
        Pick a backup name no existing backup of *original_name* uses.

        Second precision when free, otherwise milliseconds bumped until unique.
        """
        now = self._clock()
        timestamp = truncate_timestamp(now)
        if not self._timestamp_taken(original_name, timestamp):
            return encode_backup_name(original_name, timestamp, compressed), timestamp

        timestamp = truncate_timestamp(now, precise=True)
        while self._timestamp_taken(original_name, timestamp):
            timestamp += timedelta(milliseconds=1)
        return encode_backup_name(original_name, timestamp, compressed, precise=True), timestamp

    def _timestamp_taken(self, original_name: str, timestamp: datetime) -> bool:
        names = []
        for compressed in (False, True):
            names.append(encode_backup_name(original_name, timestamp, compressed, precise=True))
            if timestamp.microsecond == 0:
                names.append(encode_backup_name(original_name, timestamp, compressed))
        return any((self._backup_dir / name).exists() for name in names)

    def _apply_retention(self, original_name: str) -> None:
        try:
            policy = RetentionPolicy(self._config.max_backups_per_file)
            policy.enforce(self.list_for(original_name), self._remove_backup)
        except Exception as e:
            logger.warning(f"Retention cleanup failed for {original_name}: {e}")

    def _reclaim_idle_locks(self) -> None:
        try:
            self._locks.maybe_reclaim()
        except Exception as e:
            logger.warning(f"Idle lock reclamation failed: {e}")

    # ── Listing ──

    def list_all(self) -> list[BackupRecord]:
        """Every decodable backup, newest first. Never raises."""
        return self._scan()

    def list_for(self, original_name: str | Path) -> list[BackupRecord]:
        """Backups of one save file, newest first. Never raises."""
        wanted = Path(original_name).name.casefold()
        return [r for r in self._scan() if r.original_name.casefold() == wanted]

    def _scan(self) -> list[BackupRecord]:
        try:
            with os.scandir(self._backup_dir) as it:
                entries = list(it)
        except OSError as e:
            logger.warning(f"Failed to read backup directory {self._backup_dir}: {e}")
            return []

        records: list[BackupRecord] = []
        for entry in entries:
            record = self._record_from_entry(entry)
            if record is not None:
                records.append(record)

        records.sort(key=lambda r: (r.timestamp, r.backup_name), reverse=True)
        return records

    @staticmethod
    def _record_from_entry(entry: os.DirEntry) -> BackupRecord | None:
        identity = decode_backup_name(entry.name)
        if identity is None:
            return None
        try:
            if not entry.is_file():
                return None
            stored_size = entry.stat().st_size
        except OSError:
            return None

        size_bytes = stored_size
        status = BackupStatus.VALID
        if identity.compressed:
            try:
                with zipfile.ZipFile(entry.path) as zf:
                    entries = zf.infolist()
                    if entries:
                        size_bytes = entries[0].file_size
                    else:
                        status = BackupStatus.CORRUPTED
            except (OSError, *ARCHIVE_ERRORS):
                status = BackupStatus.CORRUPTED

        return BackupRecord(
            original_name=identity.original_name,
            backup_name=entry.name,
            timestamp=identity.timestamp,
            size_bytes=size_bytes,
            compressed=identity.compressed,
            stored_size=stored_size,
            status=status,
        )

    # ── Restore ──

    def restore(
        self,
        record: BackupRecord,
        target_path: str | Path,
        take_pre_restore_backup: bool = True,
    ) -> RestoreResult:
        """
        Write the content of *record* to *target_path*.

        When *take_pre_restore_backup* is set and the target exists, the current
        target is backed up first (best effort). The target is replaced
        atomically, so a failed restore leaves it untouched.
        """
        target = Path(target_path)
        result = RestoreResult(restored_file=str(target))
        keys = sorted({lock_key(target), lock_key(record.original_name)})

        with ExitStack() as stack:
            for key in keys:
                stack.enter_context(self._locks.acquire(key))

            backup_path = self._backup_dir / record.backup_name
            if not backup_path.is_file():
                result.success = False
                result.error = "Backup file not found"
                return result

            if take_pre_restore_backup and target.exists():
                pre = self._perform_backup(target, BackupTrigger.PRE_RESTORE)
                if pre.success:
                    result.pre_restore_record = pre.record
                else:
                    logger.warning(f"Pre-restore backup of {target.name} failed: {pre.error}")

            compressed = record.compressed or backup_path.name.lower().endswith(
                SAVE_EXTENSION + ARCHIVE_SUFFIX
            )
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                result.success = False
                result.error = f"Failed to restore file: {e}"
                return result

            if compressed:
                outcome = self._io.decompress_from(backup_path, target)
            else:
                outcome = self._io.copy(backup_path, target)

            if not outcome.success:
                result.success = False
                result.error = f"Failed to restore file: {outcome.error}"
                logger.error(f"Restore of {record.backup_name} to {target} failed: {outcome.error}")
                return result

        logger.info(f"Restored {record.backup_name} to {target}")
        return result

    # ── Delete / verify ──

    def delete(self, record: BackupRecord) -> bool:
        """Remove a backup. Returns whether a file was actually removed."""
        with self._locks.acquire(lock_key(record.original_name)):
            return self._remove_backup(record)

    def _remove_backup(self, record: BackupRecord) -> bool:
        path = self._backup_dir / record.backup_name
        if not path.exists():
            return False
        outcome = self._io.remove(path)
        if not outcome.success:
            logger.warning(f"Failed to delete backup {record.backup_name}: {outcome.error}")
            return False
        logger.info(f"Deleted backup: {record.backup_name}")
        return True

    def verify(self, record: BackupRecord) -> BackupStatus:
        """Check that a backup still exists and, for archives, passes its CRC test."""
        with self._locks.acquire(lock_key(record.original_name)):
            path = self._backup_dir / record.backup_name
            try:
                if not path.is_file():
                    return BackupStatus.MISSING
                if not record.compressed:
                    return BackupStatus.VALID if path.stat().st_size > 0 else BackupStatus.CORRUPTED
                with zipfile.ZipFile(path) as zf:
                    if not zf.infolist() or zf.testzip() is not None:
                        return BackupStatus.CORRUPTED
            except (OSError, *ARCHIVE_ERRORS) as e:
                logger.warning(f"Failed to verify backup {record.backup_name}: {e}")
                return BackupStatus.CORRUPTED
            return BackupStatus.VALID
