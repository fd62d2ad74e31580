"""Retention policy: cap the number of stored backups per save file."""

from __future__ import annotations

from typing import Callable

from loguru import logger

from saveguard.models.backup_record import BackupRecord

MIN_BACKUPS_PER_FILE = 1
MAX_BACKUPS_PER_FILE = 100


class RetentionPolicy:
    """Keeps the newest ``max_backups`` records of one save file, evicting the rest."""

    def __init__(self, max_backups: int) -> None:
        self.max_backups = min(MAX_BACKUPS_PER_FILE, max(MIN_BACKUPS_PER_FILE, int(max_backups)))

    def excess(self, records: list[BackupRecord]) -> list[BackupRecord]:
        """Records beyond the cap, oldest first."""
        newest_first = sorted(
            records, key=lambda r: (r.timestamp, r.backup_name), reverse=True
        )
        return list(reversed(newest_first[self.max_backups :]))

    def enforce(
        self,
        records: list[BackupRecord],
        remove: Callable[[BackupRecord], bool],
    ) -> int:
        """
        Delete the excess records with *remove*. Returns how many were removed.

        Best effort: a failed removal is logged and the sweep continues.
        """
        removed = 0
        for record in self.excess(records):
            try:
                if remove(record):
                    removed += 1
                    logger.debug(f"Rotated old backup: {record.backup_name}")
            except Exception as e:
                logger.warning(f"Failed to rotate backup {record.backup_name}: {e}")
        return removed
