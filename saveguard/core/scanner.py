"""Save scanner: list character save files in the save directory."""

from __future__ import annotations

import os
from pathlib import Path

from loguru import logger

from saveguard.models.save_file import PeriodicBackupScope, SaveFile, is_save_file


def scan_save_files(save_dir: Path | None) -> list[SaveFile]:
    """
    Collect every ``*.d2s`` file directly inside *save_dir*, sorted by name.

    Unreadable entries are skipped; a missing directory yields an empty list.
    """
    if save_dir is None:
        return []
    try:
        with os.scandir(save_dir) as it:
            entries = [e for e in it if is_save_file(e.name)]
    except OSError as e:
        logger.warning(f"Failed to scan save directory {save_dir}: {e}")
        return []

    saves: list[SaveFile] = []
    for entry in entries:
        try:
            if not entry.is_file():
                continue
            stat = entry.stat()
        except OSError as e:
            logger.debug(f"Skipping unreadable save {entry.name}: {e}")
            continue
        saves.append(SaveFile(path=Path(entry.path), size=stat.st_size, modified_time=stat.st_mtime))

    saves.sort(key=lambda s: s.name.casefold())
    logger.debug(f"Found {len(saves)} save file(s) in {save_dir}")
    return saves


def select_for_periodic(saves: list[SaveFile], scope: PeriodicBackupScope) -> list[SaveFile]:
    """Saves a periodic backup pass with *scope* should cover."""
    return [s for s in saves if scope.includes(s.size)]
