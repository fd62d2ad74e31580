"""Backup filename codec: the filename is the only index a backup has.

Grammar::

    backup-name   = original-stem "_" date "_" time ["." ext] "." ext
    date          = 8DIGIT                  ; YYYYMMDD
    time          = 6DIGIT / 9DIGIT         ; HHMMSS or HHMMSSmmm
    ext           = "d2s"
    archived-name = backup-name ".zip"
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from saveguard.models.save_file import SAVE_EXTENSION, is_save_file

ARCHIVE_SUFFIX = ".zip"

_DATE_RE = re.compile(r"[0-9]{8}")
_TIME_RE = re.compile(r"[0-9]{6}(?:[0-9]{3})?")


@dataclass(frozen=True)
class BackupIdentity:
    """Identity fields recoverable from a backup filename."""

    original_name: str
    timestamp: datetime
    compressed: bool


def truncate_timestamp(timestamp: datetime, precise: bool = False) -> datetime:
    """Drop the precision the filename cannot carry."""
    if precise:
        return timestamp.replace(microsecond=timestamp.microsecond // 1000 * 1000)
    return timestamp.replace(microsecond=0)


def encode_backup_name(
    original_name: str,
    timestamp: datetime,
    compressed: bool,
    precise: bool = False,
) -> str:
    """
    Build the backup filename for *original_name* taken at *timestamp*.

    ``precise`` selects the 9-digit HHMMSSmmm time segment.
    """
    if not is_save_file(original_name):
        raise ValueError(f"Not a save file name: {original_name!r}")

    time_part = timestamp.strftime("%H%M%S")
    if precise:
        time_part += f"{timestamp.microsecond // 1000:03d}"
    name = f"{original_name}_{timestamp:%Y%m%d}_{time_part}{SAVE_EXTENSION}"
    if compressed:
        name += ARCHIVE_SUFFIX
    return name


def decode_backup_name(file_name: str) -> BackupIdentity | None:
    """Parse a backup filename. Returns None for anything that is not one."""
    lowered = file_name.lower()
    if lowered.endswith(SAVE_EXTENSION + ARCHIVE_SUFFIX):
        compressed = True
        core = file_name[: -len(ARCHIVE_SUFFIX)]
    elif lowered.endswith(SAVE_EXTENSION):
        compressed = False
        core = file_name
    else:
        return None

    stem = core[: -len(SAVE_EXTENSION)]
    rest, sep, time_part = stem.rpartition("_")
    if not sep:
        return None
    base, sep, date_part = rest.rpartition("_")
    if not sep or not base:
        return None

    if not _DATE_RE.fullmatch(date_part) or not _TIME_RE.fullmatch(time_part):
        return None

    try:
        timestamp = datetime(
            int(date_part[0:4]),
            int(date_part[4:6]),
            int(date_part[6:8]),
            int(time_part[0:2]),
            int(time_part[2:4]),
            int(time_part[4:6]),
            int(time_part[6:9] or 0) * 1000,
        )
    except ValueError:
        return None

    original_name = base if is_save_file(base) else base + SAVE_EXTENSION
    return BackupIdentity(original_name, timestamp, compressed)
