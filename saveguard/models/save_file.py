"""Save file models and size thresholds."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

SAVE_EXTENSION = ".d2s"

# D2R refuses to load character files above this size
MAX_FILE_SIZE = 8192
DANGER_THRESHOLD = 7500
WARNING_THRESHOLD = 7000


class SizeLevel(StrEnum):
    """How close a save file is to the size limit."""

    SAFE = "safe"
    WARNING = "warning"
    DANGER = "danger"

    @classmethod
    def for_size(cls, size: int) -> SizeLevel:
        if size >= DANGER_THRESHOLD:
            return cls.DANGER
        if size >= WARNING_THRESHOLD:
            return cls.WARNING
        return cls.SAFE


class PeriodicBackupScope(StrEnum):
    """Which save files a periodic backup pass covers."""

    DANGER_ONLY = "danger_only"
    WARNING_OR_ABOVE = "warning_or_above"
    ENTIRE_RANGE = "entire_range"

    def includes(self, size: int) -> bool:
        if self is PeriodicBackupScope.DANGER_ONLY:
            return size >= DANGER_THRESHOLD
        if self is PeriodicBackupScope.WARNING_OR_ABOVE:
            return size >= WARNING_THRESHOLD
        return size > 0


def is_save_file(name: str | Path) -> bool:
    """True when *name* carries the save-file extension (case-insensitive)."""
    return str(name).lower().endswith(SAVE_EXTENSION)


@dataclass
class SaveFile:
    """A character save file found in the save directory."""

    path: Path
    size: int = 0
    modified_time: float = 0.0

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def level(self) -> SizeLevel:
        return SizeLevel.for_size(self.size)

    @property
    def usage_percent(self) -> float:
        return self.size / MAX_FILE_SIZE * 100
