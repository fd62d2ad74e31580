"""Application context: service container for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from saveguard.config import Config
    from saveguard.core.auto_backup import AutoBackupService
    from saveguard.core.backup import BackupStore


@dataclass
class AppContext:
    """
    Central service container.

    Front ends (CLI, GUI, file monitor) receive this at construction time.
    """

    config: Config
    save_dir: Path
    backup_store: BackupStore
    auto_backup: AutoBackupService
