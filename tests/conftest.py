"""Shared pytest fixtures for the backup subsystem tests."""

from __future__ import annotations

import struct
import zipfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable
from unittest.mock import MagicMock

import pytest

from saveguard.core.backup import BackupStore
from saveguard.core.file_io import RetryingFileIO
from saveguard.models.save_file import PeriodicBackupScope


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 10, 2, 8, 28, 1))


@pytest.fixture
def store_config() -> MagicMock:
    """A mock Config with uncompressed backups and generous limits."""
    config = MagicMock()
    config.enable_compression = False
    config.max_backups_per_file = 10
    config.backup_cooldown_seconds = 60
    config.custom_backup_path = None
    config.auto_backup_on_danger = True
    config.periodic_backup_enabled = False
    config.periodic_scope = PeriodicBackupScope.ENTIRE_RANGE
    config.periodic_interval_minutes = 30
    return config


@pytest.fixture
def save_dir(tmp_path: Path) -> Path:
    d = tmp_path / "saves"
    d.mkdir()
    return d


@pytest.fixture
def amazon(save_dir: Path) -> Path:
    """A 6000-byte character save."""
    path = save_dir / "Amazon.d2s"
    path.write_bytes(b"\x55\xaa\x55\xaa" + b"A" * 5996)
    return path


@pytest.fixture
def no_wait_io() -> RetryingFileIO:
    return RetryingFileIO(sleep=lambda _delay: None)


@pytest.fixture
def store(store_config: MagicMock, save_dir: Path, clock: FakeClock, no_wait_io: RetryingFileIO) -> BackupStore:
    return BackupStore(store_config, save_dir, file_io=no_wait_io, clock=clock)


@pytest.fixture
def damage_archive() -> Callable[[Path, str, bytes], None]:
    """Write a ZIP whose directory is intact but whose deflate stream is garbage."""

    def write(archive: Path, entry_name: str, payload: bytes) -> None:
        with zipfile.ZipFile(archive, "w", zipfile.ZIP_DEFLATED) as zf:
            zf.writestr(entry_name, payload)
            info = zf.getinfo(entry_name)
        raw = bytearray(archive.read_bytes())
        name_len, extra_len = struct.unpack_from("<HH", raw, info.header_offset + 26)
        start = info.header_offset + 30 + name_len + extra_len
        count = min(20, info.compress_size)
        raw[start : start + count] = b"\xff" * count
        archive.write_bytes(bytes(raw))

    return write
