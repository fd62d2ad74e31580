"""Tests for RetryingFileIO."""

from __future__ import annotations

import errno
import shutil
import zipfile
from pathlib import Path

import pytest

from saveguard.core.file_io import RetryingFileIO, is_sharing_violation


@pytest.fixture
def delays() -> list[float]:
    return []


@pytest.fixture
def io(delays: list[float]) -> RetryingFileIO:
    return RetryingFileIO(sleep=delays.append)


@pytest.fixture
def source(tmp_path: Path) -> Path:
    path = tmp_path / "Amazon.d2s"
    path.write_bytes(b"character data " * 100)
    return path


def _flaky_copyfileobj(monkeypatch: pytest.MonkeyPatch, failures: int, err: int = errno.EBUSY) -> list[int]:
    """Make the first *failures* buffer copies raise OSError(*err*)."""
    calls: list[int] = []
    real = shutil.copyfileobj

    def flaky(src, dst, length=0):
        calls.append(1)
        if len(calls) <= failures:
            raise OSError(err, "resource busy")
        return real(src, dst, length)

    monkeypatch.setattr(shutil, "copyfileobj", flaky)
    return calls


def _leftovers(directory: Path) -> list[str]:
    return sorted(p.name for p in directory.iterdir() if p.name.endswith(".partial"))


class TestSharingViolation:
    def test_posix_busy(self) -> None:
        assert is_sharing_violation(OSError(errno.EBUSY, "busy"))
        assert is_sharing_violation(OSError(errno.EAGAIN, "again"))

    def test_windows_sharing_violation(self) -> None:
        exc = OSError("in use")
        exc.winerror = 32
        assert is_sharing_violation(exc)

    def test_other_errors(self) -> None:
        assert not is_sharing_violation(OSError(errno.ENOENT, "missing"))
        assert not is_sharing_violation(PermissionError(errno.EACCES, "denied"))
        assert not is_sharing_violation(ValueError("nope"))


class TestCopy:
    def test_copies_bytes(self, io: RetryingFileIO, source: Path, tmp_path: Path) -> None:
        dest = tmp_path / "out" / "copy.d2s"
        dest.parent.mkdir()
        outcome = io.copy(source, dest)
        assert outcome.success
        assert dest.read_bytes() == source.read_bytes()
        assert _leftovers(dest.parent) == []

    def test_overwrites_existing(self, io: RetryingFileIO, source: Path, tmp_path: Path) -> None:
        dest = tmp_path / "target.d2s"
        dest.write_bytes(b"old")
        assert io.copy(source, dest).success
        assert dest.read_bytes() == source.read_bytes()

    def test_missing_source_is_terminal(
        self, io: RetryingFileIO, delays: list[float], tmp_path: Path
    ) -> None:
        outcome = io.copy(tmp_path / "gone.d2s", tmp_path / "dest.d2s")
        assert not outcome.success
        assert outcome.error
        assert delays == []
        assert not (tmp_path / "dest.d2s").exists()

    def test_retries_sharing_violation_with_backoff(
        self,
        io: RetryingFileIO,
        delays: list[float],
        source: Path,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        calls = _flaky_copyfileobj(monkeypatch, failures=2)
        dest = tmp_path / "dest.d2s"
        outcome = io.copy(source, dest)
        assert outcome.success
        assert len(calls) == 3
        assert delays == pytest.approx([0.1, 0.2])
        assert dest.read_bytes() == source.read_bytes()

    def test_gives_up_after_max_attempts(
        self,
        io: RetryingFileIO,
        delays: list[float],
        source: Path,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        calls = _flaky_copyfileobj(monkeypatch, failures=10)
        dest = tmp_path / "dest.d2s"
        dest.write_bytes(b"keep me")
        outcome = io.copy(source, dest)
        assert not outcome.success
        assert len(calls) == 3
        assert len(delays) == 2
        assert dest.read_bytes() == b"keep me"
        assert _leftovers(tmp_path) == []

    def test_non_sharing_error_is_not_retried(
        self,
        io: RetryingFileIO,
        delays: list[float],
        source: Path,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        calls = _flaky_copyfileobj(monkeypatch, failures=10, err=errno.ENOSPC)
        outcome = io.copy(source, tmp_path / "dest.d2s")
        assert not outcome.success
        assert len(calls) == 1
        assert delays == []
        assert not (tmp_path / "dest.d2s").exists()
        assert _leftovers(tmp_path) == []


class TestArchive:
    def test_compress_writes_single_named_entry(
        self, io: RetryingFileIO, source: Path, tmp_path: Path
    ) -> None:
        archive = tmp_path / "backup.d2s.zip"
        assert io.compress_into(source, archive).success
        with zipfile.ZipFile(archive) as zf:
            assert zf.namelist() == ["Amazon.d2s"]
            assert zf.read("Amazon.d2s") == source.read_bytes()
            assert zf.infolist()[0].compress_type == zipfile.ZIP_DEFLATED

    def test_decompress_extracts_first_entry(
        self, io: RetryingFileIO, source: Path, tmp_path: Path
    ) -> None:
        archive = tmp_path / "backup.d2s.zip"
        io.compress_into(source, archive)
        dest = tmp_path / "restored.d2s"
        assert io.decompress_from(archive, dest).success
        assert dest.read_bytes() == source.read_bytes()

    def test_empty_archive_fails_without_retry(
        self, io: RetryingFileIO, delays: list[float], tmp_path: Path
    ) -> None:
        archive = tmp_path / "empty.d2s.zip"
        with zipfile.ZipFile(archive, "w"):
            pass
        dest = tmp_path / "restored.d2s"
        dest.write_bytes(b"current")
        outcome = io.decompress_from(archive, dest)
        assert not outcome.success
        assert "no entries" in outcome.error
        assert delays == []
        assert dest.read_bytes() == b"current"
        assert _leftovers(tmp_path) == []

    def test_corrupt_archive_fails(self, io: RetryingFileIO, delays: list[float], tmp_path: Path) -> None:
        archive = tmp_path / "junk.d2s.zip"
        archive.write_bytes(b"this is not a zip file")
        outcome = io.decompress_from(archive, tmp_path / "restored.d2s")
        assert not outcome.success
        assert outcome.error.startswith("Corrupt archive")
        assert delays == []
        assert not (tmp_path / "restored.d2s").exists()


    def test_damaged_payload_fails_without_retry(
        self, io: RetryingFileIO, delays: list[float], tmp_path: Path, damage_archive
    ) -> None:
        archive = tmp_path / "damaged.d2s.zip"
        damage_archive(archive, "Amazon.d2s", bytes(range(256)) * 24)
        dest = tmp_path / "restored.d2s"
        dest.write_bytes(b"current")

        outcome = io.decompress_from(archive, dest)
        assert not outcome.success
        assert outcome.error.startswith("Corrupt archive")
        assert delays == []
        assert dest.read_bytes() == b"current"
        assert _leftovers(tmp_path) == []


class TestRemove:
    def test_removes_file(self, io: RetryingFileIO, source: Path) -> None:
        assert io.remove(source).success
        assert not source.exists()

    def test_missing_file(self, io: RetryingFileIO, tmp_path: Path) -> None:
        outcome = io.remove(tmp_path / "gone.d2s")
        assert not outcome.success
        assert outcome.error == "File not found: gone.d2s"
