"""Retrying file I/O: copy, archive and extract despite transient sharing violations."""

from __future__ import annotations

import errno
import os
import shutil
import time
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from loguru import logger

MAX_ATTEMPTS = 3
RETRY_BASE_DELAY = 0.1  # seconds; doubled after every failed attempt
COPY_BUFFER_SIZE = 81920

# ERROR_SHARING_VIOLATION, ERROR_LOCK_VIOLATION
_WINDOWS_LOCK_ERRORS = (32, 33)
_POSIX_LOCK_ERRORS = (errno.EBUSY, errno.EAGAIN)

# Raised by zipfile while reading a damaged or unsupported archive
ARCHIVE_ERRORS = (zipfile.BadZipFile, zlib.error, RuntimeError, NotImplementedError)


@dataclass
class IOOutcome:
    """Definite result of a file operation."""

    success: bool
    error: str = ""


def is_sharing_violation(exc: BaseException) -> bool:
    """True when *exc* reports a file held open by another process."""
    if not isinstance(exc, OSError):
        return False
    if getattr(exc, "winerror", None) in _WINDOWS_LOCK_ERRORS:
        return True
    return exc.errno in _POSIX_LOCK_ERRORS


def _partial_path(destination: Path) -> Path:
    return destination.with_name(f".{destination.name}.partial")


class RetryingFileIO:
    """
    File operations with bounded retry and exponential backoff.

    Each write lands in a hidden ``.partial`` sibling and is moved over the
    destination with ``os.replace`` only once complete, so a failed operation
    never leaves a truncated destination behind and never clobbers an existing one.
    """

    def __init__(
        self,
        max_attempts: int = MAX_ATTEMPTS,
        base_delay: float = RETRY_BASE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._max_attempts = max(1, max_attempts)
        self._base_delay = base_delay
        self._sleep = sleep

    # ── Public operations ──

    def copy(self, source: Path, destination: Path) -> IOOutcome:
        """Copy *source* byte-for-byte to *destination*."""

        def write(partial: Path) -> None:
            with open(source, "rb") as src, open(partial, "wb") as dst:
                shutil.copyfileobj(src, dst, COPY_BUFFER_SIZE)

        return self._write_with_retry(write, destination, f"copy {source.name}")

    def compress_into(self, source: Path, archive_path: Path) -> IOOutcome:
        """Write *source* as the single entry of a new ZIP at *archive_path*."""

        def write(partial: Path) -> None:
            with zipfile.ZipFile(partial, "w", zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
                with open(source, "rb") as src, zf.open(source.name, "w") as entry:
                    shutil.copyfileobj(src, entry, COPY_BUFFER_SIZE)

        return self._write_with_retry(write, archive_path, f"compress {source.name}")

    def decompress_from(self, archive_path: Path, destination: Path) -> IOOutcome:
        """Extract the first (only expected) entry of *archive_path* to *destination*."""

        def write(partial: Path) -> None:
            with zipfile.ZipFile(archive_path, "r") as zf:
                entries = zf.infolist()
                if not entries:
                    raise _ArchiveEmptyError(f"Archive has no entries: {archive_path.name}")
                with zf.open(entries[0], "r") as entry, open(partial, "wb") as dst:
                    shutil.copyfileobj(entry, dst, COPY_BUFFER_SIZE)

        return self._write_with_retry(write, destination, f"extract {archive_path.name}")

    def remove(self, path: Path) -> IOOutcome:
        """Delete *path*. Fails with an error when the file does not exist."""
        for attempt in range(self._max_attempts):
            try:
                path.unlink()
                return IOOutcome(True)
            except FileNotFoundError:
                return IOOutcome(False, f"File not found: {path.name}")
            except OSError as e:
                if not self._should_retry(e, attempt, f"remove {path.name}"):
                    return IOOutcome(False, str(e))
        return IOOutcome(False, f"File is locked: {path.name}")

    # ── Retry loop ──

    def _write_with_retry(
        self,
        write: Callable[[Path], None],
        destination: Path,
        description: str,
    ) -> IOOutcome:
        partial = _partial_path(destination)
        error = ""
        for attempt in range(self._max_attempts):
            try:
                write(partial)
                os.replace(partial, destination)
                return IOOutcome(True)
            except _ArchiveEmptyError as e:
                error = str(e)
                break
            except ARCHIVE_ERRORS as e:
                error = f"Corrupt archive: {e}"
                break
            except OSError as e:
                error = str(e)
                self._discard(partial)
                if not self._should_retry(e, attempt, description):
                    break

        self._discard(partial)
        logger.warning(f"Failed to {description}: {error}")
        return IOOutcome(False, error)

    def _should_retry(self, exc: OSError, attempt: int, description: str) -> bool:
        if not is_sharing_violation(exc) or attempt >= self._max_attempts - 1:
            return False
        delay = self._base_delay * (2**attempt)
        logger.debug(
            f"{description}: file locked (attempt {attempt + 1}/{self._max_attempts}), "
            f"retrying in {delay * 1000:.0f} ms"
        )
        self._sleep(delay)
        return True

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to remove partial file {path.name}: {e}")


class _ArchiveEmptyError(Exception):
    """Archive opened fine but holds no entries."""
