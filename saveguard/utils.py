"""Shared utility functions."""

from __future__ import annotations

import os
import platform
from pathlib import Path

MAX_DIRECTORY_PATH_LENGTH = 248


def format_size(size_bytes: int) -> str:
    """Format byte count to human-readable string."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.2f} GB"


def _forbidden_directories() -> list[Path]:
    """System directories a backup folder must never live in."""
    if platform.system() == "Windows":
        system_root = Path(os.environ.get("SystemRoot", r"C:\Windows"))
        return [
            system_root,
            Path(os.environ.get("ProgramFiles", r"C:\Program Files")),
            Path(os.environ.get("ProgramFiles(x86)", r"C:\Program Files (x86)")),
            Path(r"C:\ProgramData\Microsoft"),
        ]
    return [Path(p) for p in ("/bin", "/boot", "/dev", "/etc", "/proc", "/sbin", "/sys", "/usr")]


def validate_directory_path(path: str | Path | None) -> str | None:
    """
    Check that *path* is usable as a backup directory.

    Returns an error message, or None when the path is acceptable.
    """
    raw = str(path) if path is not None else ""
    if not raw.strip():
        return "Path is empty"
    if "\x00" in raw:
        return "Path contains invalid characters"
    if raw.startswith(("\\\\", "//")):
        return "Network paths are not supported"

    full = Path(os.path.abspath(raw))
    if len(str(full)) > MAX_DIRECTORY_PATH_LENGTH:
        return "Path is too long"

    for forbidden in _forbidden_directories():
        if full == forbidden or forbidden in full.parents:
            return f"System directories cannot be used: {forbidden}"
    return None
