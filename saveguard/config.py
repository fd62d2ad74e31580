"""Application configuration: JSON-based, with file locking and batch update support."""

from __future__ import annotations

import json
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from loguru import logger

from saveguard.models.save_file import PeriodicBackupScope

_instance: "Config | None" = None

# Default data directory
_DEFAULT_DATA_DIR = Path.home() / "Documents" / "D2RSaveGuard"

# Accepted ranges for numeric backup settings
MAX_BACKUPS_RANGE = (1, 100)
COOLDOWN_SECONDS_RANGE = (10, 300)
PERIODIC_INTERVAL_RANGE = (5, 240)


def get_config() -> Config:
    """Module-level factory: single global Config instance."""
    global _instance
    if _instance is None:
        _instance = Config()
    return _instance


def reset_config() -> None:
    """Reset the global config instance (for testing)."""
    global _instance
    _instance = None


def _clamp(value: Any, bounds: tuple[int, int], default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    low, high = bounds
    return max(low, min(high, number))


class Config:
    """JSON-based application configuration with file locking."""

    _DEFAULTS: dict[str, Any] = {
        "save_path": "",
        "backup": {
            "enable_compression": True,
            "max_backups_per_file": 10,
            "backup_cooldown_seconds": 60,
            "custom_backup_path": "",
            "auto_backup_on_danger": True,
            "periodic_backup_enabled": False,
            "periodic_scope": PeriodicBackupScope.ENTIRE_RANGE.value,
            "periodic_interval_minutes": 30,
        },
    }

    def __init__(self, config_dir: Path | None = None) -> None:
        self._data: dict[str, Any] = {}
        self._dir = config_dir or _DEFAULT_DATA_DIR
        self._path = self._dir / "config.json"
        self._lock = threading.Lock()
        self._defer_save = False
        self._load()

    def _load(self) -> None:
        """Load config from disk, merging with defaults."""
        self._data = json.loads(json.dumps(self._DEFAULTS))  # deep copy defaults
        if self._path.exists():
            try:
                with open(self._path, encoding="utf-8") as f:
                    user_data = json.load(f)
                if isinstance(user_data, dict):
                    self._deep_merge(self._data, user_data)
                else:
                    logger.warning("Ignoring config file: top level is not an object")
            except (json.JSONDecodeError, OSError) as e:
                logger.warning(f"Failed to load config, using defaults: {e}")

    def _deep_merge(self, base: dict, override: dict) -> None:
        """Recursively merge override into base."""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def _save(self) -> None:
        """Persist config to disk with file locking."""
        if self._defer_save:
            return
        with self._lock:
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(".tmp")
            try:
                with open(tmp_path, "w", encoding="utf-8") as f:
                    json.dump(self._data, f, ensure_ascii=False, indent=2)
                tmp_path.replace(self._path)
            except OSError as e:
                logger.error(f"Failed to save config: {e}")
                if tmp_path.exists():
                    tmp_path.unlink(missing_ok=True)

    @contextmanager
    def batch_update(self) -> Iterator[None]:
        """Context manager for batching multiple config changes into a single write."""
        self._defer_save = True
        try:
            yield
        finally:
            self._defer_save = False
            self._save()

    # ── Generic access ──

    def get(self, key: str, default: Any = None) -> Any:
        """Get a config value by dot-separated key path."""
        parts = key.split(".")
        node = self._data
        for part in parts:
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node

    def set(self, key: str, value: Any) -> None:
        """Set a config value by dot-separated key path."""
        parts = key.split(".")
        node = self._data
        for part in parts[:-1]:
            if part not in node or not isinstance(node[part], dict):
                node[part] = {}
            node = node[part]
        node[parts[-1]] = value
        self._save()

    # ── Typed properties ──

    @property
    def data_dir(self) -> Path:
        return self._dir

    @property
    def save_path(self) -> Path | None:
        raw = self._data.get("save_path", "")
        return Path(raw) if raw else None

    @save_path.setter
    def save_path(self, value: Path | None) -> None:
        self.set("save_path", str(value) if value else "")

    @property
    def enable_compression(self) -> bool:
        return bool(self.get("backup.enable_compression", True))

    @enable_compression.setter
    def enable_compression(self, value: bool) -> None:
        self.set("backup.enable_compression", bool(value))

    @property
    def max_backups_per_file(self) -> int:
        return _clamp(self.get("backup.max_backups_per_file"), MAX_BACKUPS_RANGE, 10)

    @max_backups_per_file.setter
    def max_backups_per_file(self, value: int) -> None:
        self.set("backup.max_backups_per_file", _clamp(value, MAX_BACKUPS_RANGE, 10))

    @property
    def backup_cooldown_seconds(self) -> int:
        return _clamp(self.get("backup.backup_cooldown_seconds"), COOLDOWN_SECONDS_RANGE, 60)

    @backup_cooldown_seconds.setter
    def backup_cooldown_seconds(self, value: int) -> None:
        self.set("backup.backup_cooldown_seconds", _clamp(value, COOLDOWN_SECONDS_RANGE, 60))

    @property
    def custom_backup_path(self) -> Path | None:
        raw = self.get("backup.custom_backup_path", "")
        return Path(raw) if raw else None

    @custom_backup_path.setter
    def custom_backup_path(self, value: Path | None) -> None:
        self.set("backup.custom_backup_path", str(value) if value else "")

    @property
    def auto_backup_on_danger(self) -> bool:
        return bool(self.get("backup.auto_backup_on_danger", True))

    @auto_backup_on_danger.setter
    def auto_backup_on_danger(self, value: bool) -> None:
        self.set("backup.auto_backup_on_danger", bool(value))

    @property
    def periodic_backup_enabled(self) -> bool:
        return bool(self.get("backup.periodic_backup_enabled", False))

    @periodic_backup_enabled.setter
    def periodic_backup_enabled(self, value: bool) -> None:
        self.set("backup.periodic_backup_enabled", bool(value))

    @property
    def periodic_scope(self) -> PeriodicBackupScope:
        raw = self.get("backup.periodic_scope", PeriodicBackupScope.ENTIRE_RANGE.value)
        try:
            return PeriodicBackupScope(raw)
        except ValueError:
            return PeriodicBackupScope.ENTIRE_RANGE

    @periodic_scope.setter
    def periodic_scope(self, value: PeriodicBackupScope) -> None:
        self.set("backup.periodic_scope", PeriodicBackupScope(value).value)

    @property
    def periodic_interval_minutes(self) -> int:
        return _clamp(self.get("backup.periodic_interval_minutes"), PERIODIC_INTERVAL_RANGE, 30)

    @periodic_interval_minutes.setter
    def periodic_interval_minutes(self, value: int) -> None:
        self.set("backup.periodic_interval_minutes", _clamp(value, PERIODIC_INTERVAL_RANGE, 30))
