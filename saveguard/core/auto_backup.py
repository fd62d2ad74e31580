"""Automatic backups: danger-threshold and periodic backups run on a small worker pool."""

from __future__ import annotations

import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from loguru import logger

from saveguard.core.events import BackupFailed
from saveguard.core.scanner import scan_save_files, select_for_periodic
from saveguard.models.backup_record import BackupResult, BackupTrigger
from saveguard.models.save_file import DANGER_THRESHOLD, is_save_file

if TYPE_CHECKING:
    from saveguard.config import Config
    from saveguard.core.backup import BackupStore


class AutoBackupService:
    """
    Runs automatic backups off the caller's thread.

    The file monitor calls :meth:`on_files_changed` with debounced paths; every
    accepted backup becomes a :class:`Future` so callers and tests can wait on
    it. Failures that escape the store are logged and re-emitted as
    ``BackupFailed`` on the store's event channel.
    """

    def __init__(
        self,
        store: BackupStore,
        config: Config,
        save_dir: Path | None,
        max_workers: int = 2,
    ) -> None:
        self._store = store
        self._config = config
        self._save_dir = Path(save_dir) if save_dir else None
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="auto-backup")
        self._pending: dict[str, Future[BackupResult]] = {}
        self._pending_lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._timer_lock = threading.Lock()

    # ── Danger threshold ──

    def on_files_changed(self, paths: Iterable[str | Path]) -> list[Future[BackupResult]]:
        """Queue a backup for every changed save file at or above the danger threshold."""
        if not self._config.auto_backup_on_danger:
            return []

        futures: list[Future[BackupResult]] = []
        for raw in paths:
            path = Path(raw)
            if not is_save_file(path.name):
                continue
            try:
                size = path.stat().st_size
            except OSError:
                continue  # deleted or renamed away
            if size < DANGER_THRESHOLD:
                continue
            if not self._store.can_create(path, BackupTrigger.DANGER_THRESHOLD):
                logger.debug(f"Skipping {path.name}: backup cooldown active")
                continue
            futures.append(self.submit(path, BackupTrigger.DANGER_THRESHOLD))
        return futures

    def submit(self, path: str | Path, trigger: BackupTrigger) -> Future[BackupResult]:
        """
        Run ``store.create(path, trigger)`` on the pool.

        While a backup of *path* is still queued or running, the same future is returned.
        """
        path = Path(path)
        key = os.path.normcase(os.path.abspath(path))
        with self._pending_lock:
            existing = self._pending.get(key)
            if existing is not None:
                return existing
            future = self._executor.submit(self._run_create, path, trigger)
            self._pending[key] = future
        future.add_done_callback(partial(self._forget, key))
        return future

    def _forget(self, key: str, future: Future[BackupResult]) -> None:
        with self._pending_lock:
            if self._pending.get(key) is future:
                del self._pending[key]

    def _run_create(self, path: Path, trigger: BackupTrigger) -> BackupResult:
        try:
            return self._store.create(path, trigger)
        except Exception as e:
            logger.exception(f"Automatic backup of {path.name} failed unexpectedly")
            self._store.events.emit(BackupFailed(path.name, str(e)))
            return BackupResult(success=False, error=str(e))

    # ── Periodic ──

    def run_periodic_pass(self) -> list[BackupResult]:
        """Back up every save in the configured scope whose cooldown has expired."""
        trigger = BackupTrigger.PERIODIC_AUTOMATIC
        candidates = select_for_periodic(scan_save_files(self._save_dir), self._config.periodic_scope)
        paths = [s.path for s in candidates if self._store.can_create(s.path, trigger)]
        if not paths:
            logger.debug("Periodic backup: nothing to do")
            return []
        logger.info(f"Periodic backup: {len(paths)} file(s)")
        return self._store.create_bulk(paths, trigger)

    def submit_periodic_pass(self) -> Future[list[BackupResult]]:
        return self._executor.submit(self._safe_periodic_pass)

    def _safe_periodic_pass(self) -> list[BackupResult]:
        try:
            return self.run_periodic_pass()
        except Exception:
            logger.exception("Periodic backup failed")
            return []

    def start_periodic(self) -> bool:
        """Start the periodic timer if enabled in config. Returns whether it runs."""
        if not self._config.periodic_backup_enabled:
            logger.info("Periodic backup disabled")
            return False
        self.stop_periodic()
        self._schedule_next()
        logger.info(f"Periodic backup every {self._config.periodic_interval_minutes} min")
        return True

    def stop_periodic(self) -> None:
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    @property
    def periodic_running(self) -> bool:
        with self._timer_lock:
            return self._timer is not None

    def _schedule_next(self, fired: threading.Timer | None = None) -> None:
        """Arm the next tick. With *fired*, only while that timer is still the current one."""
        with self._timer_lock:
            if fired is not None and self._timer is not fired:
                return  # stopped or restarted meanwhile
            interval = self._config.periodic_interval_minutes * 60
            self._timer = threading.Timer(interval, self._on_timer)
            self._timer.daemon = True
            self._timer.start()

    def _on_timer(self) -> None:
        with self._timer_lock:
            fired = self._timer
        if fired is None:
            return
        try:
            self.submit_periodic_pass()
        except RuntimeError:
            logger.debug("Periodic backup skipped: worker pool is shut down")
            return
        self._schedule_next(fired)

    def shutdown(self, wait: bool = True) -> None:
        self.stop_periodic()
        self._executor.shutdown(wait=wait)
