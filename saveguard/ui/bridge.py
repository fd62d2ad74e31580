"""Qt bridge: re-emits backup store events as Qt signals."""

from __future__ import annotations

from PySide6.QtCore import QObject, Signal

from saveguard.core.events import (
    BackupCompleted,
    BackupEvents,
    BackupFailed,
    BackupProgress,
    BackupStarted,
)


class BackupSignalBridge(QObject):
    """
    Forward store events to Qt.

    Store events fire on whichever thread ran the operation. Widgets connected
    to these signals get them through queued connections on the GUI thread.
    """

    started = Signal(str, str)  # file name, trigger
    completed = Signal(str, str)  # file name, trigger
    failed = Signal(str, str)  # file name, error
    progress = Signal(int, int, str)  # current, total, current file

    def __init__(self, events: BackupEvents, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._events = events
        events.subscribe(BackupStarted, self._on_started)
        events.subscribe(BackupCompleted, self._on_completed)
        events.subscribe(BackupFailed, self._on_failed)
        events.subscribe(BackupProgress, self._on_progress)

    def detach(self) -> None:
        """Stop forwarding events."""
        self._events.unsubscribe(BackupStarted, self._on_started)
        self._events.unsubscribe(BackupCompleted, self._on_completed)
        self._events.unsubscribe(BackupFailed, self._on_failed)
        self._events.unsubscribe(BackupProgress, self._on_progress)

    def _on_started(self, event: BackupStarted) -> None:
        self.started.emit(event.file_name, str(event.trigger))

    def _on_completed(self, event: BackupCompleted) -> None:
        self.completed.emit(event.file_name, str(event.trigger))

    def _on_failed(self, event: BackupFailed) -> None:
        self.failed.emit(event.file_name, event.error)

    def _on_progress(self, event: BackupProgress) -> None:
        self.progress.emit(event.current, event.total, event.current_file)
