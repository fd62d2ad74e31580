"""Tests for the backup event channel and its Qt bridge."""

from __future__ import annotations

import pytest

from saveguard.core.events import (
    BackupCompleted,
    BackupEvents,
    BackupFailed,
    BackupProgress,
    BackupStarted,
)
from saveguard.models.backup_record import BackupTrigger


class TestBackupEvents:
    def test_delivers_by_type(self) -> None:
        events = BackupEvents()
        started: list[BackupStarted] = []
        failed: list[BackupFailed] = []
        events.subscribe(BackupStarted, started.append)
        events.subscribe(BackupFailed, failed.append)

        events.emit(BackupStarted("Amazon.d2s", BackupTrigger.MANUAL_SINGLE))
        assert started == [BackupStarted("Amazon.d2s", BackupTrigger.MANUAL_SINGLE)]
        assert failed == []

    def test_subscribe_is_idempotent(self) -> None:
        events = BackupEvents()
        seen: list[object] = []
        events.subscribe(BackupProgress, seen.append)
        events.subscribe(BackupProgress, seen.append)
        events.emit(BackupProgress(1, 1, "Amazon.d2s"))
        assert len(seen) == 1

    def test_unsubscribe(self) -> None:
        events = BackupEvents()
        seen: list[object] = []
        events.subscribe(BackupCompleted, seen.append)
        events.unsubscribe(BackupCompleted, seen.append)
        events.unsubscribe(BackupCompleted, seen.append)
        events.emit(BackupCompleted("Amazon.d2s", BackupTrigger.MANUAL_SINGLE))
        assert seen == []

    def test_failing_handler_does_not_stop_others(self) -> None:
        events = BackupEvents()
        seen: list[object] = []

        def broken(_event: object) -> None:
            raise RuntimeError("handler bug")

        events.subscribe(BackupFailed, broken)
        events.subscribe(BackupFailed, seen.append)
        events.emit(BackupFailed("Amazon.d2s", "boom"))
        assert seen == [BackupFailed("Amazon.d2s", "boom")]


class TestSignalBridge:
    def test_forwards_events_as_signals(self) -> None:
        pytest.importorskip("PySide6")
        from PySide6.QtCore import QCoreApplication

        from saveguard.ui.bridge import BackupSignalBridge

        _app = QCoreApplication.instance() or QCoreApplication([])
        events = BackupEvents()
        bridge = BackupSignalBridge(events)
        received: list[tuple] = []
        bridge.started.connect(lambda name, trigger: received.append(("started", name, trigger)))
        bridge.failed.connect(lambda name, error: received.append(("failed", name, error)))
        bridge.progress.connect(lambda cur, total, name: received.append(("progress", cur, total, name)))

        events.emit(BackupStarted("Amazon.d2s", BackupTrigger.DANGER_THRESHOLD))
        events.emit(BackupProgress(2, 5, "Sorc.d2s"))
        events.emit(BackupFailed("Amazon.d2s", "locked"))

        assert received == [
            ("started", "Amazon.d2s", "danger_threshold"),
            ("progress", 2, 5, "Sorc.d2s"),
            ("failed", "Amazon.d2s", "locked"),
        ]

        bridge.detach()
        events.emit(BackupStarted("Amazon.d2s", BackupTrigger.MANUAL_SINGLE))
        assert len(received) == 3
