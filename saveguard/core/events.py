"""Backup lifecycle events and the synchronous channel that delivers them."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from loguru import logger

from saveguard.models.backup_record import BackupTrigger


@dataclass(frozen=True)
class BackupStarted:
    file_name: str
    trigger: BackupTrigger


@dataclass(frozen=True)
class BackupCompleted:
    file_name: str
    trigger: BackupTrigger


@dataclass(frozen=True)
class BackupFailed:
    file_name: str
    error: str


@dataclass(frozen=True)
class BackupProgress:
    current: int
    total: int
    current_file: str


E = TypeVar("E")
Handler = Callable[[Any], None]


class BackupEvents:
    """
    Publish/subscribe channel keyed by event class.

    Handlers run synchronously on the emitting thread; receivers that own
    an event loop (e.g. a GUI) must marshal to their own thread.
    """

    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        with self._lock:
            handlers = self._handlers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)

    def unsubscribe(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type)
            if handlers and handler in handlers:
                handlers.remove(handler)

    def emit(self, event: object) -> None:
        with self._lock:
            handlers = list(self._handlers.get(type(event), []))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(f"Event handler {handler!r} failed for {event!r}")
