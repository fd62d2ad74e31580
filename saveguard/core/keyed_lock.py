"""Keyed lock registry: one mutex per save file, created on demand, reclaimed when idle."""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator

from loguru import logger

IDLE_TIMEOUT = 3600.0  # seconds without activity before an unheld lock is dropped
SWEEP_INTERVAL = 300.0  # minimum seconds between opportunistic sweeps


@dataclass
class _LockEntry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0  # acquired or waiting
    last_used: float = 0.0


class KeyedLock:
    """
    Registry of per-key exclusive locks.

    The registry itself is guarded by one coarse lock that is only held for
    insert/evict bookkeeping; the per-key locks guard the actual critical
    sections, so unrelated keys never wait on each other.
    """

    def __init__(
        self,
        idle_timeout: float = IDLE_TIMEOUT,
        sweep_interval: float = SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._idle_timeout = idle_timeout
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._registry_lock = threading.Lock()
        self._entries: dict[str, _LockEntry] = {}
        self._last_sweep = clock()

    @contextmanager
    def acquire(self, key: str) -> Iterator[None]:
        """Hold the lock for *key* for the duration of the ``with`` block."""
        with self._registry_lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = _LockEntry()
                self._entries[key] = entry
            entry.holders += 1
            entry.last_used = self._clock()

        try:
            entry.lock.acquire()
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            with self._registry_lock:
                entry.holders -= 1
                entry.last_used = self._clock()

    def reclaim_idle(self) -> int:
        """Drop every unheld lock idle for longer than the timeout. Returns count removed."""
        now = self._clock()
        with self._registry_lock:
            stale = [
                key
                for key, entry in self._entries.items()
                if entry.holders == 0 and now - entry.last_used >= self._idle_timeout
            ]
            for key in stale:
                del self._entries[key]
            self._last_sweep = now

        if stale:
            logger.debug(f"Reclaimed {len(stale)} idle lock(s)")
        return len(stale)

    def maybe_reclaim(self) -> int:
        """Run :meth:`reclaim_idle` if the sweep interval has elapsed."""
        if self._clock() - self._last_sweep < self._sweep_interval:
            return 0
        return self.reclaim_idle()

    def is_held(self, key: str) -> bool:
        with self._registry_lock:
            entry = self._entries.get(key)
            return entry is not None and entry.lock.locked()

    def __contains__(self, key: str) -> bool:
        with self._registry_lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._entries)
