"""Per-key detection cooldowns.

A key is active while less than ``window_seconds`` have elapsed since it
was last set. State is held in-process; restarting autoheal resets all
cooldowns.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

import structlog

_log = structlog.get_logger(component="detector.cooldown")


class CooldownTracker:
    """Suppresses repeated detections for the same ``resource:category`` key."""

    def __init__(
        self,
        window_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = window_seconds
        self._clock = clock
        self._last_set: dict[str, float] = {}
        self._lock = threading.Lock()

    @property
    def window_seconds(self) -> float:
        return self._window

    def is_active(self, key: str) -> bool:
        """Return True if *key* was set less than one window ago."""
        with self._lock:
            return self._remaining_locked(key) > 0

    def remaining(self, key: str) -> float:
        """Seconds until *key* stops suppressing detections (0 when inactive)."""
        with self._lock:
            return self._remaining_locked(key)

    def set(self, key: str) -> None:
        """Record "now" as the last time *key* produced an incident."""
        with self._lock:
            self._evict_expired_locked()
            self._last_set[key] = self._clock()

    def try_acquire(self, key: str) -> bool:
        """Atomically set *key* unless it is already active.

        Returns True when the caller now owns the window for *key*.
        """
        with self._lock:
            self._evict_expired_locked()
            if self._remaining_locked(key) > 0:
                return False
            self._last_set[key] = self._clock()
            return True

    def clear(self) -> None:
        with self._lock:
            self._last_set.clear()
        _log.info("cooldowns_cleared")

    def __len__(self) -> int:
        """Number of keys currently tracked."""
        with self._lock:
            return len(self._last_set)

    def _evict_expired_locked(self) -> None:
        """Drop every key whose window has elapsed."""
        cutoff = self._clock() - self._window
        expired = [k for k, last in self._last_set.items() if last <= cutoff]
        for key in expired:
            del self._last_set[key]

    def _remaining_locked(self, key: str) -> float:
        last = self._last_set.get(key)
        if last is None:
            return 0.0
        elapsed = self._clock() - last
        if elapsed < self._window:
            return self._window - elapsed
        return 0.0
