"""Periodic background loops.

A PeriodicLoop calls an async ``tick`` every ``interval`` seconds on its own
asyncio task. Tick errors are logged and the loop carries on. ``stop()``
wakes the loop, lets the current tick finish and only cancels it when the
grace period runs out.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from autoheal.observability.logging import get_logger

_log = get_logger("scheduler")

Tick = Callable[[], Awaitable[Any]]


class PeriodicLoop:
    """Runs *tick* every *interval* seconds until stopped."""

    def __init__(self, name: str, interval: float, tick: Tick) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self._tick = tick
        self._task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop on the running event loop. No-op if already running."""
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(self._stop_event), name=f"loop-{self.name}")
        _log.info("loop_started", loop=self.name, interval=self.interval)

    async def stop(self, grace_seconds: float = 15.0) -> None:
        """Stop the loop. Safe to call repeatedly and before ``start``."""
        task = self._task
        if task is None:
            return
        self._task = None
        if self._stop_event is not None:
            self._stop_event.set()
        if not task.done():
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=grace_seconds)
            except TimeoutError:
                _log.warning("loop_stop_timed_out", loop=self.name, timeout=grace_seconds)
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        _log.info("loop_stopped", loop=self.name, ticks=self.ticks)

    async def run_once(self) -> Any:
        """Run a single tick inline, with the same error isolation as the loop."""
        self.ticks += 1
        try:
            return await self._tick()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            _log.error("loop_tick_failed", loop=self.name, error=str(exc), exc_info=True)
            return None

    async def _run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except TimeoutError:
                continue
