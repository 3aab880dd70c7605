"""SignalSource protocol and an in-memory implementation."""

from __future__ import annotations

from typing import Protocol

from autoheal.models.snapshots import ClusterSnapshot


class SignalSource(Protocol):
    """Supplies one metrics snapshot per detection cycle.

    Implementations raise SignalSourceError when sampling fails; the
    detection loop then skips the cycle.
    """

    async def collect(self) -> ClusterSnapshot: ...


class StaticSignalSource:
    """Returns whatever snapshot was last set; empty until then."""

    def __init__(self, snapshot: ClusterSnapshot | None = None) -> None:
        self._snapshot = snapshot or ClusterSnapshot()
        self.collections = 0

    def set(self, snapshot: ClusterSnapshot) -> None:
        self._snapshot = snapshot

    async def collect(self) -> ClusterSnapshot:
        self.collections += 1
        return self._snapshot
