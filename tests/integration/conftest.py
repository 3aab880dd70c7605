"""Shared fixtures for autoheal integration tests.

Provides a fully wired IncidentOrchestrator fed by a StaticSignalSource
and a recording executor, so integration tests can drive detection,
healing and escalation end to end without a cluster or Prometheus.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from autoheal.healing.actions import ActionRequest, ActionResult
from autoheal.models.config import AutohealConfig, DetectionConfig, HealingConfig
from autoheal.models.snapshots import ClusterSnapshot, NodeSample, PodSample
from autoheal.orchestrator import IncidentOrchestrator
from autoheal.signals import StaticSignalSource

# ---------------------------------------------------------------------------
# Snapshot factory helpers
# ---------------------------------------------------------------------------


def make_pod(name: str = "checkout-7b4f8c6d-x2kj", namespace: str = "shop", **fields) -> PodSample:
    """Create a PodSample with sensible defaults for testing."""
    return PodSample(name=name, namespace=namespace, deployment=name.rsplit("-", 2)[0], **fields)


def make_node(name: str = "worker-1", **fields) -> NodeSample:
    return NodeSample(name=name, **fields)


def make_snapshot(pods: list[PodSample] | None = None, nodes: list[NodeSample] | None = None) -> ClusterSnapshot:
    return ClusterSnapshot(nodes=nodes or [], pods=pods or [])


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class RecordingExecutor:
    """ActionExecutor double that records every request it receives."""

    def __init__(self, delay: float = 0.0, success: bool = True) -> None:
        self.delay = delay
        self.success = success
        self.requests: list[ActionRequest] = []

    async def execute(self, request: ActionRequest) -> ActionResult:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.success:
            return ActionResult(True, f"{request.action.value} applied to {request.resource.name}")
        return ActionResult(False, f"{request.action.value} rejected by the API server")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config() -> AutohealConfig:
    return AutohealConfig(
        cluster_id="integration",
        detection=DetectionConfig(interval_seconds=30, cooldown_seconds=300),
        healing=HealingConfig(interval_seconds=15, action_timeout_seconds=2.0, dry_run_latency_seconds=0),
    )


@pytest.fixture
def source() -> StaticSignalSource:
    return StaticSignalSource()


@pytest.fixture
def executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def dispatcher() -> MagicMock:
    dispatcher = MagicMock()
    dispatcher.drain = AsyncMock()
    return dispatcher


@pytest.fixture
def orchestrator(
    config: AutohealConfig,
    source: StaticSignalSource,
    executor: RecordingExecutor,
    dispatcher: MagicMock,
) -> IncidentOrchestrator:
    return IncidentOrchestrator(config=config, signal_source=source, executor=executor, dispatcher=dispatcher)
