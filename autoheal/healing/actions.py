"""Remediation action boundary.

The healing engine decides *which* action to run and *when*; the
ActionExecutor is the only component that touches infrastructure. The
bundled DryRunActionExecutor logs what would be done and reports success,
which is what a cluster without write credentials runs.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

from autoheal.errors import UnknownActionError
from autoheal.models.healing import ActionType
from autoheal.models.incidents import ResourceRef
from autoheal.observability.logging import get_logger

_log = get_logger("healing.executor")


def parse_action_type(value: str | ActionType) -> ActionType:
    """Return the ActionType for *value*.

    Raises:
        UnknownActionError: *value* is not one of the supported actions.
    """
    if isinstance(value, ActionType):
        return value
    try:
        return ActionType(value)
    except ValueError:
        raise UnknownActionError(str(value)) from None


@dataclass(frozen=True)
class ActionRequest:
    """Everything an executor needs to carry out one remediation."""

    action: ActionType
    incident_id: str
    resource: ResourceRef
    parameters: dict[str, Any] = field(default_factory=dict)
    max_retries: int = 3
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class ActionResult:
    """Outcome of one executed (or refused) action."""

    success: bool
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    duration_ms: int = 0


class ActionExecutor(Protocol):
    """Infrastructure side of a remediation.

    Implementations may block on I/O for as long as they like; the engine
    bounds every call with ``request.timeout_seconds``.
    """

    async def execute(self, request: ActionRequest) -> ActionResult: ...


class DryRunActionExecutor:
    """Simulates every action after a fixed latency and reports success."""

    def __init__(self, latency_seconds: float = 0.5) -> None:
        self._latency = latency_seconds

    async def execute(self, request: ActionRequest) -> ActionResult:
        started = time.monotonic()
        _log.info(
            "dry_run_action",
            action=request.action.value,
            incident_id=request.incident_id,
            resource=request.resource.key,
            parameters=request.parameters,
        )
        if self._latency > 0:
            await asyncio.sleep(self._latency)
        message = describe_action(request)
        return ActionResult(
            success=True,
            message=message,
            details={"dry_run": True, "action": request.action.value, **request.parameters},
            duration_ms=int((time.monotonic() - started) * 1000),
        )


def describe_action(request: ActionRequest) -> str:
    """One-line description of what *request* does to its resource."""
    params = request.parameters
    match request.action:
        case ActionType.RESTART_POD:
            grace = params.get("gracePeriodSeconds", 30)
            return f"Pod {request.resource.name} restarted with {grace}s grace period"
        case ActionType.SCALE_DEPLOYMENT:
            scale_by = int(params.get("scaleBy", 1))
            direction = "up" if scale_by > 0 else "down"
            return f"Deployment scaled {direction} by {abs(scale_by)} replicas"
        case ActionType.PATCH_MEMORY:
            increase = round((float(params.get("memoryIncreaseFactor", 1.5)) - 1) * 100)
            restarted = " and pod restarted" if params.get("restartAfterPatch") else ""
            return f"Memory limit increased by {increase}%{restarted}"
        case ActionType.PATCH_CPU:
            increase = round((float(params.get("cpuIncreaseFactor", 1.5)) - 1) * 100)
            return f"CPU limit increased by {increase}%"
        case ActionType.RETRY_IMAGE_PULL:
            retries = params.get("maxRetries", request.max_retries)
            backoff = params.get("backoffSeconds", 30)
            return f"Image pull retried (max {retries} attempts with {backoff}s backoff)"
        case ActionType.NO_ACTION:
            return "No action required - Kubernetes will handle automatically"
