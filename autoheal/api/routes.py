"""REST routes mounted under ``/api/v1``.

Handlers are thin: they translate HTTP to IncidentOrchestrator calls and
domain objects to response schemas. Domain errors propagate to the
exception handlers registered in ``autoheal.api.app``.
"""

from __future__ import annotations

from dataclasses import fields

from fastapi import APIRouter, Query, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from autoheal import __version__
from autoheal.api.schemas import (
    ActionResultResponse,
    AutomationStatusResponse,
    ErrorResponse,
    EscalationResponse,
    HealingEventResponse,
    HealingToggleRequest,
    HealthResponse,
    IncidentResponse,
    InjectIncidentRequest,
    InjectIncidentResponse,
    OperatorRequest,
    RuleCreateRequest,
    RuleResponse,
    RuleUpdateRequest,
    UnfreezeResponse,
)
from autoheal.classifier.signals import DriverSignals
from autoheal.models.incidents import IncidentStatus
from autoheal.orchestrator import IncidentOrchestrator

router = APIRouter()

_SIGNAL_FIELDS = frozenset(f.name for f in fields(DriverSignals))


def _orchestrator(request: Request) -> IncidentOrchestrator:
    return request.app.state.orchestrator


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    orch = _orchestrator(request)
    return HealthResponse(
        status="ok",
        version=__version__,
        cluster_id=request.app.state.cluster_id,
        detection_loop_running=orch.detection_loop.running,
        healing_loop_running=orch.healing_loop.running,
        automation_frozen=orch.escalation.is_frozen,
    )


@router.get("/metrics")
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# ---------------------------------------------------------------------------
# Incidents
# ---------------------------------------------------------------------------


@router.get("/incidents", response_model=list[IncidentResponse])
async def list_incidents(request: Request, status: IncidentStatus | None = None) -> list[IncidentResponse]:
    return [IncidentResponse.from_incident(i) for i in _orchestrator(request).list_incidents(status)]


@router.delete("/incidents", status_code=status.HTTP_204_NO_CONTENT)
async def clear_history(request: Request) -> Response:
    _orchestrator(request).clear_history()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/incidents/stats")
async def incident_stats(request: Request) -> dict:
    return _orchestrator(request).incident_stats()


@router.post("/incidents/inject", response_model=InjectIncidentResponse, status_code=status.HTTP_201_CREATED)
async def inject_incident(request: Request, body: InjectIncidentRequest) -> InjectIncidentResponse | JSONResponse:
    unknown = set(body.signals) - _SIGNAL_FIELDS
    if unknown:
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(
                error="INVALID_SIGNALS",
                detail=f"Unknown signal(s): {', '.join(sorted(unknown))}",
            ).model_dump(),
        )
    incident = _orchestrator(request).inject_incident(
        body.category,
        severity=body.severity,
        resource_name=body.resource_name,
        namespace=body.namespace,
        resource_kind=body.resource_kind,
        metrics=body.metrics,
        signals=DriverSignals(**body.signals) if body.signals else None,
        description=body.description,
    )
    if incident is None:
        return JSONResponse(
            status_code=200,
            content=InjectIncidentResponse(created=False, reason="duplicate suppressed").model_dump(mode="json"),
        )
    return InjectIncidentResponse(created=True, incident=IncidentResponse.from_incident(incident))


@router.get("/incidents/{incident_id}", response_model=IncidentResponse)
async def get_incident(request: Request, incident_id: str) -> IncidentResponse:
    return IncidentResponse.from_incident(_orchestrator(request).get_incident(incident_id))


@router.post("/incidents/{incident_id}/acknowledge", response_model=IncidentResponse)
async def acknowledge_incident(request: Request, incident_id: str) -> IncidentResponse:
    return IncidentResponse.from_incident(_orchestrator(request).acknowledge_incident(incident_id))


@router.post("/incidents/{incident_id}/resolve", response_model=IncidentResponse)
async def resolve_incident(request: Request, incident_id: str) -> IncidentResponse:
    return IncidentResponse.from_incident(_orchestrator(request).resolve_incident(incident_id))


@router.post("/incidents/{incident_id}/heal", response_model=ActionResultResponse)
async def manual_heal(request: Request, incident_id: str) -> ActionResultResponse:
    result = await _orchestrator(request).manual_heal(incident_id)
    return ActionResultResponse.from_result(result)


# ---------------------------------------------------------------------------
# Healing
# ---------------------------------------------------------------------------


@router.get("/healing/rules", response_model=list[RuleResponse])
async def list_rules(request: Request) -> list[RuleResponse]:
    return [RuleResponse.from_rule(r) for r in _orchestrator(request).list_rules()]


@router.post("/healing/rules", response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
async def create_rule(request: Request, body: RuleCreateRequest) -> RuleResponse:
    return RuleResponse.from_rule(_orchestrator(request).create_rule(**body.model_dump()))


@router.get("/healing/rules/{rule_id}", response_model=RuleResponse)
async def get_rule(request: Request, rule_id: str) -> RuleResponse:
    return RuleResponse.from_rule(_orchestrator(request).get_rule(rule_id))


@router.patch("/healing/rules/{rule_id}", response_model=RuleResponse)
async def update_rule(request: Request, rule_id: str, body: RuleUpdateRequest) -> RuleResponse:
    changes = body.model_dump(exclude_none=True)
    return RuleResponse.from_rule(_orchestrator(request).update_rule(rule_id, **changes))


@router.delete("/healing/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(request: Request, rule_id: str) -> Response:
    _orchestrator(request).delete_rule(rule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/healing/rules/{rule_id}/toggle", response_model=RuleResponse)
async def toggle_rule(request: Request, rule_id: str) -> RuleResponse:
    return RuleResponse.from_rule(_orchestrator(request).toggle_rule(rule_id))


@router.get("/healing/events", response_model=list[HealingEventResponse])
async def list_events(
    request: Request,
    limit: int | None = Query(default=None, ge=1, le=1000),
) -> list[HealingEventResponse]:
    return [HealingEventResponse.from_event(e) for e in _orchestrator(request).list_events(limit)]


@router.delete("/healing/events")
async def clear_events(request: Request) -> dict:
    return {"cleared": _orchestrator(request).clear_events()}


@router.get("/healing/status")
async def healing_status(request: Request) -> dict:
    return _orchestrator(request).healing_stats()


@router.post("/healing/toggle")
async def toggle_healing(request: Request, body: HealingToggleRequest) -> dict:
    return {"enabled": _orchestrator(request).set_auto_healing(body.enabled)}


# ---------------------------------------------------------------------------
# Escalation
# ---------------------------------------------------------------------------


@router.get("/escalations", response_model=list[EscalationResponse])
async def list_escalations(request: Request) -> list[EscalationResponse]:
    return [EscalationResponse.from_record(r) for r in _orchestrator(request).list_escalations()]


@router.get("/escalations/stats")
async def escalation_stats(request: Request) -> dict:
    return _orchestrator(request).escalation_stats()


@router.post("/escalations/{incident_id}/acknowledge", response_model=EscalationResponse)
async def acknowledge_escalation(request: Request, incident_id: str, body: OperatorRequest) -> EscalationResponse:
    return EscalationResponse.from_record(_orchestrator(request).acknowledge_escalation(incident_id, body.by))


@router.get("/automation", response_model=AutomationStatusResponse)
async def automation_status(request: Request) -> AutomationStatusResponse:
    return AutomationStatusResponse(**_orchestrator(request).automation_status())


@router.post("/automation/unfreeze", response_model=UnfreezeResponse)
async def unfreeze_automation(request: Request, body: OperatorRequest) -> UnfreezeResponse:
    orch = _orchestrator(request)
    unfrozen = orch.unfreeze_automation(body.by)
    return UnfreezeResponse(unfrozen=unfrozen, status=AutomationStatusResponse(**orch.automation_status()))
