"""FastAPI application factory for autoheal.

Usage::

    from autoheal.api.app import create_app

    app = create_app(orchestrator=orchestrator, config=config)

The factory is designed for use by both the production bootstrap
(``autoheal.app``) and unit tests.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from autoheal.api.routes import router
from autoheal.api.schemas import ErrorResponse
from autoheal.errors import (
    EscalationNotFoundError,
    IncidentNotFoundError,
    InvalidTransitionError,
    RuleNotFoundError,
    RuleValidationError,
    UnknownActionError,
)

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"

# exception type -> (HTTP status, error code)
_DOMAIN_ERRORS: dict[type[Exception], tuple[int, str]] = {
    IncidentNotFoundError: (404, "INCIDENT_NOT_FOUND"),
    RuleNotFoundError: (404, "RULE_NOT_FOUND"),
    EscalationNotFoundError: (404, "ESCALATION_NOT_FOUND"),
    InvalidTransitionError: (409, "INVALID_TRANSITION"),
    UnknownActionError: (400, "UNKNOWN_ACTION"),
    RuleValidationError: (400, "INVALID_RULE"),
}


def create_app(orchestrator: Any, config: Any = None) -> FastAPI:
    """Create and configure the autoheal FastAPI application.

    Args:
        orchestrator: IncidentOrchestrator instance.
        config:       AutohealConfig.  Used for cluster_id metadata.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from autoheal import __version__

    cluster_id: str = ""
    if config is not None and hasattr(config, "cluster_id"):
        cluster_id = config.cluster_id or ""

    app = FastAPI(
        title="autoheal",
        summary="Kubernetes incident lifecycle orchestrator",
        version=__version__,
        description=(
            "Detects incidents from cluster health signals, classifies their "
            "driver, dispatches guarded remediation and escalates to operators."
        ),
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
    )

    app.state.orchestrator = orchestrator
    app.state.config = config
    app.state.cluster_id = cluster_id

    app.include_router(router, prefix=_API_PREFIX)

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    async def domain_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        status_code, error_code = _DOMAIN_ERRORS[type(exc)]
        _log.info(
            "request_rejected",
            path=str(request.url.path),
            method=request.method,
            error=error_code,
        )
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(error=error_code, detail=str(exc)).model_dump(),
        )

    for exc_type in _DOMAIN_ERRORS:
        app.add_exception_handler(exc_type, domain_exception_handler)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        """Map Pydantic validation errors to our error envelope."""
        errors = exc.errors()
        detail = ""
        if errors:
            locs = errors[0].get("loc", ())
            field = ".".join(str(part) for part in locs[1:]) if len(locs) > 1 else ""
            msg = str(errors[0].get("msg", ""))
            detail = f"{field}: {msg}" if field else msg

        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="INVALID_REQUEST", detail=detail).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app
