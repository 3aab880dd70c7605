"""Application bootstrap for autoheal.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → notifications → signal source
              → orchestrator (store, detector, healing, escalation) → loops → REST

Shutdown is fully graceful: components are stopped in reverse startup order.
Each component's stop error is caught and logged independently so that a
single component failure does not prevent the rest from shutting down cleanly.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from autoheal.config import load_config
from autoheal.models.config import AutohealConfig
from autoheal.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from autoheal.notifications import NotificationDispatcher
    from autoheal.orchestrator import IncidentOrchestrator
    from autoheal.signals import SignalSource

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class AutohealApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started (or already
    stopped) is safe.
    """

    def __init__(self, config: AutohealConfig | None = None) -> None:
        self.config: AutohealConfig | None = config

        self._notifications: NotificationDispatcher | None = None
        self._signal_source: SignalSource | None = None
        self._orchestrator: IncidentOrchestrator | None = None
        self._rest_server: object | None = None

        # Background tasks that must be cancelled on shutdown
        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def orchestrator(self) -> IncidentOrchestrator | None:
        return self._orchestrator

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self, serve_api: bool = True) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        The caller (main()) re-raises this as a non-zero exit.
        """
        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("autoheal starting", version=_autoheal_version(), cluster_id=self.config.cluster_id)

        # --- 3. Notification dispatcher ---------------------------------
        await self._start_notifications()

        # --- 4. Signal source -------------------------------------------
        await self._start_signal_source()

        # --- 5. Orchestrator and control loops --------------------------
        await self._start_orchestrator()

        # --- 6. REST API ------------------------------------------------
        if serve_api:
            await self._start_rest()

        self._running = True
        self._log.info("autoheal started", port=self.config.api.port)

    # ------------------------------------------------------------------
    # Component startup helpers
    # ------------------------------------------------------------------

    async def _start_notifications(self) -> None:
        """Configure notification dispatcher channels."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting notifications")
        try:
            from autoheal.notifications import build_notification_dispatcher

            self._notifications = build_notification_dispatcher(config=self.config.notifications)
            self._log.info("notifications started", channels=len(self._notifications.channels))
        except Exception as exc:
            # Notification failure is non-fatal: alerts won't fire but healing works
            self._log.warning(
                "notification dispatcher failed to start; alerts will be suppressed",
                error=str(exc),
            )
            self._notifications = None

    async def _start_signal_source(self) -> None:
        """Build the Prometheus signal source."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting signal source")
        try:
            from autoheal.signals import PrometheusSignalSource

            self._signal_source = PrometheusSignalSource(
                url=self.config.signals.prometheus_url,
                timeout_seconds=self.config.signals.timeout_seconds,
            )
            self._log.info("signal source started", url=self.config.signals.prometheus_url)
        except Exception as exc:
            raise _ComponentError("signal_source", exc) from exc

    async def _start_orchestrator(self) -> None:
        """Build the orchestrator and start the detection and healing loops."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting orchestrator")
        try:
            from autoheal.orchestrator import IncidentOrchestrator

            orchestrator = IncidentOrchestrator(
                config=self.config,
                signal_source=self._signal_source,
                dispatcher=self._notifications,
            )
            orchestrator.start()
            self._orchestrator = orchestrator
            self._log.info(
                "orchestrator started",
                healing_enabled=self.config.healing.enabled,
                rules=len(orchestrator.list_rules()),
            )
        except Exception as exc:
            raise _ComponentError("orchestrator", exc) from exc

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server."""
        assert self._log is not None
        assert self.config is not None
        assert self._orchestrator is not None
        self._log.debug("starting rest api")
        try:
            import uvicorn

            from autoheal.api import build_app

            fastapi_app = build_app(orchestrator=self._orchestrator, config=self.config)
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order.

        Each component's stop is wrapped independently; a failure in one
        component's teardown does not prevent the others from stopping.
        """
        if not self._running and self._log is None:
            # Never started; nothing to do
            return

        log = self._log or get_logger("app")
        log.info("autoheal shutting down")

        self._running = False

        # Ask uvicorn to exit before cancelling so open requests can finish.
        if self._rest_server is not None:
            self._rest_server.should_exit = True  # type: ignore[attr-defined]

        for task in reversed(self._background_tasks):
            if not task.done():
                try:
                    await asyncio.wait_for(asyncio.shield(task), timeout=_SHUTDOWN_GRACE_SECONDS)
                except TimeoutError:
                    task.cancel()
                except Exception as exc:
                    log.error("background task raised during shutdown", task=task.get_name(), error=str(exc))

        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()
        self._rest_server = None

        await self._stop_component("orchestrator", self._orchestrator)
        self._orchestrator = None
        self._signal_source = None
        self._notifications = None

        log.info("autoheal stopped")
        self._log = None

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))


def _autoheal_version() -> str:
    from autoheal import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = AutohealApp()
    loop = asyncio.get_running_loop()

    shutdown_triggered = False

    def _request_shutdown() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            return
        shutdown_triggered = True
        asyncio.create_task(app.stop(), name="shutdown")

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        # Block until shutdown is triggered (loops and the REST server run concurrently)
        while app._running:
            await asyncio.sleep(1)
    except _ComponentError as exc:
        # A mandatory component failed; log and exit non-zero
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        # Ensure stop runs even if start raises or is interrupted
        if app._running:
            await app.stop()
