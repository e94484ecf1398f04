"""
FastAPI + Uvicorn ASGI application for Kubernetes deployment.

Runs the provisioner manager in a background thread and exposes probe
endpoints. Uvicorn handles SIGTERM; the lifespan shutdown sets the manager's
stop event and waits for it to drain.

  - /health   liveness: manager thread alive, no startup error
  - /ready    readiness: manager started
  - /info     metadata, including whether this replica is the leader
  - /reconcile  POST, enqueue the managed certificate for reconciliation

Entry point for production: uvicorn istiod_cert.asgi:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from istiod_cert import __version__
from istiod_cert.adapters.kube import create_api_client
from istiod_cert.config import AppSettings
from istiod_cert.domain.models import ReconcileTrigger
from istiod_cert.main import build_manager, configure_structlog
from istiod_cert.runtime.controller import Controller
from istiod_cert.runtime.manager import Manager

# ─────────────────────── Global State ───────────────────────
# Set during app startup and read by the probes.

_manager_thread: threading.Thread | None = None
_manager: Manager | None = None
_controller: Controller | None = None
_target: ReconcileTrigger | None = None
_stop = threading.Event()
_error_message: str | None = None
log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Startup: load settings, build the manager and run it in a background thread.
    Shutdown: set the stop event and join the manager thread.
    """
    global _manager_thread, _manager, _controller, _target, _error_message

    try:
        settings = AppSettings()
    except Exception as e:
        _error_message = f"Configuration error: {e}"
        log.error("asgi.startup_error", error=_error_message)
        raise

    configure_structlog(settings.log_level)
    log.info("asgi.startup", version=__version__, log_level=settings.log_level)

    api_client = create_api_client(settings.kubeconfig)
    if api_client.is_failure():
        _error_message = str(api_client.error())
        log.error("asgi.init_error", error=_error_message)
        raise RuntimeError(_error_message)

    _manager, _controller = build_manager(settings, api_client.value())
    _target = settings.provisioner_options().target
    _stop.clear()

    def run_manager() -> None:
        global _error_message
        try:
            _manager.start(_stop)  # type: ignore[union-attr]
        except Exception as e:
            _error_message = f"Manager error: {e}"
            log.error("asgi.manager_error", error=_error_message)

    _manager_thread = threading.Thread(target=run_manager, name="manager", daemon=True)
    _manager_thread.start()
    log.info("asgi.startup_complete")

    yield

    log.info("asgi.shutdown", reason="SIGTERM or server stop")
    _stop.set()
    _manager_thread.join(timeout=10.0)
    if _manager_thread.is_alive():
        log.warning("asgi.manager_thread_timeout", timeout_seconds=10.0)
    log.info("asgi.shutdown_complete")


# ─────────────────────── FastAPI Application ───────────────────────

app = FastAPI(
    title="istiod-cert-provisioner",
    description="Keeps the istiod cert-manager Certificate in line with the active issuer",
    version=__version__,
    lifespan=lifespan,
)


def _manager_running() -> bool:
    return _manager_thread is not None and _manager_thread.is_alive()


@app.get("/health")
async def health() -> JSONResponse:
    """Kubernetes liveness probe."""
    if _error_message:
        log.warning("health.check_failed", error=_error_message)
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "error": _error_message},
        )

    if not _manager_running():
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "reason": "manager thread not running"},
        )

    return JSONResponse(status_code=200, content={"status": "healthy", "manager_running": True})


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Kubernetes readiness probe.

    A replica waiting for leadership is ready: it is running its issuer
    watch and can take over at any time.
    """
    if _error_message:
        return JSONResponse(status_code=503, content={"status": "error", "error": _error_message})

    if _manager is None or not _manager.started:
        return JSONResponse(status_code=202, content={"status": "starting", "manager_started": False})

    return JSONResponse(
        status_code=200,
        content={"status": "ready", "manager_running": _manager_running(), "leading": _manager.leading},
    )


@app.get("/info")
async def info() -> dict[str, Any]:
    """Application metadata, for debugging."""
    return {
        "name": "istiod-cert-provisioner",
        "version": __version__,
        "certificate": str(_target) if _target else None,
        "manager_running": _manager_running(),
        "manager_started": _manager is not None and _manager.started,
        "leading": _manager is not None and _manager.leading,
        "has_error": _error_message is not None,
    }


@app.post("/reconcile")
async def reconcile() -> JSONResponse:
    """
    Enqueue the managed certificate for reconciliation.

    Returns 202 once queued; the reconcile itself runs on the controller
    thread and only on the leader. Returns 503 before startup completes.
    """
    if _controller is None or _target is None:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "reason": "Controller not initialized"},
        )

    log.info("reconcile.manual_trigger", source="REST", trigger=str(_target))
    _controller.enqueue(_target)
    return JSONResponse(
        status_code=202,
        content={
            "status": "queued",
            "certificate": str(_target),
            "leading": _manager is not None and _manager.leading,
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("istiod_cert.asgi:app", host="0.0.0.0", port=8000, reload=False, log_level="info")
