"""
Health and Readiness Endpoints

Kubernetes-compatible health probes for load balancers and orchestration.
"""
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from loguru import logger

from venuebot.repositories import db_manager
from venuebot.utils.log_sanitizer import describe_exception

router = APIRouter(tags=["Health"])

# API version - single source of truth
API_VERSION = "0.4.0"


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint.

    Returns 200 if service is running.
    """
    return {
        "status": "healthy",
        "service": "venuebot",
        "version": API_VERSION
    }


@router.get("/ready")
async def readiness_check(request: Request):
    """
    Readiness probe - checks if service can accept updates.

    Verifies:
    - The ingestion pipeline is initialized
    - MongoDB answers a ping

    Returns 200 if ready, 503 if not ready.
    """
    if getattr(request.app.state, "ingestor", None) is None:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": "Pipeline not initialized"}
        )

    try:
        await db_manager.ping()
    except Exception as e:
        logger.error(f"Readiness check failed: {describe_exception(e)}")
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": "MongoDB unavailable"}
        )

    return {
        "status": "ready",
        "mongodb": "connected",
        "workers": {
            "inbound": _worker_state(request, "inbound_worker"),
            "outbox": _worker_state(request, "outbox_worker"),
        }
    }


def _worker_state(request: Request, name: str) -> str:
    worker = getattr(request.app.state, name, None)
    if worker is None:
        return "disabled"
    return "running" if worker.running else "stopped"
