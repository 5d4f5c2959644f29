"""Health check API endpoints for monitoring and load balancer integration."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request

logger = logging.getLogger(__name__)

# Create the FastAPI router
router = APIRouter()


def _get_service(request: Request):
    return getattr(request.app.state, "service", None)


@router.get("/health")
def basic_health_check(request: Request) -> Dict[str, Any]:
    """Basic health check that returns system status."""
    service = _get_service(request)
    monitor = service.monitor if service is not None else None

    return {
        "status": "healthy",
        "message": "Service is operational",
        "monitoring": bool(monitor and monitor.is_running),
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/health/live")
def liveness_probe() -> Dict[str, Any]:
    """Kubernetes liveness probe."""
    return {
        "status": "alive",
        "message": "Application is responsive"
    }


@router.get("/health/ready")
def readiness_probe(request: Request) -> Dict[str, Any]:
    """Kubernetes readiness probe; ready once the pipeline is initialized."""
    service = _get_service(request)
    if service is None or not service.is_initialized:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")

    return {
        "status": "ready",
        "message": "Pipeline is initialized"
    }


@router.get("/health/stats")
def pipeline_stats(request: Request) -> Dict[str, Any]:
    """Counters from the monitor, executor, nonce tracker and relay client."""
    service = _get_service(request)
    if service is None:
        raise HTTPException(status_code=503, detail="Service not attached")

    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **service.get_status()
    }
