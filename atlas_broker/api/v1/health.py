"""
Health check endpoints for monitoring and orchestration.
Provides liveness and readiness probes.
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from atlas_broker.config.database import Database
from atlas_broker.config.settings import settings

router = APIRouter()


@router.get("/")
async def health_check():
    """
    Basic health check endpoint.
    Returns current status and version.
    """
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/live")
async def liveness():
    """
    Kubernetes liveness probe.
    Indicates whether the application should be restarted.
    """
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/ready")
async def readiness(request: Request):
    """
    Kubernetes readiness probe.
    Ready once the catalog is built and, for the MongoDB backend, the
    instance store answers a ping.
    """
    catalog = getattr(request.app.state, "catalog", None)
    catalog_ready = catalog is not None

    if settings.state_backend == "mongodb":
        store_healthy = await Database.ping()
    else:
        store_healthy = True

    content = {
        "status": "ready" if catalog_ready and store_healthy else "not_ready",
        "catalog": "loaded" if catalog_ready else "missing",
        "plans": len(catalog.plans) if catalog_ready else 0,
        "instance_store": "healthy" if store_healthy else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if not catalog_ready or not store_healthy:
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=content)

    return content
