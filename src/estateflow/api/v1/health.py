"""Health check endpoints.

Provides liveness (/health) and readiness (/health/ready) checks. Readiness
performs one read against the configured document store.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from src.estateflow.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check. No external dependencies are checked."""
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


async def _check_dependencies(request: Request) -> dict:
    """Check document store connectivity. Returns check results dict."""
    settings = get_settings()
    checks: dict = {"store": "ok", "backend": settings.STORE_BACKEND.value}

    coordinator = getattr(request.app.state, "sync_coordinator", None)
    if coordinator is None:
        checks["store"] = "error"
        checks["store_error"] = "not initialized"
        return checks

    try:
        await coordinator.repository.store.get(f"{settings.SETTINGS_COLLECTION}/clipboard")
    except Exception as e:
        checks["store"] = "error"
        checks["store_error"] = str(e)

    return checks


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness check: 200 if the document store answers, 503 otherwise."""
    checks = await _check_dependencies(request)
    healthy = checks.get("store") == "ok"

    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if healthy else "degraded",
            "checks": checks,
        },
    )
