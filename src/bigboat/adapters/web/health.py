"""Health check endpoints for web adapter."""

import time

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from bigboat import __version__
from bigboat.config.deployment import HealthChecker
from bigboat.utils.telemetry import get_logger

logger = get_logger(__name__)


def create_health_router(
    health_checker: HealthChecker, environment: str = "development"
) -> APIRouter:
    """Create health check router.

    Args:
        health_checker: Checker probing the store, scheduler and memory
        environment: Deployment environment reported to callers
    """
    router = APIRouter(tags=["health"])

    @router.get("/health")
    async def health_check() -> JSONResponse:
        """Comprehensive health check endpoint."""
        try:
            status_result = await health_checker.check_health()
        except Exception as e:
            logger.error("Health check failed", error=str(e))
            return JSONResponse(
                content={
                    "status": "unhealthy",
                    "timestamp": time.time(),
                    "error": str(e),
                    "checks": {},
                },
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            )

        response_data = {
            "status": "healthy" if status_result.healthy else "unhealthy",
            "timestamp": status_result.timestamp,
            "response_time_ms": status_result.response_time_ms,
            "checks": status_result.checks,
            "version": __version__,
            "environment": environment,
        }
        status_code = (
            status.HTTP_200_OK
            if status_result.healthy
            else status.HTTP_503_SERVICE_UNAVAILABLE
        )
        return JSONResponse(content=response_data, status_code=status_code)

    @router.get("/ready")
    async def readiness_check() -> JSONResponse:
        """Readiness: the store answers and snapshots are being reconciled."""
        try:
            status_result = await health_checker.check_health()
        except Exception as e:
            logger.error("Readiness check failed", error=str(e))
            return JSONResponse(
                content={"status": "not_ready", "timestamp": time.time(), "error": str(e)},
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            )

        return JSONResponse(
            content={
                "status": "ready" if status_result.ready else "not_ready",
                "timestamp": status_result.timestamp,
                "response_time_ms": status_result.response_time_ms,
            },
            status_code=(
                status.HTTP_200_OK
                if status_result.ready
                else status.HTTP_503_SERVICE_UNAVAILABLE
            ),
        )

    @router.get("/live")
    async def liveness_check() -> JSONResponse:
        return JSONResponse(
            content={"status": "alive", "timestamp": time.time()},
            status_code=status.HTTP_200_OK,
        )

    return router
