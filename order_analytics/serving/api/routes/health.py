"""
Health Check Endpoints

Provides health and readiness checks for orchestration systems.
"""

from datetime import datetime, timezone
from typing import Dict, Any

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    service: str
    version: str
    timestamp: datetime
    checks: Dict[str, Any]


def _consumer_status(request: Request) -> str:
    consumer = getattr(request.app.state, "consumer", None)
    if consumer is None:
        return "disabled"
    return consumer.status


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request, response: Response) -> HealthResponse:
    """
    Comprehensive health check endpoint.

    Checks:
    - Database connectivity
    - Kafka consumer state (when the consumer runs in this process)
    """
    settings = request.app.state.settings
    db_health = await request.app.state.database.check_health()
    consumer_status = _consumer_status(request)

    healthy = db_health.get("status") == "healthy" and consumer_status in ("connected", "disabled")
    if not healthy:
        response.status_code = 503

    return HealthResponse(
        status="ok" if healthy else "error",
        service=settings.app_name,
        version=settings.version,
        timestamp=datetime.now(timezone.utc),
        checks={
            "database": db_health,
            "kafka": {"consumer": consumer_status},
        },
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """
    Kubernetes liveness probe endpoint.

    Returns 200 if the application is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(request: Request, response: Response) -> Dict[str, str]:
    """
    Kubernetes readiness probe endpoint.

    Returns 200 if the database answers.
    """
    db_health = await request.app.state.database.check_health()
    if db_health.get("status") != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}
    return {"status": "ready"}
