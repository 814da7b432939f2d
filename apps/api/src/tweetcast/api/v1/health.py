"""
Health check endpoints.

Provides system health information for monitoring and load balancers.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tweetcast import __version__
from tweetcast.core.dependencies import AppSettings, DbSession, Services
from tweetcast.core.exceptions import StoreError
from tweetcast.queue.store import JobStore
from tweetcast.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health Check",
    description="Returns the health status of the job store and the database.",
    responses={503: {"model": HealthResponse}},
)
def health_check(
    settings: AppSettings,
    services: Services,
    db: DbSession,
) -> Any:
    """
    Perform health check on the API and its dependencies.

    Checks:
    - Job store connectivity
    - Database connectivity

    Returns:
        HealthResponse with overall status and individual check results;
        503 when any check fails
    """
    checks: dict[str, dict[str, Any]] = {
        "job_store": check_job_store(services.store),
        "database": check_database(db),
    }
    healthy = all(c["status"] == "healthy" for c in checks.values())

    response = HealthResponse(
        status="healthy" if healthy else "unhealthy",
        version=__version__,
        environment=settings.environment,
        timestamp=datetime.now(UTC),
        checks=checks,
    )
    if healthy:
        return response
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=response.model_dump(mode="json"),
    )


@router.get(
    "/live",
    status_code=status.HTTP_200_OK,
    summary="Liveness Probe",
    description="Simple liveness check for Kubernetes probes.",
)
async def liveness() -> dict[str, str]:
    """
    Kubernetes liveness probe endpoint.

    Returns a simple OK response if the application is running.
    This does not check dependencies - use /health for full status.
    """
    return {"status": "ok"}


def check_job_store(store: JobStore) -> dict[str, Any]:
    """
    Check job store connectivity.

    Args:
        store: The job store backing the queue manager

    Returns:
        Health check result for the job store
    """
    try:
        store.ping()
    except StoreError as e:
        logger.warning(f"Job store health check failed: {e.message}")
        return {
            "status": "unhealthy",
            "backend": type(store).__name__,
            "message": f"Job store unavailable: {e.message}",
        }
    return {
        "status": "healthy",
        "backend": type(store).__name__,
        "message": "Job store reachable",
    }


def check_database(db: Session) -> dict[str, Any]:
    """
    Check database connectivity.

    Args:
        db: Database session

    Returns:
        Health check result for database
    """
    try:
        db.execute(text("SELECT 1")).fetchone()
    except SQLAlchemyError as e:
        logger.warning(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "message": f"Database connection failed: {str(e)}",
        }
    return {
        "status": "healthy",
        "message": "Database connection successful",
    }
