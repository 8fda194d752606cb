"""Health check endpoints with database connectivity check.

Accessible without authentication so load balancers can poll them.
"""

from fastapi import APIRouter, Request, Response, status
from pydantic import BaseModel

from phoneauth.core import check_db_connection, settings
from phoneauth.core.database import async_session_maker
from phoneauth.services.delivery import get_delivery_dispatcher
from phoneauth.services.store_sweeper import StoreSweeper

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str


class HealthDetailResponse(HealthResponse):
    """Health plus the state of the background workers."""

    sweeper: str
    pending_deliveries: int


async def _db_healthy(request: Request) -> bool:
    session_maker = getattr(request.app.state, "session_maker", async_session_maker)
    return await check_db_connection(session_maker)


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={
        status.HTTP_200_OK: {"description": "Service is healthy"},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "Service is unhealthy"},
    },
)
async def health_check(request: Request, response: Response) -> HealthResponse:
    """
    Health check endpoint.

    Returns 503 if the database is unavailable, since no OTP or token
    operation can succeed without it.
    """
    db_healthy = await _db_healthy(request)

    # Set appropriate status code for container orchestration
    if not db_healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status="healthy" if db_healthy else "unhealthy",
        version=settings.app_version,
        database="connected" if db_healthy else "disconnected",
    )


@router.get(
    "/health/detail",
    response_model=HealthDetailResponse,
    responses={
        status.HTTP_200_OK: {"description": "Detailed health information"},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "Service is unhealthy"},
    },
)
async def health_detail(request: Request, response: Response) -> HealthDetailResponse:
    db_healthy = await _db_healthy(request)
    if not db_healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    dispatcher = getattr(request.app.state, "dispatcher", None) or get_delivery_dispatcher()
    return HealthDetailResponse(
        status="healthy" if db_healthy else "unhealthy",
        version=settings.app_version,
        database="connected" if db_healthy else "disconnected",
        sweeper="running" if StoreSweeper.get_instance().running else "stopped",
        pending_deliveries=dispatcher.pending,
    )
