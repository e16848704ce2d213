"""Health check endpoint with database and key-value store connectivity checks."""

import logging

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from gatekeeper.core import check_db_connection, settings
from gatekeeper.core.errors import StoreUnavailableError
from gatekeeper.core.kv_store import StorePurpose, get_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    store: str


async def check_store_connection() -> bool:
    """Check if the blacklist store is reachable."""
    try:
        return await get_store(StorePurpose.BLACKLIST).ping()
    except StoreUnavailableError as e:
        logger.debug(f"Store connection check failed: {e}")
        return False


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={
        status.HTTP_200_OK: {"description": "Service is healthy"},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "Service is unhealthy"},
    },
)
async def health_check(response: Response) -> HealthResponse:
    """
    Health check endpoint.

    Returns 503 if the database or the blacklist store is unavailable, since
    no request can be authenticated without both.
    """
    db_healthy = await check_db_connection()
    store_healthy = await check_store_connection()

    if not (db_healthy and store_healthy):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status="healthy" if db_healthy and store_healthy else "unhealthy",
        version=settings.app_version,
        database="connected" if db_healthy else "disconnected",
        store="connected" if store_healthy else "disconnected",
    )
