"""
Status API routes - Health checks for the identity service dependencies.

Public endpoints (no auth). /v1/status is rate limited through a short
result cache.
"""

import asyncio
import time
from datetime import UTC, datetime
from enum import Enum

import httpx
from fastapi import APIRouter
from pydantic import BaseModel, Field
from sqlalchemy import text
from structlog import get_logger

from userbase.config import settings
from userbase.db.session import get_write_db
from userbase.models.api import HealthResponse

logger = get_logger(__name__)
router = APIRouter(tags=["status"])

CHECK_TIMEOUT = 5.0  # seconds
DEGRADED_LATENCY_THRESHOLD = 1000  # ms

_status_cache: dict[str, tuple[datetime, "ServiceStatusResponse"]] = {}
_CACHE_TTL_SECONDS = 10


class StatusLevel(str, Enum):
    """Status levels for health checks."""

    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    OUTAGE = "outage"


class ProviderStatus(BaseModel):
    """Status of a single provider."""

    status: StatusLevel
    latency_ms: int | None = None
    last_check: str = Field(..., description="ISO 8601 timestamp")
    message: str | None = None


class ServiceStatusResponse(BaseModel):
    """Response for /v1/status endpoint."""

    service: str = "userbase-identity"
    status: StatusLevel
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    version: str
    providers: dict[str, ProviderStatus]


def _by_latency(latency_ms: int, timestamp: str) -> ProviderStatus:
    status = (
        StatusLevel.DEGRADED if latency_ms > DEGRADED_LATENCY_THRESHOLD else StatusLevel.OPERATIONAL
    )
    return ProviderStatus(
        status=status,
        latency_ms=latency_ms,
        last_check=timestamp,
        message="High latency" if status == StatusLevel.DEGRADED else None,
    )


async def check_postgresql() -> ProviderStatus:
    """Check PostgreSQL connectivity."""
    start = time.perf_counter()
    timestamp = datetime.now(UTC).isoformat()

    try:
        async for db in get_write_db():
            await db.execute(text("SELECT 1"))
            return _by_latency(int((time.perf_counter() - start) * 1000), timestamp)
    except Exception as e:
        logger.warning("postgresql_health_check_failed", error=str(e))

    return ProviderStatus(
        status=StatusLevel.OUTAGE,
        latency_ms=None,
        last_check=timestamp,
        message="Connection failed",
    )


async def check_hive_rpc() -> ProviderStatus:
    """Check the first configured Hive node answers a cheap condenser call."""
    start = time.perf_counter()
    timestamp = datetime.now(UTC).isoformat()
    payload = {
        "jsonrpc": "2.0",
        "method": "condenser_api.get_dynamic_global_properties",
        "params": [],
        "id": 1,
    }

    try:
        async with httpx.AsyncClient(timeout=CHECK_TIMEOUT) as client:
            response = await client.post(settings.hive_node_list[0], json=payload)
        latency_ms = int((time.perf_counter() - start) * 1000)
        if response.status_code == 200:
            return _by_latency(latency_ms, timestamp)
        return ProviderStatus(
            status=StatusLevel.DEGRADED,
            latency_ms=latency_ms,
            last_check=timestamp,
            message=f"Unexpected status: {response.status_code}",
        )
    except httpx.TimeoutException:
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=int(CHECK_TIMEOUT * 1000),
            last_check=timestamp,
            message="Timeout",
        )
    except Exception as e:
        logger.warning("hive_rpc_health_check_failed", error=str(e))
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=None,
            last_check=timestamp,
            message="Connection failed",
        )


async def check_directory() -> ProviderStatus:
    """Check the Farcaster directory API is reachable."""
    start = time.perf_counter()
    timestamp = datetime.now(UTC).isoformat()

    # Not configured means social linking is disabled, not broken
    if not settings.neynar_api_key:
        return ProviderStatus(
            status=StatusLevel.OPERATIONAL,
            latency_ms=0,
            last_check=timestamp,
            message="Not configured",
        )

    try:
        async with httpx.AsyncClient(timeout=CHECK_TIMEOUT) as client:
            response = await client.get(
                f"{settings.neynar_api_url.rstrip('/')}/v2/farcaster/user/bulk",
                params={"fids": "1"},
                headers={"api_key": settings.neynar_api_key},
            )
        latency_ms = int((time.perf_counter() - start) * 1000)
        if response.status_code < 500:
            return _by_latency(latency_ms, timestamp)
        return ProviderStatus(
            status=StatusLevel.DEGRADED,
            latency_ms=latency_ms,
            last_check=timestamp,
            message=f"Unexpected status: {response.status_code}",
        )
    except httpx.TimeoutException:
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=int(CHECK_TIMEOUT * 1000),
            last_check=timestamp,
            message="Timeout",
        )
    except Exception as e:
        logger.warning("directory_health_check_failed", error=str(e))
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=None,
            last_check=timestamp,
            message="Connection failed",
        )


def calculate_overall_status(providers: dict[str, ProviderStatus]) -> StatusLevel:
    """Calculate overall service status from provider statuses."""
    statuses = [p.status for p in providers.values()]

    if StatusLevel.OUTAGE in statuses:
        return StatusLevel.OUTAGE
    if StatusLevel.DEGRADED in statuses:
        return StatusLevel.DEGRADED
    return StatusLevel.OPERATIONAL


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness plus database reachability."""
    database = await check_postgresql()
    return HealthResponse(
        status="healthy" if database.status != StatusLevel.OUTAGE else "unhealthy",
        database="connected" if database.status != StatusLevel.OUTAGE else "disconnected",
        timestamp=datetime.now(UTC).isoformat(),
        version=settings.api_version,
    )


@router.get("/v1/status", response_model=ServiceStatusResponse)
async def get_status() -> ServiceStatusResponse:
    """
    Service status for status page aggregation.

    Checks every dependent provider concurrently; results are cached for
    ten seconds.
    """
    cache_key = "status"
    now = datetime.now(UTC)

    if cache_key in _status_cache:
        cached_time, cached_response = _status_cache[cache_key]
        age_seconds = (now - cached_time).total_seconds()
        if age_seconds < _CACHE_TTL_SECONDS:
            logger.debug("status_cache_hit", age_seconds=age_seconds)
            return cached_response

    postgresql_status, hive_status, directory_status = await asyncio.gather(
        check_postgresql(), check_hive_rpc(), check_directory()
    )
    providers = {
        "postgresql": postgresql_status,
        "hive_rpc": hive_status,
        "farcaster_directory": directory_status,
    }

    response = ServiceStatusResponse(
        status=calculate_overall_status(providers),
        timestamp=now.isoformat(),
        version=settings.api_version,
        providers=providers,
    )
    _status_cache[cache_key] = (now, response)
    return response
