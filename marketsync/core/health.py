"""
Health check with dependency probes.

Checks:
- Database: ``SELECT 1`` via async session
- Redis: ``PING`` (arq broker)
- Marketplace: whether eBay application credentials are configured

Returns ``"healthy"`` or ``"degraded"`` and never raises. Load balancers
check for 200; the body indicates component health.
"""

import asyncio
import logging
import time
from datetime import UTC, datetime

from redis.asyncio import Redis
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.config import Settings

logger = logging.getLogger(__name__)


async def _timed_probe(name: str, probe) -> dict:
    try:
        start = time.monotonic()
        await probe()
        latency = round((time.monotonic() - start) * 1000, 1)
        return {"status": "up", "latency_ms": latency}
    except Exception as e:
        logger.warning(f"{name} health check failed: {e}")
        return {"status": "down", "error": str(e)}


async def check_database(session: AsyncSession) -> dict:
    """Probe database connectivity."""
    return await _timed_probe("Database", lambda: session.execute(text("SELECT 1")))


async def check_redis(redis: Redis) -> dict:
    """Probe Redis connectivity."""
    return await _timed_probe("Redis", redis.ping)


def check_marketplace(settings: Settings) -> dict:
    """Report whether the eBay application keys are present (no network call)."""
    configured = bool(settings.ebay_app_id and settings.ebay_cert_id)
    return {
        "status": "up" if configured else "down",
        "environment": "sandbox" if settings.ebay_sandbox else "production",
        "marketplace_id": settings.ebay_marketplace_id,
        **({} if configured else {"error": "eBay application keys are not configured"}),
    }


async def get_health_status(
    settings: Settings,
    app_version: str,
    db_session: AsyncSession | None = None,
    redis_client: Redis | None = None,
) -> dict:
    """
    Build complete health status response.

    Runs DB and Redis probes concurrently. Overall status is
    ``"healthy"`` if all probes pass, ``"degraded"`` if any fail.
    """
    tasks: dict[str, asyncio.Task] = {}
    if db_session is not None:
        tasks["database"] = asyncio.create_task(check_database(db_session))
    if redis_client is not None:
        tasks["redis"] = asyncio.create_task(check_redis(redis_client))

    components: dict[str, dict] = {}
    for name, task in tasks.items():
        components[name] = await task
    components["ebay"] = check_marketplace(settings)

    all_up = all(c["status"] == "up" for c in components.values())

    return {
        "status": "healthy" if all_up else "degraded",
        "app": settings.app_name,
        "version": app_version,
        "environment": settings.app_env.value,
        "timestamp": datetime.now(UTC).isoformat(),
        "components": components,
    }
