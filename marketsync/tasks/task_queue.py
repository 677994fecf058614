"""
arq task queue worker configuration.

Run with:
    arq marketsync.tasks.task_queue.WorkerSettings
"""

import logging

from arq import cron
from arq.connections import RedisSettings

from marketsync.config import get_settings
from marketsync.core.logging_config import setup_logging
from marketsync.tasks.sync_tasks import (
    poll_all_tenants_task,
    poll_tenant_task,
    reconcile_all_tenants_task,
)

logger = logging.getLogger(__name__)


def get_redis_settings() -> RedisSettings:
    """Parse the Redis URL into arq RedisSettings."""
    return RedisSettings.from_dsn(get_settings().redis_url)


def schedule_minutes(interval: int, offset: int = 0) -> set[int]:
    """Minutes of the hour on which a job every ``interval`` minutes fires."""
    interval = max(1, min(interval, 60))
    return {(minute + offset) % 60 for minute in range(0, 60, interval)}


async def startup(ctx: dict) -> None:
    settings = get_settings()
    setup_logging(app_env=settings.app_env, log_level=settings.log_level, log_format=settings.log_format)
    logger.info("Sync worker started")


async def shutdown(ctx: dict) -> None:
    logger.info("Sync worker stopped")


_interval = get_settings().order_poll_interval_minutes


class WorkerSettings:
    """arq worker configuration: on-demand and scheduled sync jobs."""

    redis_settings = get_redis_settings()
    max_jobs = 10
    job_timeout = 900  # 15 minutes max per sweep

    functions = [poll_tenant_task]

    cron_jobs = [
        cron(poll_all_tenants_task, minute=schedule_minutes(_interval), run_at_startup=True),
        cron(reconcile_all_tenants_task, minute=schedule_minutes(_interval, offset=_interval // 2)),
    ]

    on_startup = startup
    on_shutdown = shutdown
