"""
Scheduled sync tasks.

- poll_all_tenants_task: pull recent eBay orders for every connected tenant
- reconcile_all_tenants_task: push local quantities back to eBay for
  tenants with ``auto_withdraw_sold`` enabled

Each tenant runs in its own database session and transaction, so one
tenant's failure never rolls back another's work.
"""

import logging
from collections.abc import Awaitable, Callable

from marketsync.config import get_settings
from marketsync.core.exceptions import MarketSyncError, ReconnectRequired
from marketsync.core.models import AlertLevel, Marketplace
from marketsync.db.database import async_session_factory
from marketsync.db.repositories import SqlCredentialStore
from marketsync.services.factory import SyncServices, build_services

logger = logging.getLogger(__name__)

TenantJob = Callable[[SyncServices, str], Awaitable[dict]]


async def _connected_tenants() -> list[str]:
    async with async_session_factory() as session:
        return await SqlCredentialStore(session).list_connected(Marketplace.EBAY)


async def _run_for_tenant(tenant_id: str, job: TenantJob, label: str) -> dict:
    """Run ``job`` for one tenant in its own transaction. Never raises."""
    settings = get_settings()
    async with async_session_factory() as session:
        services = build_services(session, settings)
        try:
            outcome = await job(services, tenant_id)
            await session.commit()
            return {"status": "ok", **outcome}
        except ReconnectRequired as e:
            await session.rollback()
            logger.warning(f"[{label}] Tenant {tenant_id} must reconnect eBay: {e}")
            await services.alerts.emit(
                tenant_id,
                AlertLevel.ERROR,
                "Reconnect your eBay account",
                "eBay no longer accepts the stored authorization. Reconnect to resume syncing.",
            )
            await session.commit()
            return {"status": "reconnect_required", "error": str(e)}
        except MarketSyncError as e:
            # Setup failures were committed to the audit log by the service.
            await session.rollback()
            logger.error(f"[{label}] Tenant {tenant_id} failed: {e}")
            return {"status": "failed", "error": str(e)}
        except Exception as e:
            await session.rollback()
            logger.exception(f"[{label}] Unexpected error for tenant {tenant_id}")
            error = f"{type(e).__name__}: {e}"
            try:
                await services.audit.error(tenant_id, f"Scheduled {label} failed", error=error)
                await session.commit()
            except Exception:
                logger.exception(f"[{label}] Could not record failure for tenant {tenant_id}")
                await session.rollback()
            return {"status": "failed", "error": error}


async def _poll(services: SyncServices, tenant_id: str) -> dict:
    summary = await services.poller.poll(tenant_id)
    return summary.to_dict()


async def _reconcile(services: SyncServices, tenant_id: str) -> dict:
    preferences = await services.tenant_settings.get_settings(tenant_id)
    if not preferences.auto_withdraw_sold:
        return {"skipped": True}
    result = await services.reconciler.reconcile(tenant_id)
    return result.to_dict()


def _summarize(label: str, results: dict[str, dict]) -> dict:
    failed = [t for t, r in results.items() if r["status"] != "ok"]
    summary = {
        "tenants_processed": len(results),
        "tenants_failed": len(failed),
        "results": results,
    }
    logger.info(f"[{label}] Complete: {len(results)} tenants, {len(failed)} failed")
    return summary


async def poll_tenant_task(ctx: dict, tenant_id: str) -> dict:
    """Background task: one order poll cycle for a single tenant."""
    return await _run_for_tenant(tenant_id, _poll, "poll")


async def poll_all_tenants_task(ctx: dict) -> dict:
    """Scheduled task: order poll for every connected tenant."""
    tenants = await _connected_tenants()
    logger.info(f"[poll] Polling orders for {len(tenants)} tenants")
    results = {tenant_id: await _run_for_tenant(tenant_id, _poll, "poll") for tenant_id in tenants}
    return _summarize("poll", results)


async def reconcile_all_tenants_task(ctx: dict) -> dict:
    """Scheduled task: outbound quantity reconcile for every connected tenant."""
    tenants = await _connected_tenants()
    logger.info(f"[reconcile] Reconciling listings for {len(tenants)} tenants")
    results = {
        tenant_id: await _run_for_tenant(tenant_id, _reconcile, "reconcile") for tenant_id in tenants
    }
    return _summarize("reconcile", results)
