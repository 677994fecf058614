"""
Manual sync triggers.

Provides:
- POST /api/v1/sync/orders: run one order poll cycle now
- POST /api/v1/sync/reconcile: push local quantities to eBay now
"""

from fastapi import APIRouter, Depends

from marketsync.api.dependencies import get_services
from marketsync.middleware.auth_middleware import TenantContext, get_current_tenant
from marketsync.services.factory import SyncServices

router = APIRouter(prefix="/sync", tags=["Sync"])


@router.post("/orders", summary="Poll eBay orders for the current tenant")
async def sync_orders(
    tenant: TenantContext = Depends(get_current_tenant),
    services: SyncServices = Depends(get_services),
) -> dict:
    summary = await services.poller.poll(tenant.tenant_id)
    return summary.to_dict()


@router.post("/reconcile", summary="Reconcile eBay listings with local quantities")
async def sync_reconcile(
    tenant: TenantContext = Depends(get_current_tenant),
    services: SyncServices = Depends(get_services),
) -> dict:
    result = await services.reconciler.reconcile(tenant.tenant_id)
    return result.to_dict()
