"""
Batch listing actions.

Provides:
- POST /api/v1/batch: publish, update or end a list of products
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from marketsync.api.dependencies import get_services
from marketsync.core.models import BatchOperation
from marketsync.middleware.auth_middleware import TenantContext, get_current_tenant
from marketsync.services.factory import SyncServices

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Batch"])


class BatchRequest(BaseModel):
    """Batch action over catalog product ids."""
    operation: BatchOperation
    product_ids: list[str] = Field(..., min_length=1, max_length=500)


class BatchResponse(BaseModel):
    success: int
    failed: int
    errors: list[str]


@router.post("/batch", response_model=BatchResponse, summary="Run a batch listing action")
async def run_batch(
    request: BatchRequest,
    tenant: TenantContext = Depends(get_current_tenant),
    services: SyncServices = Depends(get_services),
):
    """
    Apply ``operation`` to every product id for the calling tenant.

    Setup failures (not connected, reconnect required, missing policies)
    fail the request. Per-product failures are reported in ``errors``
    and never fail the request.
    """
    result = await services.batch.run(tenant.tenant_id, request.operation, request.product_ids)
    return BatchResponse(**result.to_dict())
