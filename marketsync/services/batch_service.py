"""
Batch publish / update / end over a list of product ids.

Setup (token check, listing context) runs once before any item; a setup
failure aborts the whole batch. After that every item runs to completion
and its failure is recorded in the result, never raised.
"""

import logging

from marketsync.core.exceptions import MarketplaceError, MarketSyncError, RecordNotFoundError
from marketsync.core.interfaces import ICatalogStore
from marketsync.core.logging_config import tenant_scope
from marketsync.core.models import BatchOperation, BatchResult, ListingContext
from marketsync.core.resilience import run_bounded
from marketsync.services.audit import AuditLogger
from marketsync.services.policy_resolver import PolicyResolver
from marketsync.services.publish_coordinator import PublishCoordinator
from marketsync.services.token_manager import TokenManager

logger = logging.getLogger(__name__)


def describe_error(exc: Exception) -> str:
    """One-line message for a per-item failure."""
    if isinstance(exc, MarketplaceError):
        return exc.summary() or exc.message
    if isinstance(exc, MarketSyncError):
        return exc.message or type(exc).__name__
    return f"Unexpected error: {exc}"


class BatchService:
    """Runs a batch operation for one tenant."""

    def __init__(
        self,
        coordinator: PublishCoordinator,
        resolver: PolicyResolver,
        tokens: TokenManager,
        catalog: ICatalogStore,
        audit: AuditLogger,
        concurrency: int = 1,
    ):
        self._coordinator = coordinator
        self._resolver = resolver
        self._tokens = tokens
        self._catalog = catalog
        self._audit = audit
        self._concurrency = concurrency

    async def run(
        self, tenant_id: str, operation: BatchOperation, product_ids: list[str]
    ) -> BatchResult:
        """
        Apply ``operation`` to every product id.

        Args:
            tenant_id: Tenant scope for every lookup and remote call.
            operation: publish, update, or end.
            product_ids: Catalog ids (SKUs), processed in order.

        Returns:
            BatchResult with success/failed counts and one error per failure.

        Raises:
            ConfigurationError: Not connected, or missing policies/location.
            ReconnectRequired: The credential cannot be refreshed.
        """
        with tenant_scope(tenant_id, operation=str(operation)):
            context = await self._setup(tenant_id, operation)

            async def _worker(product_id: str) -> str | None:
                return await self._process(tenant_id, operation, product_id, context)

            outcomes = await run_bounded(product_ids, _worker, concurrency=self._concurrency)

            result = BatchResult()
            for error in outcomes:
                if error is None:
                    result.record_success()
                else:
                    result.record_failure(error)

            await self._audit.info(
                tenant_id,
                f"Batch {operation} finished",
                success=result.success,
                failed=result.failed,
            )
            return result

    async def _setup(self, tenant_id: str, operation: BatchOperation) -> ListingContext | None:
        try:
            await self._tokens.get_valid_token(tenant_id)
            if operation in (BatchOperation.PUBLISH, BatchOperation.UPDATE):
                return await self._resolver.resolve(tenant_id)
            return None
        except MarketSyncError as e:
            await self._audit.fatal(
                tenant_id,
                f"Batch {operation} aborted: {describe_error(e)}",
                error_type=type(e).__name__,
            )
            raise

    async def _process(
        self,
        tenant_id: str,
        operation: BatchOperation,
        product_id: str,
        context: ListingContext | None,
    ) -> str | None:
        """Run one item. Returns None on success, else the error message."""
        try:
            product = await self._catalog.get(tenant_id, product_id)
            if product is None:
                raise RecordNotFoundError(f"Product {product_id} not found")

            if operation == BatchOperation.PUBLISH:
                await self._coordinator.publish(tenant_id, product, context)
            elif operation == BatchOperation.UPDATE:
                await self._coordinator.update(tenant_id, product, context)
            else:
                await self._coordinator.withdraw(tenant_id, product)
            return None
        except Exception as e:
            if not isinstance(e, MarketSyncError):
                logger.exception(f"Unexpected error processing {product_id}")
            message = f"{product_id}: {describe_error(e)}"
            details = {"product_id": product_id, "error_type": type(e).__name__, "error": message}
            if isinstance(e, MarketplaceError) and e.errors:
                details["remote_errors"] = [err.to_dict() for err in e.errors]
            await self._audit.error(tenant_id, f"Batch {operation} item failed", **details)
            return message
