"""
Setup-phase lookup of a tenant's listing policies and inventory location.

Runs once per publish batch before any item is attempted, so a tenant
with no policies or location fails the whole request with a
``ConfigurationError`` instead of failing every item.
"""

import logging

from marketsync.core.exceptions import ConfigurationError
from marketsync.core.interfaces import ITenantSettingsProvider
from marketsync.core.models import ListingContext, PolicyOptions
from marketsync.marketplace.ebay_client import EbayClient
from marketsync.services.token_manager import TokenManager

logger = logging.getLogger(__name__)


class PolicyResolver:
    """Builds the ``ListingContext`` for a tenant."""

    def __init__(
        self,
        client: EbayClient,
        tokens: TokenManager,
        tenant_settings: ITenantSettingsProvider,
        currency: str = "USD",
        image_limit: int = 24,
    ):
        self._client = client
        self._tokens = tokens
        self._tenant_settings = tenant_settings
        self._currency = currency
        self._image_limit = image_limit

    async def fetch_options(self, tenant_id: str) -> PolicyOptions:
        call = self._tokens.force_refresh_and_retry
        return PolicyOptions(
            fulfillment=await call(tenant_id, self._client.get_fulfillment_policies),
            payment=await call(tenant_id, self._client.get_payment_policies),
            returns=await call(tenant_id, self._client.get_return_policies),
            location_keys=await call(tenant_id, self._client.get_inventory_locations),
        )

    async def resolve(self, tenant_id: str) -> ListingContext:
        """
        Fetch policies, locations and tenant settings.

        Raises:
            ConfigurationError: A policy kind or the inventory location is missing.
        """
        options = await self.fetch_options(tenant_id)
        missing = [
            name
            for name, present in (
                ("fulfillment policy", options.fulfillment),
                ("payment policy", options.payment),
                ("return policy", options.returns),
                ("inventory location", options.location_keys),
            )
            if not present
        ]
        if missing:
            raise ConfigurationError(
                f"Marketplace account is missing: {', '.join(missing)}",
                details={"missing": missing},
            )

        settings = await self._tenant_settings.get_settings(tenant_id)
        logger.info(
            f"Resolved listing context: {len(options.fulfillment)} fulfillment, "
            f"{len(options.payment)} payment, {len(options.returns)} return policies, "
            f"{len(options.location_keys)} locations"
        )
        return ListingContext(
            marketplace_id=self._client.marketplace_id,
            currency=self._currency,
            policies=options,
            settings=settings,
            image_limit=self._image_limit,
        )
