"""
eBay REST client for the Sell Inventory, Account and Fulfillment APIs.

Endpoints used by the sync engine:
- PUT    /sell/inventory/v1/inventory_item/{sku}        upsert inventory item
- DELETE /sell/inventory/v1/inventory_item/{sku}        delete inventory item
- GET    /sell/inventory/v1/offer?sku=                  find offers for a SKU
- POST   /sell/inventory/v1/offer                       create offer
- PUT    /sell/inventory/v1/offer/{offerId}             update offer
- POST   /sell/inventory/v1/offer/{offerId}/publish     publish offer
- POST   /sell/inventory/v1/offer/{offerId}/withdraw    withdraw offer
- POST   /sell/inventory/v1/bulk_update_price_quantity  quantity push-back
- GET    /sell/inventory/v1/location                    inventory locations
- GET    /sell/account/v1/{fulfillment,payment,return}_policy
- GET    /sell/fulfillment/v1/order                     orders by creation date

Every method takes the caller's access token explicitly; token lifecycle
is owned by ``services/token_manager.py``. Failures are raised as typed
``MarketplaceError`` subclasses carrying the structured ``errors[]`` array.
"""

import logging
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

import httpx

from marketsync.config import Settings
from marketsync.core.exceptions import (
    MarketplaceAuthError,
    MarketplaceError,
    MarketplaceErrorDetail,
    NotFoundError,
    RemoteTimeoutError,
    RemoteValidationError,
)
from marketsync.core.models import (
    FulfillmentPolicy,
    PaymentPolicy,
    RemoteLineItem,
    RemoteOrder,
    ReturnPolicy,
)
from marketsync.core.resilience import TokenBucket, call_with_timeout

logger = logging.getLogger(__name__)

INVENTORY_API = "/sell/inventory/v1"
ACCOUNT_API = "/sell/account/v1"
FULFILLMENT_API = "/sell/fulfillment/v1"


class EbayClient:
    """
    Thin async wrapper over the eBay Sell REST APIs.

    Every call passes through the shared token bucket (if given) and is
    raced against ``timeout`` seconds.
    """

    def __init__(
        self,
        base_url: str = "https://api.ebay.com",
        marketplace_id: str = "EBAY_US",
        content_language: str = "en-US",
        timeout: float = 30.0,
        rate_limiter: TokenBucket | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._marketplace_id = marketplace_id
        self._content_language = content_language
        self._timeout = timeout
        self._rate_limiter = rate_limiter

    @classmethod
    def from_settings(cls, settings: Settings, rate_limiter: TokenBucket | None = None) -> "EbayClient":
        return cls(
            base_url=settings.ebay_base_url,
            marketplace_id=settings.ebay_marketplace_id,
            content_language=settings.ebay_content_language,
            timeout=settings.remote_call_timeout_seconds,
            rate_limiter=rate_limiter,
        )

    @property
    def marketplace_id(self) -> str:
        return self._marketplace_id

    def _get_headers(self, token: str) -> dict[str, str]:
        """Build authorization and content headers."""
        if not token:
            raise MarketplaceAuthError("No eBay access token supplied")
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Content-Language": self._content_language,
            "Accept": "application/json",
            "X-EBAY-C-MARKETPLACE-ID": self._marketplace_id,
        }

    async def _request(
        self,
        token: str,
        method: str,
        path: str,
        json_data: dict | None = None,
        params: dict[str, Any] | None = None,
        expected_status: tuple[int, ...] = (200, 201, 204),
    ) -> dict | None:
        """Make an authenticated request to the eBay API."""
        url = path if path.startswith("http") else f"{self._base_url}{path}"
        headers = self._get_headers(token)
        operation = f"{method} {path.split('?')[0]}"

        if self._rate_limiter is not None:
            await self._rate_limiter.acquire()

        try:
            async with httpx.AsyncClient(timeout=self._timeout + 5) as client:
                response = await call_with_timeout(
                    client.request(
                        method=method,
                        url=url,
                        headers=headers,
                        json=json_data,
                        params=params,
                    ),
                    timeout=self._timeout,
                    operation=operation,
                )
        except httpx.TimeoutException as e:
            raise RemoteTimeoutError(f"{operation} timed out", details={"path": path}) from e
        except httpx.HTTPError as e:
            raise MarketplaceError(f"{operation} failed: {e}", details={"path": path}) from e

        logger.debug(f"eBay {operation} → {response.status_code}")

        if response.status_code in expected_status:
            if response.status_code == 204 or not response.content:
                return None
            return response.json()

        raise _error_from_response(response, operation)

    # ─── Inventory Items ──────────────────────────────────────

    async def upsert_inventory_item(self, token: str, sku: str, payload: dict) -> None:
        """Create or replace the inventory item for ``sku``. Safe to repeat."""
        await self._request(
            token, "PUT", f"{INVENTORY_API}/inventory_item/{quote(sku, safe='')}", json_data=payload
        )
        logger.info(f"Upserted inventory item sku={sku}")

    # ─── Offers ───────────────────────────────────────────────

    async def get_offers(self, token: str, sku: str) -> list[dict]:
        """
        Return every offer for ``sku`` on this marketplace.

        eBay answers 404 when a SKU has no offers; that is an empty list.
        """
        try:
            data = await self._request(
                token,
                "GET",
                f"{INVENTORY_API}/offer",
                params={"sku": sku, "marketplace_id": self._marketplace_id},
            )
        except NotFoundError:
            return []
        return list((data or {}).get("offers", []))

    async def create_offer(self, token: str, payload: dict) -> str:
        """Create an offer and return its ``offerId``."""
        data = await self._request(token, "POST", f"{INVENTORY_API}/offer", json_data=payload)
        offer_id = (data or {}).get("offerId")
        if not offer_id:
            raise MarketplaceError("eBay did not return an offerId", details={"response": data})
        logger.info(f"Created offer {offer_id} for sku={payload.get('sku')}")
        return offer_id

    async def update_offer(self, token: str, offer_id: str, payload: dict) -> None:
        """Replace an existing offer's contents."""
        await self._request(token, "PUT", f"{INVENTORY_API}/offer/{offer_id}", json_data=payload)
        logger.info(f"Updated offer {offer_id}")

    async def publish_offer(self, token: str, offer_id: str) -> str:
        """Publish (or re-publish) an offer and return the remote listing id."""
        data = await self._request(token, "POST", f"{INVENTORY_API}/offer/{offer_id}/publish")
        listing_id = (data or {}).get("listingId")
        if not listing_id:
            raise MarketplaceError(
                "eBay did not return a listingId on publish",
                details={"offer_id": offer_id, "response": data},
            )
        logger.info(f"Published offer {offer_id} as listing {listing_id}")
        return str(listing_id)

    async def withdraw_offer(self, token: str, offer_id: str) -> None:
        """End the listing backing ``offer_id``. The offer itself is kept unpublished."""
        await self._request(token, "POST", f"{INVENTORY_API}/offer/{offer_id}/withdraw")
        logger.info(f"Withdrew offer {offer_id}")

    async def update_quantity(self, token: str, sku: str, quantity: int, offer_ids: list[str]) -> None:
        """
        Push ``quantity`` to the inventory item and each of its offers.

        Raises:
            RemoteValidationError: eBay rejected one of the updates.
        """
        payload = {
            "requests": [
                {
                    "sku": sku,
                    "shipToLocationAvailability": {"quantity": quantity},
                    "offers": [
                        {"offerId": offer_id, "availableQuantity": quantity}
                        for offer_id in offer_ids
                    ],
                }
            ]
        }
        data = await self._request(
            token, "POST", f"{INVENTORY_API}/bulk_update_price_quantity", json_data=payload
        )
        failures: list[MarketplaceErrorDetail] = []
        for entry in (data or {}).get("responses", []):
            if int(entry.get("statusCode", 200)) >= 400:
                failures.extend(
                    MarketplaceErrorDetail.from_payload(e) for e in entry.get("errors", [])
                )
        if failures:
            raise RemoteValidationError(
                f"Quantity update rejected for sku={sku}", status_code=400, errors=failures
            )
        logger.info(f"Updated quantity sku={sku} quantity={quantity}")

    # ─── Account: Policies & Locations ────────────────────────

    async def get_fulfillment_policies(self, token: str) -> list[FulfillmentPolicy]:
        data = await self._request(
            token,
            "GET",
            f"{ACCOUNT_API}/fulfillment_policy",
            params={"marketplace_id": self._marketplace_id},
        )
        return [
            FulfillmentPolicy(
                policy_id=p["fulfillmentPolicyId"],
                name=p.get("name", ""),
                free_shipping=_offers_free_shipping(p),
            )
            for p in (data or {}).get("fulfillmentPolicies", [])
        ]

    async def get_payment_policies(self, token: str) -> list[PaymentPolicy]:
        data = await self._request(
            token,
            "GET",
            f"{ACCOUNT_API}/payment_policy",
            params={"marketplace_id": self._marketplace_id},
        )
        return [
            PaymentPolicy(
                policy_id=p["paymentPolicyId"],
                name=p.get("name", ""),
                immediate_pay=bool(p.get("immediatePay", False)),
            )
            for p in (data or {}).get("paymentPolicies", [])
        ]

    async def get_return_policies(self, token: str) -> list[ReturnPolicy]:
        data = await self._request(
            token,
            "GET",
            f"{ACCOUNT_API}/return_policy",
            params={"marketplace_id": self._marketplace_id},
        )
        return [
            ReturnPolicy(policy_id=p["returnPolicyId"], name=p.get("name", ""))
            for p in (data or {}).get("returnPolicies", [])
        ]

    async def get_inventory_locations(self, token: str) -> list[str]:
        """Return merchant location keys of every enabled inventory location."""
        data = await self._request(token, "GET", f"{INVENTORY_API}/location")
        return [
            loc["merchantLocationKey"]
            for loc in (data or {}).get("locations", [])
            if loc.get("merchantLocationKey")
            and loc.get("merchantLocationStatus", "ENABLED") == "ENABLED"
        ]

    # ─── Fulfillment: Orders ──────────────────────────────────

    async def get_orders(
        self,
        token: str,
        created_after: datetime,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[RemoteOrder], int]:
        """
        Fetch one page of orders created at or after ``created_after``.

        Returns:
            ``(orders, total)`` where ``total`` is the size of the full result set.
        """
        since = created_after.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.000Z")
        data = await self._request(
            token,
            "GET",
            f"{FULFILLMENT_API}/order",
            params={
                "filter": f"creationdate:[{since}..]",
                "limit": limit,
                "offset": offset,
            },
        )
        data = data or {}
        orders = [parse_order(o) for o in data.get("orders", [])]
        return orders, int(data.get("total", len(orders)))

    async def get_orders_since(
        self, token: str, created_after: datetime, page_size: int = 50
    ) -> list[RemoteOrder]:
        """Fetch every order created at or after ``created_after``, following pagination."""
        orders: list[RemoteOrder] = []
        offset = 0
        while True:
            page, total = await self.get_orders(token, created_after, limit=page_size, offset=offset)
            orders.extend(page)
            offset += len(page)
            if not page or offset >= total:
                break
        return orders

    async def get_fulfillment_detail(self, token: str, href: str) -> dict:
        """Follow one of an order's ``fulfillmentHrefs``."""
        return await self._request(token, "GET", href) or {}


# ─── Parsing Helpers ──────────────────────────────────────────


def parse_order(data: dict) -> RemoteOrder:
    """Map an eBay Fulfillment API order into a ``RemoteOrder``."""
    created = data.get("creationDate")
    creation_date = (
        datetime.fromisoformat(created.replace("Z", "+00:00")) if created else datetime.now(UTC)
    )
    line_items = []
    for item in data.get("lineItems", []):
        total = item.get("total") or item.get("lineItemCost") or {}
        line_items.append(
            RemoteLineItem(
                line_item_id=str(item.get("lineItemId", "")),
                sku=item.get("sku") or None,
                remote_item_id=str(item["legacyItemId"]) if item.get("legacyItemId") else None,
                quantity=int(item.get("quantity", 1) or 1),
                total=float(total.get("value", 0) or 0),
            )
        )
    return RemoteOrder(
        order_id=str(data.get("orderId", "")),
        creation_date=creation_date,
        line_items=line_items,
        fulfillment_hrefs=list(data.get("fulfillmentHrefs", [])),
    )


def _offers_free_shipping(policy: dict) -> bool:
    for option in policy.get("shippingOptions", []):
        if option.get("costType") == "FREE":
            return True
        if any(s.get("freeShipping") for s in option.get("shippingServices", [])):
            return True
    return False


def _error_from_response(response: httpx.Response, operation: str) -> MarketplaceError:
    """Turn a non-success response into the matching typed error."""
    errors: list[MarketplaceErrorDetail] = []
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        errors = [
            MarketplaceErrorDetail.from_payload(e)
            for e in body.get("errors", [])
            if isinstance(e, dict)
        ]
    if not errors:
        errors = [MarketplaceErrorDetail(message=response.text[:500] or response.reason_phrase)]

    status = response.status_code
    summary = "; ".join(str(e) for e in errors)
    message = f"eBay API error ({status}) on {operation}: {summary}"

    if status == 401:
        return MarketplaceAuthError(
            "eBay access token expired or invalid", status_code=status, errors=errors
        )
    if status == 404:
        return NotFoundError(message, status_code=status, errors=errors)
    if 400 <= status < 500:
        return RemoteValidationError(message, status_code=status, errors=errors)
    return MarketplaceError(message, status_code=status, errors=errors)
