"""
Inbound eBay push notifications.

Two request kinds:

- Verification challenge: ``sha256(challenge_code + verification_token + endpoint)``
  as a hex digest. Pure; the same inputs always give the same response.
- Notification: a SOAP envelope (Trading API platform notifications) or a
  JSON envelope (Notification API). A sale marks a single-unit product
  sold unless it already is. Multi-unit products are only alerted on:
  the order poll splits off the sold units under the order's sale marker.
  Best offers raise an informational alert.

Unrecognized payloads are acknowledged as ignored, and processing errors
are acknowledged too, so eBay does not start a retry storm.
"""

import hashlib
import json
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any
from xml.parsers.expat import ExpatError

import xmltodict

from marketsync.core.interfaces import ICatalogStore
from marketsync.core.logging_config import tenant_scope
from marketsync.core.models import AlertLevel, Marketplace, Product, utc_now
from marketsync.services.audit import AlertEmitter, AuditLogger

logger = logging.getLogger(__name__)

SALE_EVENTS = frozenset({"FixedPriceTransaction", "AuctionCheckoutComplete", "ItemSold"})
ACTIVE_OFFER_STATUSES = frozenset({"Active", "Pending"})
ACCOUNT_DELETION_TOPIC = "MARKETPLACE_ACCOUNT_DELETION"


def compute_challenge_response(challenge_code: str, verification_token: str, endpoint: str) -> str:
    """Hex SHA-256 of challenge code, verification token and endpoint, concatenated."""
    digest = hashlib.sha256()
    digest.update(challenge_code.encode("utf-8"))
    digest.update(verification_token.encode("utf-8"))
    digest.update(endpoint.encode("utf-8"))
    return digest.hexdigest()


# ─── Parsed Notification Types ────────────────────────────────


class NotificationKind(StrEnum):
    SALE = "sale"
    BEST_OFFER = "best_offer"
    ACCOUNT_DELETION = "account_deletion"
    UNKNOWN = "unknown"


@dataclass
class SaleEvent:
    sku: str | None
    remote_item_id: str | None
    transaction_id: str | None = None
    price: float | None = None
    quantity: int = 1


@dataclass
class OfferEvent:
    sku: str | None
    remote_item_id: str | None
    offer_id: str | None = None
    status: str = ""
    price: float | None = None
    buyer: str | None = None


@dataclass
class ParsedNotification:
    kind: NotificationKind
    event_name: str = ""
    sales: list[SaleEvent] = field(default_factory=list)
    offers: list[OfferEvent] = field(default_factory=list)


# ─── Envelope Parsing ─────────────────────────────────────────


def _local(key: str) -> str:
    return key.rsplit(":", 1)[-1]


def _child(node: Any, name: str) -> Any:
    """Child element by local name, ignoring namespace prefixes."""
    if not isinstance(node, dict):
        return None
    for key, value in node.items():
        if _local(key) == name:
            return value
    return None


def _as_list(value: Any) -> list:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _text(value: Any) -> str | None:
    if isinstance(value, dict):
        value = value.get("#text")
    if value is None:
        return None
    return str(value).strip() or None


def _amount(value: Any) -> float | None:
    text = _text(value)
    try:
        return float(text) if text is not None else None
    except ValueError:
        return None


def parse_notification(body: bytes | str) -> ParsedNotification:
    """Parse a SOAP or JSON notification body. Unknown shapes yield ``UNKNOWN``."""
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
    text = text.strip()
    if text.startswith("<"):
        return _parse_soap(text)
    if text.startswith("{"):
        return _parse_json(text)
    return ParsedNotification(kind=NotificationKind.UNKNOWN)


def _parse_soap(text: str) -> ParsedNotification:
    try:
        document = xmltodict.parse(text)
    except ExpatError:
        logger.warning("Webhook body is not well-formed XML")
        return ParsedNotification(kind=NotificationKind.UNKNOWN)

    soap_body = _child(_child(document, "Envelope"), "Body")
    if not isinstance(soap_body, dict):
        return ParsedNotification(kind=NotificationKind.UNKNOWN)

    for key, payload in soap_body.items():
        if not isinstance(payload, dict):
            continue
        local = _local(key)
        event_name = _text(_child(payload, "NotificationEventName")) or local.removesuffix("Response")
        item = _child(payload, "Item") or {}

        if "BestOffer" in local or "BestOffer" in event_name:
            offers = [
                OfferEvent(
                    sku=_text(_child(item, "SKU")),
                    remote_item_id=_text(_child(item, "ItemID")),
                    offer_id=_text(_child(offer, "BestOfferID")),
                    status=_text(_child(offer, "Status")) or "",
                    price=_amount(_child(offer, "Price")),
                    buyer=_text(_child(_child(offer, "Buyer"), "UserID")),
                )
                for offer in _as_list(_child(_child(payload, "BestOfferArray"), "BestOffer"))
            ]
            return ParsedNotification(NotificationKind.BEST_OFFER, event_name, offers=offers)

        if "Transaction" in local or event_name in SALE_EVENTS:
            sales = []
            for txn in _as_list(_child(_child(payload, "TransactionArray"), "Transaction")):
                txn_item = _child(txn, "Item") or item
                sales.append(
                    SaleEvent(
                        sku=_text(_child(txn_item, "SKU")) or _text(_child(item, "SKU")),
                        remote_item_id=_text(_child(txn_item, "ItemID")) or _text(_child(item, "ItemID")),
                        transaction_id=_text(_child(txn, "TransactionID")),
                        price=_amount(_child(txn, "TransactionPrice")),
                        quantity=int(_text(_child(txn, "QuantityPurchased")) or 1),
                    )
                )
            if not sales and item:
                sales.append(
                    SaleEvent(
                        sku=_text(_child(item, "SKU")),
                        remote_item_id=_text(_child(item, "ItemID")),
                        price=_amount(_child(_child(item, "SellingStatus"), "CurrentPrice")),
                    )
                )
            return ParsedNotification(NotificationKind.SALE, event_name, sales=sales)

    return ParsedNotification(kind=NotificationKind.UNKNOWN)


def _parse_json(text: str) -> ParsedNotification:
    try:
        document = json.loads(text)
    except ValueError:
        return ParsedNotification(kind=NotificationKind.UNKNOWN)
    if not isinstance(document, dict):
        return ParsedNotification(kind=NotificationKind.UNKNOWN)
    topic = (document.get("metadata") or {}).get("topic", "")
    if topic == ACCOUNT_DELETION_TOPIC:
        return ParsedNotification(NotificationKind.ACCOUNT_DELETION, topic)
    return ParsedNotification(NotificationKind.UNKNOWN, topic)


# ─── Ingester ─────────────────────────────────────────────────


class WebhookIngester:
    """Applies parsed notifications to the catalog."""

    def __init__(
        self,
        catalog: ICatalogStore,
        audit: AuditLogger,
        alerts: AlertEmitter,
        marketplace: Marketplace = Marketplace.EBAY,
        clock=utc_now,
    ):
        self._catalog = catalog
        self._audit = audit
        self._alerts = alerts
        self._marketplace = marketplace
        self._clock = clock

    async def handle(self, body: bytes | str) -> dict[str, Any]:
        """
        Process one notification delivery.

        Returns:
            Acknowledgement body. Always returned, even on failure.
        """
        try:
            parsed = parse_notification(body)
            logger.info(f"Webhook notification kind={parsed.kind} event={parsed.event_name}")

            if parsed.kind == NotificationKind.SALE:
                processed = 0
                for sale in parsed.sales:
                    async with self._catalog.transaction():
                        processed += await self._apply_sale(sale, parsed.event_name)
                return {"status": "ok", "processed": processed}

            if parsed.kind == NotificationKind.BEST_OFFER:
                processed = 0
                for offer in parsed.offers:
                    async with self._catalog.transaction():
                        processed += await self._notify_offer(offer)
                return {"status": "ok", "processed": processed}

            if parsed.kind == NotificationKind.ACCOUNT_DELETION:
                logger.info("Marketplace account deletion notification acknowledged")
                return {"status": "ok"}

            return {"status": "ok", "ignored": True}
        except Exception:
            logger.exception("Webhook processing failed")
            return {"status": "error"}

    async def _locate(self, sku: str | None, remote_item_id: str | None) -> Product | None:
        if not sku and not remote_item_id:
            return None
        return await self._catalog.locate(self._marketplace, sku=sku, remote_item_id=remote_item_id)

    async def _apply_sale(self, sale: SaleEvent, event_name: str) -> int:
        product = await self._locate(sale.sku, sale.remote_item_id)
        if product is None:
            logger.warning(
                f"Sale notification for unknown item sku={sale.sku} item_id={sale.remote_item_id}"
            )
            return 0

        with tenant_scope(product.tenant_id, operation="webhook_sale"):
            if product.sold:
                await self._audit.info(
                    product.tenant_id,
                    "Sale notification for product already sold",
                    product_id=product.id,
                    transaction_id=sale.transaction_id,
                )
                return 0

            price = sale.price if sale.price is not None else product.price
            if product.quantity > 1:
                await self._defer_to_poll(product, sale, event_name, price)
                return 0

            await self._catalog.save(
                product.model_copy(
                    update={
                        "sold": True,
                        "quantity": 0,
                        "sold_price": price,
                        "sold_date": self._clock().date(),
                        "sold_platform": str(self._marketplace),
                    }
                )
            )
            await self._audit.info(
                product.tenant_id,
                "Product marked sold from notification",
                product_id=product.id,
                event=event_name,
                transaction_id=sale.transaction_id,
                price=price,
            )
            await self._alerts.emit(
                product.tenant_id,
                AlertLevel.SUCCESS,
                "Item sold on eBay",
                f"{product.title or product.sku} sold"
                + (f" for ${price:.2f}" if price is not None else "")
                + ". 0 remaining.",
                product_id=product.id,
            )
            return 1

    async def _defer_to_poll(
        self, product: Product, sale: SaleEvent, event_name: str, price: float | None
    ) -> None:
        """Multi-unit sale: alert only. The catalog is left for the order poll."""
        await self._audit.info(
            product.tenant_id,
            "Multi-unit sale notification left to order poll",
            product_id=product.id,
            event=event_name,
            transaction_id=sale.transaction_id,
            units=sale.quantity,
            quantity=product.quantity,
        )
        await self._alerts.emit(
            product.tenant_id,
            AlertLevel.SUCCESS,
            "Item sold on eBay",
            f"{sale.quantity} of {product.title or product.sku} sold"
            + (f" for ${price:.2f}" if price is not None else "")
            + ". Stock updates with the next order sync.",
            product_id=product.id,
        )

    async def _notify_offer(self, offer: OfferEvent) -> int:
        if offer.status not in ACTIVE_OFFER_STATUSES:
            logger.info(f"Ignoring best offer {offer.offer_id} in status {offer.status!r}")
            return 0
        product = await self._locate(offer.sku, offer.remote_item_id)
        if product is None:
            logger.warning(f"Best offer for unknown item sku={offer.sku} item_id={offer.remote_item_id}")
            return 0

        with tenant_scope(product.tenant_id, operation="webhook_offer"):
            amount = f"${offer.price:.2f}" if offer.price is not None else "an offer"
            await self._alerts.emit(
                product.tenant_id,
                AlertLevel.INFO,
                "New offer on eBay",
                f"{offer.buyer or 'A buyer'} offered {amount} for {product.title or product.sku}.",
                product_id=product.id,
            )
            await self._audit.info(
                product.tenant_id,
                "Best offer received",
                product_id=product.id,
                offer_id=offer.offer_id,
                price=offer.price,
            )
            return 1
