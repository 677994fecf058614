"""
eBay notification endpoints.

Provides:
- GET  /api/v1/webhooks/ebay: endpoint verification challenge
- POST /api/v1/webhooks/ebay: platform and account notifications

Notifications are always acknowledged with 200 so eBay does not retry;
the body reports ``ok``, ``ignored`` or ``error``. No token data or
raw payload is logged.
"""

import logging

from fastapi import APIRouter, Depends, Query, Request

from marketsync.api.dependencies import get_services
from marketsync.config import Settings, get_settings
from marketsync.core.exceptions import ConfigurationError
from marketsync.services.factory import SyncServices
from marketsync.services.webhook_ingester import compute_challenge_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.get("/ebay", summary="eBay endpoint verification challenge")
async def ebay_challenge(
    challenge_code: str = Query(..., min_length=1),
    settings: Settings = Depends(get_settings),
) -> dict:
    """Answer eBay's challenge with sha256(challenge_code + token + endpoint)."""
    if not settings.ebay_verification_token or not settings.ebay_webhook_endpoint:
        raise ConfigurationError("eBay webhook verification is not configured")
    return {
        "challengeResponse": compute_challenge_response(
            challenge_code, settings.ebay_verification_token, settings.ebay_webhook_endpoint
        )
    }


@router.post("/ebay", summary="eBay notification")
async def ebay_notification(
    request: Request,
    services: SyncServices = Depends(get_services),
) -> dict:
    body = await request.body()
    ack = await services.webhooks.handle(body)
    logger.info(f"eBay notification acknowledged: {ack}")
    return ack
