"""
eBay OAuth 2.0 client.

Handles the seller consent URL and the token endpoint's
authorization-code and refresh-token grants. Persistence and refresh
policy live in ``services/token_manager.py``.
"""

import base64
import logging
from urllib.parse import quote, urlencode

import httpx

from marketsync.config import Settings, get_settings
from marketsync.core.exceptions import (
    MarketplaceAuthError,
    MarketplaceError,
    MarketplaceErrorDetail,
    RemoteTimeoutError,
)
from marketsync.core.models import TokenGrant

logger = logging.getLogger(__name__)

TOKEN_PATH = "/identity/v1/oauth2/token"


class EbayAuth:
    """
    Talks to eBay's OAuth endpoints on behalf of the application keyset.

    Usage:
        auth = EbayAuth()
        url = auth.get_authorization_url(state="tenant-id:nonce")
        grant = await auth.exchange_code(code)
        grant = await auth.refresh_token(grant.refresh_token)
    """

    def __init__(self, settings: Settings | None = None):
        settings = settings or get_settings()
        self._app_id = settings.ebay_app_id
        self._cert_id = settings.ebay_cert_id
        self._ru_name = settings.ebay_ru_name
        self._base_url = settings.ebay_base_url
        self._auth_url = settings.ebay_auth_url
        self._scopes = settings.ebay_scopes
        self._timeout = settings.remote_call_timeout_seconds

    def get_authorization_url(self, state: str = "") -> str:
        """
        Generate the eBay OAuth authorization URL for user consent.

        Args:
            state: Opaque state echoed back to the callback (tenant binding + CSRF nonce).

        Returns:
            URL to redirect the seller to.
        """
        params = {
            "client_id": self._app_id,
            "response_type": "code",
            "redirect_uri": self._ru_name,
            "scope": " ".join(self._scopes),
            "state": state,
        }
        # eBay requires %20 space encoding and literal ':/' in scope URLs.
        url = f"{self._auth_url}/oauth2/authorize?{urlencode(params, quote_via=quote, safe=':/')}"
        logger.info("Generated eBay auth URL (scopes: %d, state: %s)", len(self._scopes), bool(state))
        return url

    def _get_basic_auth_header(self) -> str:
        """Generate Base64-encoded application credentials for token requests."""
        credentials = f"{self._app_id}:{self._cert_id}"
        encoded = base64.b64encode(credentials.encode()).decode()
        return f"Basic {encoded}"

    async def _token_request(self, data: dict[str, str], grant: str) -> TokenGrant:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    f"{self._base_url}{TOKEN_PATH}",
                    headers={
                        "Authorization": self._get_basic_auth_header(),
                        "Content-Type": "application/x-www-form-urlencoded",
                    },
                    data=data,
                )
        except httpx.TimeoutException as e:
            raise RemoteTimeoutError(f"eBay token {grant} timed out") from e
        except httpx.HTTPError as e:
            raise MarketplaceError(f"eBay token {grant} failed: {e}") from e

        if response.status_code == 200:
            return TokenGrant.model_validate(response.json())

        detail = _oauth_error_detail(response)
        logger.warning(
            f"eBay token {grant} rejected ({response.status_code}): {detail.message}"
        )
        error_cls = MarketplaceAuthError if response.status_code in (400, 401) else MarketplaceError
        raise error_cls(
            f"Token {grant} failed: {response.status_code}",
            status_code=response.status_code,
            errors=[detail],
        )

    async def exchange_code(self, auth_code: str) -> TokenGrant:
        """
        Exchange an authorization code for access and refresh tokens.

        Raises:
            MarketplaceAuthError: eBay rejected the code.
            MarketplaceError: Any other token endpoint failure.
        """
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": auth_code,
                "redirect_uri": self._ru_name,
            },
            grant="exchange",
        )

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        """
        Obtain a new access token from a refresh token.

        Raises:
            MarketplaceAuthError: The refresh token is invalid, expired or revoked.
            MarketplaceError: Any other token endpoint failure.
        """
        return await self._token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "scope": " ".join(self._scopes),
            },
            grant="refresh",
        )


def _oauth_error_detail(response: httpx.Response) -> MarketplaceErrorDetail:
    """OAuth errors use ``{"error", "error_description"}`` rather than ``errors[]``."""
    try:
        body = response.json()
    except ValueError:
        return MarketplaceErrorDetail(message=response.text[:500])
    if not isinstance(body, dict):
        return MarketplaceErrorDetail(message=str(body)[:500])
    return MarketplaceErrorDetail(
        category=str(body.get("error", "")),
        message=str(body.get("error_description") or body.get("error") or ""),
    )
