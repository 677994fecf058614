"""
Custom exception hierarchy for MarketSync.

All application-specific exceptions inherit from MarketSyncError,
enabling catch-all handling at the API layer while allowing
fine-grained handling in the sync engine.

Setup-phase errors (AuthError, ConfigurationError, ReconnectRequired)
abort a whole request. Remote errors raised while processing a single
item are caught at the batch boundary and recorded per item.
"""

from dataclasses import asdict, dataclass, field


class MarketSyncError(Exception):
    """Base exception for all MarketSync application errors."""

    def __init__(self, message: str = "", details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# ─── Setup Errors ─────────────────────────────────────────────


class AuthError(MarketSyncError):
    """No caller identity (missing or invalid bearer token, no tenant claim)."""

    pass


class ConfigurationError(MarketSyncError):
    """Tenant is missing credentials, listing policies, or an inventory location."""

    pass


class ReconnectRequired(MarketSyncError):
    """Marketplace credential can no longer be refreshed; the tenant must reconnect."""

    pass


# ─── Local State Errors ───────────────────────────────────────


class RecordNotFoundError(MarketSyncError):
    """A product id is not present in the tenant's catalog."""

    pass


class InvalidTransitionError(MarketSyncError):
    """A listing state transition is not allowed from the current state."""

    def __init__(self, current: str, action: str, **kwargs):
        self.current = current
        self.action = action
        message = f"Cannot {action} a listing in state '{current}'"
        super().__init__(message=message, **kwargs)


# ─── Marketplace Errors ───────────────────────────────────────


@dataclass(frozen=True)
class MarketplaceErrorDetail:
    """One entry of the marketplace's ``errors`` array, kept structured."""

    error_id: int | None = None
    domain: str = ""
    category: str = ""
    message: str = ""
    long_message: str = ""
    parameters: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict) -> "MarketplaceErrorDetail":
        params = {
            p.get("name", ""): str(p.get("value", ""))
            for p in payload.get("parameters") or []
            if isinstance(p, dict)
        }
        return cls(
            error_id=payload.get("errorId"),
            domain=payload.get("domain", ""),
            category=payload.get("category", ""),
            message=payload.get("message", ""),
            long_message=payload.get("longMessage", ""),
            parameters=params,
        )

    def to_dict(self) -> dict:
        return asdict(self)

    def __str__(self) -> str:
        text = self.long_message or self.message or "Unknown marketplace error"
        if self.parameters:
            params = ", ".join(f"{k}={v}" for k, v in self.parameters.items())
            text = f"{text} ({params})"
        return text


class MarketplaceError(MarketSyncError):
    """A remote marketplace call failed."""

    def __init__(
        self,
        message: str = "",
        status_code: int | None = None,
        errors: list[MarketplaceErrorDetail] | None = None,
        details: dict | None = None,
    ):
        self.status_code = status_code
        self.errors = errors or []
        details = dict(details or {})
        if self.errors:
            details.setdefault("errors", [e.to_dict() for e in self.errors])
        if status_code is not None:
            details.setdefault("status_code", status_code)
        super().__init__(message=message, details=details)

    def summary(self) -> str:
        """Human readable message listing every structured error."""
        if not self.errors:
            return self.message
        return "; ".join(str(e) for e in self.errors)


class MarketplaceAuthError(MarketplaceError):
    """The marketplace rejected the access token (HTTP 401)."""

    pass


class RemoteValidationError(MarketplaceError):
    """The marketplace rejected a payload (HTTP 400/409)."""

    pass


class NotFoundError(MarketplaceError):
    """The remote offer, listing, or inventory item does not exist."""

    pass


class RemoteTimeoutError(MarketplaceError, TimeoutError):
    """A single outbound call exceeded its time budget."""

    pass


# ─── Listing Data Errors ──────────────────────────────────────


class ListingDataError(MarketSyncError):
    """A product lacks data required to build a listing (price, starting bid)."""

    pass
