"""
Explicit listing state per (Product, marketplace).

A product's marketplace presence is one of three tagged states:

    Unlisted ──publish──▶ Published ──withdraw──▶ Withdrawn
                             │  ▲                    │
                             └──┘ update             └──publish──▶ Published

The persisted representation (``platform_ids`` / ``exported_to`` /
``withdrawn_at`` maps on the product) is only ever written through
``apply_state``, which keeps ``platform_ids`` and ``exported_to`` set or
cleared together.
"""

from dataclasses import dataclass
from datetime import datetime

from marketsync.core.exceptions import InvalidTransitionError
from marketsync.core.models import Marketplace, Product


@dataclass(frozen=True)
class Unlisted:
    name = "unlisted"


@dataclass(frozen=True)
class Published:
    listing_id: str
    exported_at: datetime
    name = "published"


@dataclass(frozen=True)
class Withdrawn:
    withdrawn_at: datetime
    name = "withdrawn"


ListingState = Unlisted | Published | Withdrawn


def state_of(product: Product, marketplace: Marketplace) -> ListingState:
    """Derive the tagged state from a product's persisted fields."""
    listing_id = product.platform_ids.get(marketplace)
    exported_at = product.exported_to.get(marketplace)
    if listing_id and exported_at is not None:
        return Published(listing_id=listing_id, exported_at=exported_at)
    withdrawn_at = product.withdrawn_at.get(marketplace)
    if withdrawn_at is not None:
        return Withdrawn(withdrawn_at=withdrawn_at)
    return Unlisted()


# ─── Transitions ──────────────────────────────────────────────


def publish(state: ListingState, listing_id: str, at: datetime) -> Published:
    """Unlisted/Withdrawn → Published, or Published → Published (re-publish)."""
    if not listing_id:
        raise InvalidTransitionError(current=state.name, action="publish without a listing id")
    return Published(listing_id=listing_id, exported_at=at)


def update(state: ListingState, listing_id: str, at: datetime) -> Published:
    """Published → Published. Updating anything not listed is invalid."""
    if not isinstance(state, Published):
        raise InvalidTransitionError(current=state.name, action="update")
    return Published(listing_id=listing_id or state.listing_id, exported_at=at)


def withdraw(state: ListingState, at: datetime) -> Withdrawn:
    """Published → Withdrawn."""
    if not isinstance(state, Published):
        raise InvalidTransitionError(current=state.name, action="withdraw")
    return Withdrawn(withdrawn_at=at)


def apply_state(product: Product, marketplace: Marketplace, state: ListingState) -> Product:
    """Return a copy of ``product`` whose persisted fields encode ``state``."""
    platform_ids = dict(product.platform_ids)
    exported_to = dict(product.exported_to)
    withdrawn_at = dict(product.withdrawn_at)
    key = str(marketplace)

    platform_ids.pop(key, None)
    exported_to.pop(key, None)
    withdrawn_at.pop(key, None)

    if isinstance(state, Published):
        platform_ids[key] = state.listing_id
        exported_to[key] = state.exported_at
    elif isinstance(state, Withdrawn):
        withdrawn_at[key] = state.withdrawn_at

    return product.model_copy(
        update={
            "platform_ids": platform_ids,
            "exported_to": exported_to,
            "withdrawn_at": withdrawn_at,
        }
    )
