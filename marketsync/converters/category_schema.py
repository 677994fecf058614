"""
Per-category listing schema.

Each supported catalog category has one ``CategorySchema``: its eBay
category id, the item-type label, the attribute → aspect-name table,
and the subset of conditions the category accepts. The registry is
built once at import and is read-only afterwards.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType

from marketsync.core.exceptions import ConfigurationError
from marketsync.core.models import MarketplaceCondition


class CategoryCode(StrEnum):
    """Catalog category codes with a listing schema."""
    WATCH = "watch"
    HANDBAG = "handbag"


@dataclass(frozen=True)
class CategorySchema:
    code: CategoryCode
    category_id: str
    item_type: str
    aspect_map: Mapping[str, str] = field(default_factory=dict)
    allowed_conditions: frozenset[MarketplaceCondition] | None = None
    fallback_condition: MarketplaceCondition = MarketplaceCondition.USED_EXCELLENT

    def coerce_condition(self, condition: MarketplaceCondition) -> MarketplaceCondition:
        """Return ``condition`` if this category accepts it, else the category fallback."""
        if self.allowed_conditions is None or condition in self.allowed_conditions:
            return condition
        return self.fallback_condition


_C = MarketplaceCondition

_WATCH_ASPECTS = MappingProxyType({
    "movement_type": "Movement",
    "case_material": "Case Material",
    "case_size": "Case Size",
    "dial_color": "Dial Color",
    "bracelet_material": "Band Material",
    "band_material": "Band Material",
    "band_color": "Band Color",
    "water_resistance": "Water Resistance",
    "crystal_type": "Crystal",
    "display_type": "Display",
    "bezel_material": "Bezel Material",
    "features": "Features",
})

_HANDBAG_ASPECTS = MappingProxyType({
    "handbag_style": "Style",
    "exterior_material": "Exterior Material",
    "exterior_color": "Color",
    "hardware_color": "Hardware Color",
    "lining_material": "Lining Material",
    "closure_type": "Closure",
    "handle_drop": "Handle/Strap Drop",
    "bag_width": "Bag Width",
    "bag_height": "Bag Height",
    "bag_depth": "Bag Depth",
})

_REGISTRY: Mapping[CategoryCode, CategorySchema] = MappingProxyType({
    CategoryCode.WATCH: CategorySchema(
        code=CategoryCode.WATCH,
        category_id="31387",
        item_type="Wristwatch",
        aspect_map=_WATCH_ASPECTS,
        allowed_conditions=frozenset({
            _C.NEW,
            _C.NEW_OTHER,
            _C.NEW_WITH_DEFECTS,
            _C.USED_EXCELLENT,
            _C.USED_GOOD,
            _C.USED_ACCEPTABLE,
            _C.FOR_PARTS_OR_NOT_WORKING,
        }),
        fallback_condition=_C.USED_EXCELLENT,
    ),
    CategoryCode.HANDBAG: CategorySchema(
        code=CategoryCode.HANDBAG,
        category_id="169291",
        item_type="Handbag",
        aspect_map=_HANDBAG_ASPECTS,
        allowed_conditions=frozenset({
            _C.NEW,
            _C.NEW_OTHER,
            _C.NEW_WITH_DEFECTS,
            _C.USED_EXCELLENT,
            _C.USED_GOOD,
            _C.USED_ACCEPTABLE,
        }),
        fallback_condition=_C.USED_GOOD,
    ),
})

DEFAULT_CATEGORY = CategoryCode.WATCH


def get_category_schema(code: str | None) -> CategorySchema:
    """
    Look up the schema for a catalog category code.

    An empty code uses the default (watch) category.

    Raises:
        ConfigurationError: The code has no listing schema.
    """
    if not code:
        return _REGISTRY[DEFAULT_CATEGORY]
    try:
        return _REGISTRY[CategoryCode(code.strip().lower())]
    except ValueError as e:
        raise ConfigurationError(
            f"No listing schema for category '{code}'",
            details={"category_code": code, "supported": [c.value for c in CategoryCode]},
        ) from e


def supported_categories() -> list[str]:
    return [c.value for c in _REGISTRY]
