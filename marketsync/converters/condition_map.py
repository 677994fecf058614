"""
Internal condition vocabulary → eBay ConditionEnum.

Catalog records carry conditions as internal words ("very_good"),
free-form phrases ("New with box"), or eBay's numeric condition ids
("3000"). Each is normalized to a lookup key (lowercase, runs of
non-alphanumerics collapsed to "_") and resolved through one static
table. Anything not in the table maps to ``DEFAULT_CONDITION``.
"""

import re
from types import MappingProxyType

from marketsync.core.models import MarketplaceCondition

DEFAULT_CONDITION = MarketplaceCondition.USED_EXCELLENT

_C = MarketplaceCondition

_CONDITION_TABLE: dict[str, MarketplaceCondition] = {
    # eBay numeric condition ids
    "1000": _C.NEW,
    "1500": _C.NEW_OTHER,
    "1750": _C.NEW_WITH_DEFECTS,
    "2000": _C.CERTIFIED_REFURBISHED,
    "2500": _C.SELLER_REFURBISHED,
    "2750": _C.LIKE_NEW,
    "2990": _C.USED_EXCELLENT,
    "3000": _C.USED_GOOD,
    "3010": _C.USED_ACCEPTABLE,
    "4000": _C.USED_VERY_GOOD,
    "5000": _C.USED_GOOD,
    "6000": _C.USED_ACCEPTABLE,
    "7000": _C.FOR_PARTS_OR_NOT_WORKING,
    # internal vocabulary
    "new": _C.NEW,
    "new_with_box": _C.NEW,
    "new_no_box": _C.NEW,
    "new_with_tags": _C.NEW,
    "new_without_box": _C.NEW_OTHER,
    "new_without_tags": _C.NEW_OTHER,
    "new_other": _C.NEW_OTHER,
    "open_box": _C.NEW_OTHER,
    "new_with_defects": _C.NEW_WITH_DEFECTS,
    "new_with_imperfections": _C.NEW_WITH_DEFECTS,
    "unworn": _C.NEW_OTHER,
    "mint": _C.LIKE_NEW,
    "like_new": _C.LIKE_NEW,
    "certified_refurbished": _C.CERTIFIED_REFURBISHED,
    "refurbished": _C.SELLER_REFURBISHED,
    "seller_refurbished": _C.SELLER_REFURBISHED,
    "excellent": _C.USED_EXCELLENT,
    "pre_owned": _C.USED_EXCELLENT,
    "used_excellent": _C.USED_EXCELLENT,
    "very_good": _C.USED_VERY_GOOD,
    "used_very_good": _C.USED_VERY_GOOD,
    "good": _C.USED_GOOD,
    "used": _C.USED_GOOD,
    "used_good": _C.USED_GOOD,
    "fair": _C.USED_ACCEPTABLE,
    "acceptable": _C.USED_ACCEPTABLE,
    "used_acceptable": _C.USED_ACCEPTABLE,
    "parts_repair": _C.FOR_PARTS_OR_NOT_WORKING,
    "for_parts": _C.FOR_PARTS_OR_NOT_WORKING,
    "not_working": _C.FOR_PARTS_OR_NOT_WORKING,
    "for_parts_or_not_working": _C.FOR_PARTS_OR_NOT_WORKING,
}

CONDITION_TABLE = MappingProxyType(_CONDITION_TABLE)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def condition_key(raw: str | int | None) -> str:
    """Normalize a raw condition value into a lookup key."""
    if raw is None:
        return ""
    return _NON_ALNUM.sub("_", str(raw).strip().lower()).strip("_")


def normalize_condition(
    raw: str | int | None,
    default: MarketplaceCondition = DEFAULT_CONDITION,
) -> MarketplaceCondition:
    """
    Map an internal condition value to the marketplace enum.

    Values that already are enum members ("USED_GOOD") pass through.
    Unrecognized or empty input returns ``default``.
    """
    key = condition_key(raw)
    if not key:
        return default
    if key.upper() in MarketplaceCondition.__members__:
        return MarketplaceCondition[key.upper()]
    return CONDITION_TABLE.get(key, default)
