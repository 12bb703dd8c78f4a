"""
Database Model Enums
====================

Lightweight enumerations for categorical columns.

Stored as plain strings; services compare against `.value`. These are
declarative schema helpers, not business logic containers.
"""

from __future__ import annotations

import enum


class ListingKind(str, enum.Enum):
    """What a marketplace listing (and its escrow record) carries."""

    ITEM = "item"
    RECIPE = "recipe"


class ListingStatus(str, enum.Enum):
    """
    Marketplace listing lifecycle.

    `live` is the only non-terminal state; `paid` and `canceled` are final.
    """

    LIVE = "live"
    PAID = "paid"
    CANCELED = "canceled"


class LedgerReason(str, enum.Enum):
    """
    Reason codes for currency ledger entries.

    Marker reasons (`RECIPE_DROP`, `CRAFT_SUCCESS`, `CRAFT_FAIL`) are written
    with a zero delta and exist for the audit trail only.
    """

    SHOP_BUY_T1 = "SHOP_BUY_T1"
    RECIPE_DROP = "RECIPE_DROP"
    CRAFT_SUCCESS = "CRAFT_SUCCESS"
    CRAFT_FAIL = "CRAFT_FAIL"
    SALE_LIST_FEE = "SALE_LIST_FEE"
    SALE_BUY = "SALE_BUY"
    SALE_EARN = "SALE_EARN"
    ADMIN_ADJUST = "ADMIN_ADJUST"
