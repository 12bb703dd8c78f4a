"""
Economy Formulas

Purpose
-------
Pure calculation functions for the crafting economy: currency splitting,
marketplace fees, shop pity bookkeeping, and recipe-tier selection.

Design Notes
------------
All formulas:
- Accept parameters explicitly (no config access, no database access)
- Use integer arithmetic for money; fees are always floored
- Are deterministic and testable

Usage
-----
    from src.modules.shared.formulas import listing_fee, sale_fee

    listing_fee(500, divisor=100)        # 5
    sale_fee(500, fee_bps=100)           # 5
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Optional, Tuple

from .constants import BPS_DENOMINATOR, SILVER_PER_GOLD


# ============================================================================
# CURRENCY
# ============================================================================


def split_silver(balance_silver: int) -> Tuple[int, int]:
    """
    Split a silver balance into (gold, silver) for display.

    Example:
        >>> split_silver(12345)
        (123, 45)
    """
    return divmod(balance_silver, SILVER_PER_GOLD)


# ============================================================================
# MARKETPLACE FEES
# ============================================================================


def listing_fee(price_silver: int, divisor: int) -> int:
    """
    Up-front fee charged to the seller when a listing is created.

    Example:
        >>> listing_fee(500, 100)
        5
        >>> listing_fee(99, 100)
        0
    """
    return price_silver // divisor


def sale_fee(price_silver: int, fee_bps: int) -> int:
    """
    Fee withheld from the seller's proceeds at settlement, in basis points.

    Example:
        >>> sale_fee(500, 100)
        5
        >>> sale_fee(150, 100)
        1
    """
    return (fee_bps * price_silver) // BPS_DENOMINATOR


def seller_net(price_silver: int, fee_bps: int) -> int:
    """Proceeds credited to the seller after the sale fee."""
    return price_silver - sale_fee(price_silver, fee_bps)


def listing_end_time(start_time: datetime, duration_minutes: int) -> datetime:
    return start_time + timedelta(minutes=duration_minutes)


# ============================================================================
# SHOP PITY
# ============================================================================


def buys_to_next(shop_buy_count: int, next_recipe_at: Optional[int]) -> Optional[int]:
    """
    Purchases remaining before the next guaranteed recipe drop.

    Returns None when the threshold has not been armed yet (no purchase made).

    Example:
        >>> buys_to_next(3, 7)
        4
        >>> buys_to_next(0, None) is None
        True
    """
    if next_recipe_at is None:
        return None
    return max(0, next_recipe_at - shop_buy_count)


def roll_recipe_tier(
    roll: int,
    thresholds: Iterable[Tuple[int, int]],
    default_tier: int,
) -> int:
    """
    Map a 1..N roll onto a recipe tier.

    `thresholds` is a sequence of (tier, max_roll) pairs checked in order;
    the first pair whose max_roll is >= roll wins.

    Example:
        >>> rules = [(5, 13), (4, 50), (3, 200)]
        >>> roll_recipe_tier(13, rules, 2)
        5
        >>> roll_recipe_tier(14, rules, 2)
        4
        >>> roll_recipe_tier(201, rules, 2)
        2
    """
    for tier, max_roll in thresholds:
        if roll <= max_roll:
            return int(tier)
    return default_tier


def fallback_tiers(tier: int, floor_tier: int) -> Tuple[int, ...]:
    """
    Tiers to try, highest first, when the rolled tier has no recipes.

    Example:
        >>> fallback_tiers(5, 2)
        (5, 4, 3, 2)
        >>> fallback_tiers(2, 2)
        (2,)
    """
    return tuple(range(tier, floor_tier - 1, -1))
