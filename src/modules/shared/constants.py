"""
Economy Domain Constants

Purpose
-------
Provide domain-level constants for the crafting economy: currency units,
shop pricing and pity, recipe-tier odds, crafting outcomes, artefact
assembly, and marketplace fees.

IMPORTANT:
These are the shipped defaults. Every tunable value is also exposed through
ConfigManager under `economy.*` (see config/economy.yaml); services read the
config key and fall back to the constant here.

Design Notes
------------
- Values are annotated with typing.Final to signal immutability
- Grouped by economy system
- No side effects at import time
"""

from __future__ import annotations

from typing import Final, Tuple

# ============================================================================
# CURRENCY
# ============================================================================

SILVER_PER_GOLD: Final[int] = 100  # Balances are stored in silver

# ============================================================================
# CATALOG
# ============================================================================

MIN_TIER: Final[int] = 1
MAX_TIER: Final[int] = 6  # Tier 6 holds artefacts
RECIPE_CODE_PREFIX: Final[str] = "R_"

# ============================================================================
# SHOP
# ============================================================================

BASE_ROLL_PRICE_SILVER: Final[int] = 100
PITY_INTERVAL_MIN: Final[int] = 4  # Buys between recipe drops, inclusive
PITY_INTERVAL_MAX: Final[int] = 8
TIER_ROLL_MAX: Final[int] = 1000

# (tier, highest roll that lands it); anything above falls to the default tier
TIER_THRESHOLDS: Final[Tuple[Tuple[int, int], ...]] = (
    (5, 13),  # 1.3%
    (4, 50),  # 3.7%
    (3, 200),  # 15%
)
DEFAULT_RECIPE_TIER: Final[int] = 2
FALLBACK_FLOOR_TIER: Final[int] = 2
BASE_MATERIAL_TIER: Final[int] = 1

# ============================================================================
# CRAFTING
# ============================================================================

CRAFT_SUCCESS_RATE: Final[float] = 0.90
CONSOLATION_ITEM_CODE: Final[str] = "SCRAP"
CRAFT_ATTEMPTS_CAP: Final[int] = 5

# ============================================================================
# ARTEFACT
# ============================================================================

ARTEFACT_ITEM_CODE: Final[str] = "ARTEFACT"
ARTEFACT_REQUIRED_TIER: Final[int] = 5
ARTEFACT_REQUIRED_DISTINCT: Final[int] = 10

# ============================================================================
# MARKETPLACE
# ============================================================================

LISTING_FEE_DIVISOR: Final[int] = 100  # Listing fee is 1% of price, floored
SALE_FEE_BPS: Final[int] = 100  # Basis points withheld from the seller
BPS_DENOMINATOR: Final[int] = 10_000
LISTING_DURATION_MINUTES: Final[int] = 10_080  # 7 days

# ============================================================================
# LEDGER
# ============================================================================

LEDGER_HISTORY_MAX_LIMIT: Final[int] = 500
