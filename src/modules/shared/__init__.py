"""
Economy Shared Module

Purpose
-------
Provides domain-level foundations for all economy modules:
- Domain exceptions and error handling
- Base service and repository patterns
- Economy constants and formulas
- Injectable randomness

Architecture
------------
- BaseService: Foundation for service classes (logging, config, events)
- BaseRepository: Type-safe database access patterns
- Domain exceptions: Player-facing rejections with stable error codes
- Formulas: Pure calculation functions (fees, pity, tier rolls)
- Constants: Shipped defaults for every tunable economy value
- RandomSource: Protocol for the randomness services draw from

Usage
-----
    from src.modules.shared import (
        BaseService,
        BaseRepository,
        InsufficientFundsError,
        listing_fee,
    )
"""

from __future__ import annotations

# Base patterns
from .base_repository import BaseRepository
from .base_service import BaseService

# Domain exceptions
from .exceptions import (
    EconomyDomainException,
    ErrorSeverity,
    EscrowIntegrityError,
    ForbiddenError,
    InsufficientDistinctItemsError,
    InsufficientFundsError,
    InsufficientResourcesError,
    InsufficientStockError,
    InvalidPriceError,
    InvalidTargetError,
    ListingNotLiveError,
    MissingMaterialsError,
    NotFoundError,
    RecipeNotFoundError,
    RecipeNotOwnedError,
    SelfPurchaseError,
    ValidationError,
    get_error_severity,
    is_transient_error,
    should_alert,
)

# Formulas
from .formulas import (
    buys_to_next,
    fallback_tiers,
    listing_end_time,
    listing_fee,
    roll_recipe_tier,
    sale_fee,
    seller_net,
    split_silver,
)

# Randomness
from .random_source import RandomSource, default_random_source

__all__ = [
    # Base patterns
    "BaseService",
    "BaseRepository",
    # Exceptions
    "EconomyDomainException",
    "ErrorSeverity",
    "EscrowIntegrityError",
    "ForbiddenError",
    "InsufficientDistinctItemsError",
    "InsufficientFundsError",
    "InsufficientResourcesError",
    "InsufficientStockError",
    "InvalidPriceError",
    "InvalidTargetError",
    "ListingNotLiveError",
    "MissingMaterialsError",
    "NotFoundError",
    "RecipeNotFoundError",
    "RecipeNotOwnedError",
    "SelfPurchaseError",
    "ValidationError",
    "get_error_severity",
    "is_transient_error",
    "should_alert",
    # Formulas
    "buys_to_next",
    "fallback_tiers",
    "listing_end_time",
    "listing_fee",
    "roll_recipe_tier",
    "sale_fee",
    "seller_net",
    "split_silver",
    # Randomness
    "RandomSource",
    "default_random_source",
]
