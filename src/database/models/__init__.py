"""
Database Models Package
========================

This package contains all SQLAlchemy ORM models for the economy engine,
organized by domain.

All models:
- Schema-only, no business logic
- Use Mapped[] syntax with mapped_column()
- Inherit from the shared mixins (IdMixin, TimestampMixin)
- Back invariants with CHECK / UNIQUE constraints

Domain Organization:
--------------------
- core: User, GameConfig
- catalog: Item, Recipe, RecipeIngredient (reference data)
- economy: holdings, currency ledger, listings, escrow, trophies
- enums: Shared type-safe enumerations
"""

from src.core.database.base import Base

# Core models
from .core import GameConfig, User

# Catalog models
from .catalog import Item, Recipe, RecipeIngredient

# Economy models
from .economy import (
    CurrencyLedgerEntry,
    EscrowRecord,
    Listing,
    UserItemHolding,
    UserRecipeHolding,
    UserTrophy,
)

# Enums
from . import enums

__all__ = [
    # Base
    "Base",
    # Core
    "User",
    "GameConfig",
    # Catalog
    "Item",
    "Recipe",
    "RecipeIngredient",
    # Economy
    "UserItemHolding",
    "UserRecipeHolding",
    "CurrencyLedgerEntry",
    "Listing",
    "EscrowRecord",
    "UserTrophy",
    # Enums module
    "enums",
]
