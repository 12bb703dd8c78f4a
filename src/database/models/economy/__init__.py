"""
Economy domain ORM models.

Exports:
- UserItemHolding
- UserRecipeHolding
- CurrencyLedgerEntry
- Listing
- EscrowRecord
- UserTrophy
"""

from src.core.database.base import Base

from .holding import UserItemHolding, UserRecipeHolding
from .ledger import CurrencyLedgerEntry
from .listing import EscrowRecord, Listing
from .trophy import UserTrophy

__all__ = [
    "Base",
    "UserItemHolding",
    "UserRecipeHolding",
    "CurrencyLedgerEntry",
    "Listing",
    "EscrowRecord",
    "UserTrophy",
]
