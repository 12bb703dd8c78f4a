"""
Inventory module: item/recipe holdings and the credit/debit primitive.
"""

from .service import InventoryService

__all__ = ["InventoryService"]
