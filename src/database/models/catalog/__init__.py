"""
Reference catalog ORM models.

Exports:
- Item
- Recipe
- RecipeIngredient

Written by the seeding process; read-only to the economy engine except for
`Item.bonus_gold`, which the admin collaborator may change.
"""

from src.core.database.base import Base

from .item import Item
from .recipe import Recipe, RecipeIngredient

__all__ = [
    "Base",
    "Item",
    "Recipe",
    "RecipeIngredient",
]
