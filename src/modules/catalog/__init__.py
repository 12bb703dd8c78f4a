"""
Reference catalog: immutable lookup snapshot and the YAML seeder.
"""

from .seeder import CatalogSeeder
from .service import CatalogService, IngredientDef, ItemDef, RecipeDef

__all__ = [
    "CatalogService",
    "CatalogSeeder",
    "ItemDef",
    "RecipeDef",
    "IngredientDef",
]
