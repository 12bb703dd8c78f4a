"""
Crafting module: recipe crafting with probabilistic failure.
"""

from .service import CraftingService

__all__ = ["CraftingService"]
