"""
Shop module: base roll gacha with a recipe pity timer.
"""

from .service import ShopService

__all__ = ["ShopService"]
