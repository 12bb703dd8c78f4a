"""
Marketplace module: buy-now listings with escrowed goods.
"""

from .service import MarketplaceService

__all__ = ["MarketplaceService"]
