"""
Admin module: bonus-gold accessor, balance adjustments, integrity audit.
"""

from .service import AdminService

__all__ = ["AdminService"]
