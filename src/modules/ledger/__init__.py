"""
Ledger module: balance mutations and the append-only currency ledger.
"""

from .service import LedgerService

__all__ = ["LedgerService"]
