"""
Validation package.

Exposes `InputValidator`, the canonical entry point for validating
caller-supplied ids, quantities, prices and strings before any service
touches the database.
"""

from src.core.validation.input_validator import InputValidator

__all__ = [
    "InputValidator",
]
