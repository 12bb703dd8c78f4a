"""
Core database models.

This package exports the foundational ORM models used across the system:
- User
- GameConfig

All models inherit from the shared SQLAlchemy Base.
"""

from src.core.database.base import Base

from .game_config import GameConfig
from .user import User

__all__ = [
    "Base",
    "User",
    "GameConfig",
]
