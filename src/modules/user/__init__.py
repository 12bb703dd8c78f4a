"""
User module: registration and profiles.
"""

from .service import UserService

__all__ = ["UserService"]
