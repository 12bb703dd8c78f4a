"""
Per-user inventory holdings.

Schema-only representation of:
- UserItemHolding: (user, item) -> qty
- UserRecipeHolding: (user, recipe) -> charges + attempts

Zero-quantity rows are permitted and treated as absent by read paths.
"""

from __future__ import annotations

from sqlalchemy import CheckConstraint, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BigIntId, IdMixin


class UserItemHolding(Base, IdMixin):
    """Quantity of one catalog item held by one user."""

    __tablename__ = "user_items"
    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_user_items_pair"),
        CheckConstraint("qty >= 0", name="qty_non_negative"),
    )

    user_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    item_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("items.id", ondelete="RESTRICT"),
        nullable=False,
    )

    qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class UserRecipeHolding(Base, IdMixin):
    """Charges of one recipe held by one user."""

    __tablename__ = "user_recipes"
    __table_args__ = (
        UniqueConstraint("user_id", "recipe_id", name="uq_user_recipes_pair"),
        CheckConstraint("qty >= 0", name="qty_non_negative"),
        CheckConstraint("attempts >= 0", name="attempts_non_negative"),
    )

    user_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    recipe_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("recipes.id", ondelete="RESTRICT"),
        nullable=False,
    )

    qty: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Remaining craft charges",
    )

    attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Validated craft attempts, capped; informational only",
    )
