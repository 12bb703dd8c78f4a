"""
Recipe and RecipeIngredient — catalog crafting definitions.
Pure schema only.
"""

from __future__ import annotations

from typing import List

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.database.base import Base, BigIntId, IdMixin


class Recipe(Base, IdMixin):
    """
    Reference catalog recipe: ingredients in, exactly one output item out.

    Schema-only:
    - code: unique identifier, prefixed "R_"
    - name, tier
    - output_item_id: the item credited on a successful craft
    - ingredients: ordered by `position`
    """

    __tablename__ = "recipes"
    __table_args__ = (
        CheckConstraint("tier BETWEEN 1 AND 6", name="tier_range"),
        Index("ix_recipes_code", "code", unique=True),
        Index("ix_recipes_tier", "tier"),
    )

    code: Mapped[str] = mapped_column(String(64), nullable=False)

    name: Mapped[str] = mapped_column(String(128), nullable=False)

    tier: Mapped[int] = mapped_column(Integer, nullable=False)

    output_item_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("items.id", ondelete="RESTRICT"),
        nullable=False,
    )

    ingredients: Mapped[List["RecipeIngredient"]] = relationship(
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeIngredient.position",
        lazy="selectin",
    )


class RecipeIngredient(Base, IdMixin):
    """One required input of a recipe (item and quantity)."""

    __tablename__ = "recipe_ingredients"
    __table_args__ = (
        UniqueConstraint("recipe_id", "item_id", name="uq_recipe_ingredients_pair"),
        CheckConstraint("qty > 0", name="qty_positive"),
    )

    recipe_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("recipes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    item_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("items.id", ondelete="RESTRICT"),
        nullable=False,
    )

    qty: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Ingredient order; the first short ingredient is reported",
    )

    recipe: Mapped[Recipe] = relationship(back_populates="ingredients")
