"""
Item — catalog entry for a material, component or artefact.
Pure schema only.
"""

from __future__ import annotations

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin


class Item(Base, IdMixin):
    """
    Reference catalog item.

    Schema-only:
    - code: unique stable identifier (e.g. "STONE", "ARTEFACT")
    - name: display name
    - tier: 1 (raw material) through 6 (artefact)
    - volatile: non-standard item (Scrap); never granted by the shop and
      purged from holdings at startup
    - bonus_gold: admin-tunable attribute, meaningful for the artefact only
    """

    __tablename__ = "items"
    __table_args__ = (
        CheckConstraint("tier BETWEEN 1 AND 6", name="tier_range"),
        CheckConstraint("bonus_gold >= 0", name="bonus_gold_non_negative"),
        Index("ix_items_code", "code", unique=True),
        Index("ix_items_tier", "tier"),
    )

    code: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
    )

    tier: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    volatile: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Non-standard tier item (Scrap)",
    )

    bonus_gold: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
