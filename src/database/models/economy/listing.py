"""
Marketplace Listing and EscrowRecord
====================================

Schema-only representation of the buy-now marketplace:
- Listing: seller, target (item or recipe), qty, price, fee rate, lifecycle
- EscrowRecord: goods withdrawn from the seller while a listing is live

A `live` listing has exactly one escrow record; a terminal listing has none.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BigIntId, IdMixin, utc_now

_ONE_TARGET = (
    "(kind = 'item' AND item_id IS NOT NULL AND recipe_id IS NULL) OR "
    "(kind = 'recipe' AND recipe_id IS NOT NULL AND item_id IS NULL)"
)


class Listing(Base, IdMixin):
    """
    A buy-now marketplace listing.

    Created `live`; transitions once to `paid` or `canceled`.
    """

    # ========================================================================
    # TABLE CONFIGURATION
    # ========================================================================

    __tablename__ = "listings"
    __table_args__ = (
        CheckConstraint("kind IN ('item', 'recipe')", name="kind_valid"),
        CheckConstraint(_ONE_TARGET, name="one_target"),
        CheckConstraint("qty > 0", name="qty_positive"),
        CheckConstraint("price_silver > 0", name="price_positive"),
        CheckConstraint("fee_bps >= 0 AND fee_bps <= 10000", name="fee_bps_range"),
        CheckConstraint("status IN ('live', 'paid', 'canceled')", name="status_valid"),
        Index("ix_listings_status_end", "status", "end_time"),
        Index("ix_listings_seller", "seller_user_id"),
    )

    # ========================================================================
    # OWNERSHIP & TARGET
    # ========================================================================

    seller_user_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    kind: Mapped[str] = mapped_column(String(16), nullable=False)

    item_id: Mapped[Optional[int]] = mapped_column(
        BigIntId,
        ForeignKey("items.id", ondelete="RESTRICT"),
        nullable=True,
    )

    recipe_id: Mapped[Optional[int]] = mapped_column(
        BigIntId,
        ForeignKey("recipes.id", ondelete="RESTRICT"),
        nullable=True,
    )

    qty: Mapped[int] = mapped_column(Integer, nullable=False)

    # ========================================================================
    # PRICING
    # ========================================================================

    price_silver: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        doc="Buy-now price in minor units",
    )

    fee_bps: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=100,
        doc="Sale fee in basis points, fixed at creation",
    )

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="live",
    )

    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )

    end_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # ========================================================================
    # SETTLEMENT
    # ========================================================================

    winner_user_id: Mapped[Optional[int]] = mapped_column(
        BigIntId,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    sold_price_silver: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
    )

    settled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )


class EscrowRecord(Base, IdMixin):
    """Goods held on behalf of a live listing."""

    __tablename__ = "escrow"
    __table_args__ = (
        CheckConstraint("qty > 0", name="qty_positive"),
        CheckConstraint(_ONE_TARGET, name="one_target"),
    )

    listing_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("listings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    owner_user_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    kind: Mapped[str] = mapped_column(String(16), nullable=False)

    item_id: Mapped[Optional[int]] = mapped_column(
        BigIntId,
        ForeignKey("items.id", ondelete="RESTRICT"),
        nullable=True,
    )

    recipe_id: Mapped[Optional[int]] = mapped_column(
        BigIntId,
        ForeignKey("recipes.id", ondelete="RESTRICT"),
        nullable=True,
    )

    qty: Mapped[int] = mapped_column(Integer, nullable=False)
