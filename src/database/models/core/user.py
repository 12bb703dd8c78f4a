"""
User Model
==========

Identity, currency balance and shop pity state for a player.

Schema-only representation of:
- Identity (email, admin / disabled flags)
- Balance in silver (100 silver = 1 gold), never negative
- Shop purchase counter and the pending recipe-drop threshold

All behavior and game rules live in service/domain layers.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, TimestampMixin


class User(Base, IdMixin, TimestampMixin):
    """
    A player account and its economic state.

    The user row is the lock anchor for every operation that changes the
    user's balance or holdings.
    """

    # ========================================================================
    # TABLE CONFIGURATION
    # ========================================================================

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("balance_silver >= 0", name="balance_non_negative"),
        CheckConstraint("shop_buy_count >= 0", name="shop_buy_count_non_negative"),
        Index("ix_users_email", "email", unique=True),
    )

    # ========================================================================
    # IDENTITY
    # ========================================================================

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Login email, stored lower-cased",
    )

    is_admin: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    is_disabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    # ========================================================================
    # CURRENCY
    # ========================================================================

    balance_silver: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
        doc="Balance in minor units; always equals the sum of ledger deltas",
    )

    # ========================================================================
    # SHOP PITY STATE
    # ========================================================================

    shop_buy_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Monotonic count of base rolls purchased",
    )

    next_recipe_at: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        default=None,
        doc="shop_buy_count value at which the next recipe drop triggers",
    )

    def __repr__(self) -> str:
        return (
            f"<User id={self.id} email={self.email!r} "
            f"balance_silver={self.balance_silver} shop_buy_count={self.shop_buy_count}>"
        )
