"""
CurrencyLedgerEntry — append-only currency audit log.
Pure schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BigIntId, IdMixin, utc_now


class CurrencyLedgerEntry(Base, IdMixin):
    """
    One signed balance change (or zero-delta marker) for a user.

    Schema-only:
    - user_id
    - delta_silver: signed change applied to users.balance_silver
    - reason: LedgerReason value
    - ref: optional reference ("listing:12", "recipe:R_GLASS")
    - created_at

    Rows are never updated or deleted. Per user, sum(delta_silver) equals
    the stored balance.
    """

    __tablename__ = "currency_ledger"
    __table_args__ = (
        Index("ix_currency_ledger_user_time", "user_id", "created_at"),
        Index("ix_currency_ledger_reason", "reason"),
    )

    user_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    delta_silver: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    reason: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )

    ref: Mapped[Optional[str]] = mapped_column(
        String(128),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )
