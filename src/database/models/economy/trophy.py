"""
UserTrophy — record of an assembled artefact.
Pure schema only.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BigIntId, IdMixin, utc_now


class UserTrophy(Base, IdMixin):
    """
    Schema-only:
    - user_id
    - item_id: the artefact item credited
    - bonus_gold: bonus reported at assembly time
    - earned_at
    """

    __tablename__ = "user_trophies"
    __table_args__ = (Index("ix_user_trophies_user_time", "user_id", "earned_at"),)

    user_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    item_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("items.id", ondelete="RESTRICT"),
        nullable=False,
    )

    bonus_gold: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )
