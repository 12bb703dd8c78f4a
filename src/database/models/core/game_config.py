from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, TimestampMixin


class GameConfig(Base, IdMixin, TimestampMixin):
    """
    Dynamic economy configuration overrides stored in the database.

    Allows balance parameters (shop price, fee rates, success rate) to be tuned
    without redeploying. Managed by ConfigManager at the infra layer.

    Schema-only model:
    - config_key: top-level configuration key (e.g. "economy")
    - config_value: JSON payload deep-merged over the YAML defaults
    - description: human-friendly description of the config entry
    - modified_by: identifier of the last modifier
    """

    __tablename__ = "game_config"

    config_key: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )

    config_value: Mapped[Dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        default="",
    )

    modified_by: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )
