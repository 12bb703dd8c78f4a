"""
Artefact Service
================

Purpose
-------
Assembles the singular Artefact item from ten distinct top-tier items.

Assembly Rules
--------------
- Qualifying holdings: non-volatile items of `economy.artefact.required_tier`
  (5) with qty > 0
- At least `economy.artefact.required_distinct` (10) distinct qualifying
  items are required (`InsufficientDistinctItemsError` otherwise)
- One unit each is taken from the first ten qualifying items in ascending
  item id order, so the same holdings always consume the same items
- One Artefact (`economy.artefact.item_code`) is credited and a trophy row
  records the bonus gold configured on the Artefact at that moment

The bonus gold is read from the database, not the catalog snapshot, because
the admin tool changes it at runtime. It is reported, not paid out.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.service import DatabaseService
from src.core.logging.logger import get_logger
from src.core.validation.input_validator import InputValidator
from src.database.models.catalog import Item
from src.database.models.economy import UserItemHolding, UserTrophy
from src.modules.shared import constants as C
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import InsufficientDistinctItemsError, NotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.catalog.service import CatalogService, ItemDef
    from src.modules.inventory.service import InventoryService
    from src.modules.ledger.service import LedgerService


class TrophyRepository(BaseRepository[UserTrophy]):
    """Repository for UserTrophy."""

    pass


class ArtefactService(BaseService):
    """
    Artefact assembly and trophy reads.

    Public Methods
    --------------
    - assemble_artefact() -> Consume ten distinct tier-5 items, grant the Artefact
    - list_trophies() -> Artefacts a user has assembled
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        catalog: CatalogService,
        ledger: LedgerService,
        inventory: InventoryService,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._catalog = catalog
        self._ledger = ledger
        self._inventory = inventory
        self._trophy_repo = TrophyRepository(
            model_class=UserTrophy,
            logger=get_logger(f"{__name__}.TrophyRepository"),
        )

    def _artefact_item(self) -> ItemDef:
        code = self.get_config("economy.artefact.item_code", C.ARTEFACT_ITEM_CODE)
        item = self._catalog.get_item_by_code(code)
        if item is None:
            raise NotFoundError("Item", code)
        return item

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def assemble_artefact(
        self,
        user_id: int,
        session: Optional[AsyncSession] = None,
    ) -> Dict[str, Any]:
        """
        Assemble one Artefact.

        Returns:
            {
                "user_id": int,
                "artefact": {"id", "code", "name", "tier"},
                "bonus_gold": int,
                "consumed": [{"item_id", "code", "name"}, ...],
                "trophy_id": int,
            }

        Raises:
            NotFoundError: User or Artefact item does not exist
            InsufficientDistinctItemsError: Fewer than ten distinct items held
        """
        user_id = InputValidator.validate_id(user_id, "user_id")
        required_tier = self.get_config_int("economy.artefact.required_tier", C.ARTEFACT_REQUIRED_TIER)
        required = self.get_config_int(
            "economy.artefact.required_distinct", C.ARTEFACT_REQUIRED_DISTINCT
        )
        artefact = self._artefact_item()

        self.log_operation(
            "assemble_artefact",
            user_id=user_id,
            required_tier=required_tier,
            required_distinct=required,
            has_session=session is not None,
        )

        async def _do_assemble(tx_session: AsyncSession) -> Dict[str, Any]:
            await self._ledger.lock_user(tx_session, user_id)

            qualifying = (
                await tx_session.execute(
                    select(UserItemHolding.item_id)
                    .join(Item, Item.id == UserItemHolding.item_id)
                    .where(
                        UserItemHolding.user_id == user_id,
                        UserItemHolding.qty > 0,
                        Item.tier == required_tier,
                        Item.volatile.is_(False),
                    )
                    .order_by(UserItemHolding.item_id)
                )
            ).scalars().all()

            if len(qualifying) < required:
                raise InsufficientDistinctItemsError(
                    tier=required_tier, required=required, current=len(qualifying)
                )

            consumed = []
            for item_id in qualifying[:required]:
                await self._inventory.debit(tx_session, user_id, item_id=item_id, qty=1)
                item = self._catalog.get_item(item_id)
                consumed.append(
                    {
                        "item_id": item_id,
                        "code": item.code if item else None,
                        "name": item.name if item else None,
                    }
                )

            await self._inventory.credit(tx_session, user_id, item_id=artefact.id, qty=1)

            bonus_gold = (
                await tx_session.execute(select(Item.bonus_gold).where(Item.id == artefact.id))
            ).scalar_one()

            trophy = self._trophy_repo.add(
                tx_session,
                UserTrophy(user_id=user_id, item_id=artefact.id, bonus_gold=bonus_gold),
            )
            await tx_session.flush()

            return {
                "user_id": user_id,
                "artefact": artefact.to_dict(),
                "bonus_gold": bonus_gold,
                "consumed": consumed,
                "trophy_id": trophy.id,
            }

        if session is not None:
            return await _do_assemble(session)

        async with DatabaseService.get_transaction() as tx_session:
            result = await _do_assemble(tx_session)

        await self.emit_event("artefact.assembled", result)
        self.log.info(
            "Artefact assembled",
            extra={
                "user_id": user_id,
                "bonus_gold": result["bonus_gold"],
                "trophy_id": result["trophy_id"],
            },
        )
        return result

    async def list_trophies(self, user_id: int) -> Dict[str, Any]:
        user_id = InputValidator.validate_id(user_id, "user_id")

        async with DatabaseService.get_session() as session:
            trophies = await self._trophy_repo.find_many_where(
                session,
                UserTrophy.user_id == user_id,
                order_by=[UserTrophy.earned_at.desc(), UserTrophy.id.desc()],
            )

        return {
            "user_id": user_id,
            "trophies": [
                {
                    "id": trophy.id,
                    "item_id": trophy.item_id,
                    "bonus_gold": trophy.bonus_gold,
                    "earned_at": trophy.earned_at.isoformat(),
                }
                for trophy in trophies
            ],
        }
