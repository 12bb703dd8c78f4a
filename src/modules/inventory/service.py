"""
Inventory Service
=================

Purpose
-------
Owns per-user holdings of catalog items and recipe charges. Provides the
credit/debit primitive every economy operation uses to move goods, plus the
read paths for a user's inventory.

Domain
------
- UserItemHolding: (user, item) -> qty
- UserRecipeHolding: (user, recipe) -> qty (charges) + attempts
- Zero-quantity rows may exist; read paths treat them as absent

Transaction Rules
-----------------
- `credit` / `debit` never open a transaction. They run inside the caller's
  session, and the caller must already hold the owning user's row lock.
  Holding rows are additionally locked (SELECT ... FOR UPDATE) before they
  change.
- Exactly one of `item_id` / `recipe_id` names the target. Anything else is a
  programming error (`InvalidTargetError`).
- A debit larger than the held quantity raises `InsufficientStockError` and
  leaves the row untouched.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.service import DatabaseService
from src.core.logging.logger import get_logger
from src.core.validation.input_validator import InputValidator
from src.database.models.catalog import Item, Recipe
from src.database.models.core import User
from src.database.models.economy import UserItemHolding, UserRecipeHolding
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import (
    InsufficientStockError,
    InvalidTargetError,
    NotFoundError,
)

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus

Holding = Union[UserItemHolding, UserRecipeHolding]


# ============================================================================
# Repositories
# ============================================================================


class ItemHoldingRepository(BaseRepository[UserItemHolding]):
    """Repository for UserItemHolding."""

    pass


class RecipeHoldingRepository(BaseRepository[UserRecipeHolding]):
    """Repository for UserRecipeHolding."""

    pass


# ============================================================================
# InventoryService
# ============================================================================


class InventoryService(BaseService):
    """
    Holdings primitive and inventory reads.

    Public Methods
    --------------
    - credit() -> Add qty of an item or recipe to a user
    - debit() -> Remove qty of an item or recipe from a user
    - get_item_holding() / get_recipe_holding() -> Holding row or None
    - list_inventory() -> Items and recipe charges with qty > 0
    - purge_volatile_holdings() -> Zero holdings of volatile items
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)

        self._item_repo = ItemHoldingRepository(
            model_class=UserItemHolding,
            logger=get_logger(f"{__name__}.ItemHoldingRepository"),
        )
        self._recipe_repo = RecipeHoldingRepository(
            model_class=UserRecipeHolding,
            logger=get_logger(f"{__name__}.RecipeHoldingRepository"),
        )

    # ========================================================================
    # PRIMITIVE - credit / debit (caller's transaction)
    # ========================================================================

    async def credit(
        self,
        session: AsyncSession,
        user_id: int,
        *,
        item_id: Optional[int] = None,
        recipe_id: Optional[int] = None,
        qty: int = 1,
    ) -> int:
        """
        Increase a holding by `qty`, creating the row if absent.

        Returns:
            The new quantity.

        Raises:
            InvalidTargetError: Not exactly one of item_id / recipe_id
            ValidationError: qty is not a positive integer
        """
        self._check_target(item_id, recipe_id)
        qty = InputValidator.validate_positive_integer(qty, "qty")

        holding = await self._get_or_create(session, user_id, item_id, recipe_id)
        holding.qty += qty
        await session.flush()

        self.log.debug(
            "Holding credited",
            extra={
                "user_id": user_id,
                "item_id": item_id,
                "recipe_id": recipe_id,
                "qty": qty,
                "new_qty": holding.qty,
            },
        )
        return holding.qty

    async def debit(
        self,
        session: AsyncSession,
        user_id: int,
        *,
        item_id: Optional[int] = None,
        recipe_id: Optional[int] = None,
        qty: int = 1,
    ) -> int:
        """
        Decrease a holding by `qty`.

        Returns:
            The new quantity.

        Raises:
            InvalidTargetError: Not exactly one of item_id / recipe_id
            ValidationError: qty is not a positive integer
            InsufficientStockError: Held quantity is below qty
        """
        self._check_target(item_id, recipe_id)
        qty = InputValidator.validate_positive_integer(qty, "qty")

        holding = await self._get_holding(session, user_id, item_id, recipe_id, for_update=True)
        current = holding.qty if holding is not None else 0
        if holding is None or current < qty:
            raise InsufficientStockError(
                required=qty, current=current, item_id=item_id, recipe_id=recipe_id
            )

        holding.qty -= qty
        await session.flush()

        self.log.debug(
            "Holding debited",
            extra={
                "user_id": user_id,
                "item_id": item_id,
                "recipe_id": recipe_id,
                "qty": qty,
                "new_qty": holding.qty,
            },
        )
        return holding.qty

    async def get_item_holding(
        self,
        session: AsyncSession,
        user_id: int,
        item_id: int,
        for_update: bool = False,
    ) -> Optional[UserItemHolding]:
        return await self._item_repo.find_one_where(
            session,
            UserItemHolding.user_id == user_id,
            UserItemHolding.item_id == item_id,
            for_update=for_update,
        )

    async def get_recipe_holding(
        self,
        session: AsyncSession,
        user_id: int,
        recipe_id: int,
        for_update: bool = False,
    ) -> Optional[UserRecipeHolding]:
        return await self._recipe_repo.find_one_where(
            session,
            UserRecipeHolding.user_id == user_id,
            UserRecipeHolding.recipe_id == recipe_id,
            for_update=for_update,
        )

    async def get_item_quantities(
        self, session: AsyncSession, user_id: int, item_ids: Any
    ) -> Dict[int, int]:
        """Held quantity per item id (missing rows read as 0)."""
        ids = list(item_ids)
        rows = await self._item_repo.find_many_where(
            session,
            UserItemHolding.user_id == user_id,
            UserItemHolding.item_id.in_(ids),
        )
        held = {row.item_id: row.qty for row in rows}
        return {item_id: held.get(item_id, 0) for item_id in ids}

    # ========================================================================
    # READS
    # ========================================================================

    async def list_inventory(self, user_id: int) -> Dict[str, Any]:
        """
        Items and recipe charges held by a user (qty > 0), ordered by tier
        then name.

        Raises:
            NotFoundError: User does not exist
        """
        user_id = InputValidator.validate_id(user_id, "user_id")
        self.log_operation("list_inventory", user_id=user_id)

        async with DatabaseService.get_session() as session:
            if await session.get(User, user_id) is None:
                raise NotFoundError("User", user_id)

            item_rows = (
                await session.execute(
                    select(Item.id, Item.code, Item.name, Item.tier, UserItemHolding.qty)
                    .join(UserItemHolding, UserItemHolding.item_id == Item.id)
                    .where(UserItemHolding.user_id == user_id, UserItemHolding.qty > 0)
                    .order_by(Item.tier, Item.name)
                )
            ).all()

            recipe_rows = (
                await session.execute(
                    select(
                        Recipe.id,
                        Recipe.code,
                        Recipe.name,
                        Recipe.tier,
                        UserRecipeHolding.qty,
                        UserRecipeHolding.attempts,
                    )
                    .join(UserRecipeHolding, UserRecipeHolding.recipe_id == Recipe.id)
                    .where(UserRecipeHolding.user_id == user_id, UserRecipeHolding.qty > 0)
                    .order_by(Recipe.tier, Recipe.name)
                )
            ).all()

        return {
            "user_id": user_id,
            "items": [
                {"id": r.id, "code": r.code, "name": r.name, "tier": r.tier, "qty": r.qty}
                for r in item_rows
            ],
            "recipes": [
                {
                    "id": r.id,
                    "code": r.code,
                    "name": r.name,
                    "tier": r.tier,
                    "qty": r.qty,
                    "attempts": r.attempts,
                }
                for r in recipe_rows
            ],
        }

    # ========================================================================
    # MAINTENANCE
    # ========================================================================

    async def purge_volatile_holdings(self, session: Optional[AsyncSession] = None) -> int:
        """
        Zero every holding of a volatile catalog item (Scrap).

        Runs at startup, before any economy traffic.

        Returns:
            Number of holding rows zeroed.
        """
        self.log_operation("purge_volatile_holdings")

        stmt = (
            update(UserItemHolding)
            .where(
                UserItemHolding.item_id.in_(select(Item.id).where(Item.volatile.is_(True))),
                UserItemHolding.qty > 0,
            )
            .values(qty=0)
            .execution_options(synchronize_session=False)
        )

        if session is not None:
            purged = (await session.execute(stmt)).rowcount or 0
        else:
            async with DatabaseService.get_transaction() as tx_session:
                purged = (await tx_session.execute(stmt)).rowcount or 0

        self.log.info("Volatile holdings purged", extra={"rows_zeroed": purged})
        return purged

    # ========================================================================
    # INTERNALS
    # ========================================================================

    @staticmethod
    def _check_target(item_id: Optional[int], recipe_id: Optional[int]) -> None:
        if (item_id is None) == (recipe_id is None):
            raise InvalidTargetError(item_id, recipe_id)

    async def _get_holding(
        self,
        session: AsyncSession,
        user_id: int,
        item_id: Optional[int],
        recipe_id: Optional[int],
        for_update: bool,
    ) -> Optional[Holding]:
        if item_id is not None:
            return await self.get_item_holding(session, user_id, item_id, for_update)
        assert recipe_id is not None
        return await self.get_recipe_holding(session, user_id, recipe_id, for_update)

    async def _get_or_create(
        self,
        session: AsyncSession,
        user_id: int,
        item_id: Optional[int],
        recipe_id: Optional[int],
    ) -> Holding:
        holding = await self._get_holding(session, user_id, item_id, recipe_id, for_update=True)
        if holding is not None:
            return holding

        # The user row lock held by the caller serializes creation per user
        if item_id is not None:
            holding = self._item_repo.add(
                session, UserItemHolding(user_id=user_id, item_id=item_id, qty=0)
            )
        else:
            holding = self._recipe_repo.add(
                session,
                UserRecipeHolding(user_id=user_id, recipe_id=recipe_id, qty=0, attempts=0),
            )
        await session.flush()
        return holding
