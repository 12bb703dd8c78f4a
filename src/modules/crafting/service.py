"""
Crafting Service
================

Purpose
-------
Turns a recipe charge plus its ingredients into the recipe's output item,
with a fixed chance of failure that yields a consolation item instead.

Craft Flow
----------
1. The recipe must exist (`RecipeNotFoundError`) and the user must hold at
   least one charge (`RecipeNotOwnedError`).
2. Every ingredient is checked in recipe order before anything changes; the
   first short one is reported (`MissingMaterialsError`).
3. All ingredients are consumed. This happens on every validated attempt,
   whatever the roll.
4. One `random()` draw decides the outcome:
   - success (draw < success_rate): credit the output item, consume one
     recipe charge, ledger marker CRAFT_SUCCESS
   - failure: credit one consolation item (Scrap), keep the charge, ledger
     marker CRAFT_FAIL

The holding's `attempts` counter increments on every validated attempt up to
`economy.crafting.attempts_cap`; it is informational and never affects the
roll.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.service import DatabaseService
from src.core.validation.input_validator import InputValidator
from src.database.models.enums import LedgerReason
from src.modules.shared import constants as C
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import (
    MissingMaterialsError,
    NotFoundError,
    RecipeNotFoundError,
    RecipeNotOwnedError,
)
from src.modules.shared.random_source import RandomSource, default_random_source

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.catalog.service import CatalogService, ItemDef, RecipeDef
    from src.modules.inventory.service import InventoryService
    from src.modules.ledger.service import LedgerService


class CraftingService(BaseService):
    """
    Recipe crafting.

    Public Methods
    --------------
    - craft() -> Attempt a craft
    - get_recipe_detail() -> Ingredients needed vs held for an owned recipe
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        catalog: CatalogService,
        ledger: LedgerService,
        inventory: InventoryService,
        rng: Optional[RandomSource] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._catalog = catalog
        self._ledger = ledger
        self._inventory = inventory
        self._rng = rng or default_random_source()

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def craft(
        self,
        user_id: int,
        recipe_id: int,
        session: Optional[AsyncSession] = None,
    ) -> Dict[str, Any]:
        """
        Attempt to craft a recipe.

        Returns:
            {
                "user_id": int,
                "recipe": {"id", "code", "name", "tier"},
                "crafted": bool,
                "scrap": bool,
                "output": item dict or None,
                "consolation": item dict or None,
                "consumed": [{"item_id", "code", "qty"}, ...],
                "charges_left": int,
                "attempts": int,
            }

        Raises:
            RecipeNotFoundError: Unknown recipe
            NotFoundError: User does not exist
            RecipeNotOwnedError: No charges held
            MissingMaterialsError: An ingredient is short (nothing consumed)
        """
        user_id = InputValidator.validate_id(user_id, "user_id")
        recipe_id = InputValidator.validate_id(recipe_id, "recipe_id")

        recipe = self._recipe_or_raise(recipe_id)
        output = self._require_item(recipe.output_item_id)
        consolation = self._consolation_item()

        success_rate = self.get_config_float("economy.crafting.success_rate", C.CRAFT_SUCCESS_RATE)
        attempts_cap = self.get_config_int("economy.crafting.attempts_cap", C.CRAFT_ATTEMPTS_CAP)

        self.log_operation(
            "craft",
            user_id=user_id,
            recipe_id=recipe.id,
            recipe_code=recipe.code,
            has_session=session is not None,
        )

        async def _do_craft(tx_session: AsyncSession) -> Dict[str, Any]:
            await self._ledger.lock_user(tx_session, user_id)

            holding = await self._inventory.get_recipe_holding(
                tx_session, user_id, recipe.id, for_update=True
            )
            if holding is None or holding.qty < 1:
                raise RecipeNotOwnedError(recipe.code, user_id)

            # Validate every ingredient before touching anything
            held = await self._inventory.get_item_quantities(
                tx_session, user_id, [ing.item_id for ing in recipe.ingredients]
            )
            for ing in recipe.ingredients:
                have = held.get(ing.item_id, 0)
                if have < ing.qty:
                    item = self._require_item(ing.item_id)
                    raise MissingMaterialsError(item.code, item.name, ing.qty, have)

            consumed: List[Dict[str, Any]] = []
            for ing in recipe.ingredients:
                await self._inventory.debit(tx_session, user_id, item_id=ing.item_id, qty=ing.qty)
                consumed.append(
                    {
                        "item_id": ing.item_id,
                        "code": self._require_item(ing.item_id).code,
                        "qty": ing.qty,
                    }
                )

            holding.attempts = min(holding.attempts + 1, attempts_cap)

            crafted = self._rng.random() < success_rate
            ref = f"recipe:{recipe.code}"
            if crafted:
                await self._inventory.credit(tx_session, user_id, item_id=output.id, qty=1)
                await self._inventory.debit(tx_session, user_id, recipe_id=recipe.id, qty=1)
                await self._ledger.record_marker(
                    tx_session, user_id, LedgerReason.CRAFT_SUCCESS, ref
                )
            else:
                await self._inventory.credit(tx_session, user_id, item_id=consolation.id, qty=1)
                await self._ledger.record_marker(tx_session, user_id, LedgerReason.CRAFT_FAIL, ref)

            await tx_session.flush()
            return {
                "user_id": user_id,
                "recipe": recipe.to_dict(),
                "crafted": crafted,
                "scrap": not crafted,
                "output": output.to_dict() if crafted else None,
                "consolation": None if crafted else consolation.to_dict(),
                "consumed": consumed,
                "charges_left": holding.qty,
                "attempts": holding.attempts,
            }

        if session is not None:
            return await _do_craft(session)

        async with DatabaseService.get_transaction() as tx_session:
            result = await _do_craft(tx_session)

        await self.emit_event("crafting.attempted", result)
        self.log.info(
            f"Craft {'succeeded' if result['crafted'] else 'failed'}: {recipe.code}",
            extra={
                "user_id": user_id,
                "recipe_code": recipe.code,
                "crafted": result["crafted"],
                "charges_left": result["charges_left"],
                "attempts": result["attempts"],
            },
        )
        return result

    async def get_recipe_detail(self, user_id: int, recipe_id: int) -> Dict[str, Any]:
        """
        Recipe, output, charges held and per-ingredient availability.

        Raises:
            RecipeNotFoundError: Unknown recipe
            RecipeNotOwnedError: No charges held
        """
        user_id = InputValidator.validate_id(user_id, "user_id")
        recipe_id = InputValidator.validate_id(recipe_id, "recipe_id")

        recipe = self._recipe_or_raise(recipe_id)

        async with DatabaseService.get_session() as session:
            holding = await self._inventory.get_recipe_holding(session, user_id, recipe.id)
            if holding is None or holding.qty < 1:
                raise RecipeNotOwnedError(recipe.code, user_id)
            held = await self._inventory.get_item_quantities(
                session, user_id, [ing.item_id for ing in recipe.ingredients]
            )

        ingredients = []
        for ing in recipe.ingredients:
            item = self._require_item(ing.item_id)
            have = held.get(ing.item_id, 0)
            ingredients.append(
                {
                    "item_id": item.id,
                    "code": item.code,
                    "name": item.name,
                    "tier": item.tier,
                    "need_qty": ing.qty,
                    "have_qty": have,
                    "missing": max(0, ing.qty - have),
                }
            )

        return {
            "recipe": {**recipe.to_dict(), "output_item_id": recipe.output_item_id},
            "output": self._require_item(recipe.output_item_id).to_dict(),
            "charges": holding.qty,
            "attempts": holding.attempts,
            "ingredients": ingredients,
            "can_craft": all(row["missing"] == 0 for row in ingredients),
        }

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _require_item(self, item_id: int) -> ItemDef:
        item = self._catalog.get_item(item_id)
        if item is None:
            raise NotFoundError("Item", item_id)
        return item

    def _consolation_item(self) -> ItemDef:
        code = self.get_config(
            "economy.crafting.consolation_item_code", C.CONSOLATION_ITEM_CODE
        )
        item = self._catalog.get_item_by_code(code)
        if item is None:
            raise NotFoundError("Item", code)
        return item

    def _recipe_or_raise(self, recipe_id: int) -> RecipeDef:
        recipe = self._catalog.get_recipe(recipe_id)
        if recipe is None:
            raise RecipeNotFoundError(recipe_id)
        return recipe
