"""
Shop Service - Base Roll Gacha
==============================

Purpose
-------
Sells the shop's base roll: a fixed-price purchase that grants either a
random tier-1 base material or, when the user's pity timer fires, one charge
of a random recipe.

Pity Timer
----------
Two fields on the user row drive drops:

- `shop_buy_count`: purchases made so far (monotonic)
- `next_recipe_at`: purchase count at which the next recipe drops, or None

On each purchase:
1. If `next_recipe_at` is None, arm it: count + randint(min, max)
2. Increment the count
3. If count >= `next_recipe_at`, grant a recipe and re-arm immediately:
   count + randint(min, max)
4. Otherwise grant a base material

The threshold is only ever recomputed when unset or right after a drop.

Recipe Selection
----------------
Roll randint(1, tier_roll_max) and map it through `tier_thresholds`
(default 1-13 -> T5, 14-50 -> T4, 51-200 -> T3, else T2). If the chosen tier
has no recipes, walk down one tier at a time to `fallback_floor_tier`.
Within a tier the pick is uniform over recipes in id order. With no recipe
anywhere in range the purchase grants a base material instead, but the
threshold is still re-armed.

Randomness
----------
Draw order per purchase: arm interval (only when unset), tier roll, recipe
choice, re-arm interval; or, for a base material, one choice.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.service import DatabaseService
from src.core.validation.input_validator import InputValidator
from src.database.models.core import User
from src.database.models.enums import LedgerReason, ListingKind
from src.modules.shared import constants as C
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import InsufficientFundsError, NotFoundError
from src.modules.shared.formulas import buys_to_next, fallback_tiers, roll_recipe_tier
from src.modules.shared.random_source import RandomSource, default_random_source

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.catalog.service import CatalogService, ItemDef, RecipeDef
    from src.modules.inventory.service import InventoryService
    from src.modules.ledger.service import LedgerService


class ShopService(BaseService):
    """
    Base roll purchases.

    Public Methods
    --------------
    - buy_base_roll() -> Charge the price and grant a material or a recipe
    - get_tier_odds() -> Per-tier recipe odds implied by the current config
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
    # CONFIG
    # ========================================================================

    def _price(self) -> int:
        return self.get_config_int("economy.shop.base_roll_price", C.BASE_ROLL_PRICE_SILVER)

    def _pity_interval(self) -> Tuple[int, int]:
        return (
            self.get_config_int("economy.shop.pity_interval_min", C.PITY_INTERVAL_MIN),
            self.get_config_int("economy.shop.pity_interval_max", C.PITY_INTERVAL_MAX),
        )

    def _tier_thresholds(self) -> List[Tuple[int, int]]:
        raw = self.get_config("economy.shop.tier_thresholds", C.TIER_THRESHOLDS)
        return [(int(tier), int(max_roll)) for tier, max_roll in raw]

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def buy_base_roll(
        self,
        user_id: int,
        session: Optional[AsyncSession] = None,
    ) -> Dict[str, Any]:
        """
        Buy one base roll.

        When `session` is provided the purchase joins the caller's transaction
        and no event is published.

        Returns:
            {
                "user_id": int,
                "price_silver": int,
                "balance_silver": int,
                "shop_buy_count": int,
                "next_recipe_at": int,
                "buys_to_next": int,
                "recipe_dropped": bool,
                "granted": {"kind", "id", "code", "name", "tier", "qty"},
            }

        Raises:
            NotFoundError: User does not exist
            InsufficientFundsError: Balance below the roll price
        """
        user_id = InputValidator.validate_id(user_id, "user_id")
        price = self._price()

        self.log_operation(
            "buy_base_roll",
            user_id=user_id,
            price_silver=price,
            has_session=session is not None,
        )

        async def _do_buy(tx_session: AsyncSession) -> Dict[str, Any]:
            user = await self._ledger.lock_user(tx_session, user_id)

            if user.balance_silver < price:
                raise InsufficientFundsError(
                    required=price, current=user.balance_silver, user_id=user_id
                )

            await self._ledger.apply_delta(
                tx_session, user, -price, LedgerReason.SHOP_BUY_T1
            )

            if user.next_recipe_at is None:
                user.next_recipe_at = user.shop_buy_count + self._draw_interval()
            user.shop_buy_count += 1

            granted: Optional[Dict[str, Any]] = None
            recipe_dropped = False

            if user.shop_buy_count >= user.next_recipe_at:
                recipe = self._pick_recipe()
                if recipe is not None:
                    await self._inventory.credit(tx_session, user.id, recipe_id=recipe.id, qty=1)
                    await self._ledger.record_marker(
                        tx_session, user.id, LedgerReason.RECIPE_DROP, f"recipe:{recipe.code}"
                    )
                    granted = self._granted(ListingKind.RECIPE, recipe)
                    recipe_dropped = True
                else:
                    self.log.warning(
                        "Recipe drop due but no recipes in range; granting base material",
                        extra={"user_id": user.id, "shop_buy_count": user.shop_buy_count},
                    )
                user.next_recipe_at = user.shop_buy_count + self._draw_interval()

            if granted is None:
                item = self._pick_base_material()
                await self._inventory.credit(tx_session, user.id, item_id=item.id, qty=1)
                granted = self._granted(ListingKind.ITEM, item)

            await tx_session.flush()
            return self._result(user, price, granted, recipe_dropped)

        if session is not None:
            return await _do_buy(session)

        async with DatabaseService.get_transaction() as tx_session:
            result = await _do_buy(tx_session)

        await self.emit_event("shop.base_roll_purchased", result)
        self.log.info(
            f"Base roll purchased: {result['granted']['kind']} {result['granted']['code']}",
            extra={
                "user_id": user_id,
                "granted_kind": result["granted"]["kind"],
                "granted_code": result["granted"]["code"],
                "recipe_dropped": result["recipe_dropped"],
                "balance_silver": result["balance_silver"],
                "shop_buy_count": result["shop_buy_count"],
            },
        )
        return result

    def get_tier_odds(self) -> Dict[int, float]:
        """
        Probability of each recipe tier given that a drop happens, before
        empty-tier fallback.
        """
        roll_max = self.get_config_int("economy.shop.tier_roll_max", C.TIER_ROLL_MAX)
        default_tier = self.get_config_int(
            "economy.shop.default_recipe_tier", C.DEFAULT_RECIPE_TIER
        )

        odds: Dict[int, float] = {}
        previous = 0
        for tier, max_roll in self._tier_thresholds():
            upper = min(max_roll, roll_max)
            odds[tier] = max(0, upper - previous) / roll_max
            previous = max(previous, upper)
        odds[default_tier] = odds.get(default_tier, 0.0) + max(0, roll_max - previous) / roll_max
        return odds

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _draw_interval(self) -> int:
        low, high = self._pity_interval()
        return self._rng.randint(low, high)

    def _pick_recipe(self) -> Optional[RecipeDef]:
        roll_max = self.get_config_int("economy.shop.tier_roll_max", C.TIER_ROLL_MAX)
        default_tier = self.get_config_int(
            "economy.shop.default_recipe_tier", C.DEFAULT_RECIPE_TIER
        )
        floor_tier = self.get_config_int(
            "economy.shop.fallback_floor_tier", C.FALLBACK_FLOOR_TIER
        )

        roll = self._rng.randint(1, roll_max)
        tier = roll_recipe_tier(roll, self._tier_thresholds(), default_tier)

        for candidate in fallback_tiers(tier, floor_tier):
            pool = self._catalog.recipes_by_tier(candidate)
            if pool:
                recipe = self._rng.choice(pool)
                self.log.debug(
                    "Recipe tier rolled",
                    extra={
                        "roll": roll,
                        "rolled_tier": tier,
                        "granted_tier": candidate,
                        "recipe_code": recipe.code,
                    },
                )
                return recipe
        return None

    def _pick_base_material(self) -> ItemDef:
        tier = self.get_config_int("economy.shop.base_material_tier", C.BASE_MATERIAL_TIER)
        pool = self._catalog.items_by_tier(tier, include_volatile=False)
        if not pool:
            raise NotFoundError("Item", f"tier {tier} base material", error_code="BASE_MATERIAL_NOT_FOUND")
        return self._rng.choice(pool)

    @staticmethod
    def _granted(kind: ListingKind, entry: Any) -> Dict[str, Any]:
        return {
            "kind": kind.value,
            "id": entry.id,
            "code": entry.code,
            "name": entry.name,
            "tier": entry.tier,
            "qty": 1,
        }

    @staticmethod
    def _result(
        user: User, price: int, granted: Dict[str, Any], recipe_dropped: bool
    ) -> Dict[str, Any]:
        return {
            "user_id": user.id,
            "price_silver": price,
            "balance_silver": user.balance_silver,
            "shop_buy_count": user.shop_buy_count,
            "next_recipe_at": user.next_recipe_at,
            "buys_to_next": buys_to_next(user.shop_buy_count, user.next_recipe_at),
            "recipe_dropped": recipe_dropped,
            "granted": granted,
        }
