"""
Catalog Service
===============

Purpose
-------
Read-only snapshot of the reference catalog (items, recipes and their
ingredient lists) that every economy service consults for lookups.

Responsibilities
----------------
- Build an immutable snapshot from the database once at startup (`load`)
- Lookup items and recipes by id or by code
- Enumerate items by tier (optionally excluding volatile items) and recipes
  by tier, each in ascending id order
- Resolve a marketplace code to an item or a recipe (`find_by_code`)

Non-Responsibilities
--------------------
- Writing the catalog (CatalogSeeder owns that)
- The mutable `bonus_gold` attribute: the snapshot records the value at load
  time only, and the admin service reads the live value from the database

Design Notes
------------
- Definitions are frozen dataclasses; tier indexes are tuples. Nothing on
  the snapshot can be mutated by an economy operation.
- Reload means building a new `CatalogService`; the container swaps the
  reference, there is no in-place refresh.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.logging.logger import get_logger
from src.database.models.catalog import Item, Recipe
from src.database.models.enums import ListingKind
from src.modules.shared.constants import RECIPE_CODE_PREFIX

logger = get_logger(__name__)


# ============================================================================
# Definitions
# ============================================================================


@dataclass(frozen=True, slots=True)
class ItemDef:
    id: int
    code: str
    name: str
    tier: int
    volatile: bool
    bonus_gold: int

    def to_dict(self) -> Dict[str, object]:
        return {"id": self.id, "code": self.code, "name": self.name, "tier": self.tier}


@dataclass(frozen=True, slots=True)
class IngredientDef:
    item_id: int
    qty: int
    position: int


@dataclass(frozen=True, slots=True)
class RecipeDef:
    id: int
    code: str
    name: str
    tier: int
    output_item_id: int
    ingredients: Tuple[IngredientDef, ...]

    def to_dict(self) -> Dict[str, object]:
        return {"id": self.id, "code": self.code, "name": self.name, "tier": self.tier}


CatalogEntry = Union[ItemDef, RecipeDef]


# ============================================================================
# CatalogService
# ============================================================================


class CatalogService:
    """
    Immutable, in-memory view of the reference catalog.

    Example:
        >>> async with DatabaseService.get_session() as session:
        ...     catalog = await CatalogService.load(session)
        >>> catalog.get_item_by_code("STONE").tier
        1
    """

    def __init__(self, items: Iterable[ItemDef], recipes: Iterable[RecipeDef]) -> None:
        item_list = sorted(items, key=lambda i: i.id)
        recipe_list = sorted(recipes, key=lambda r: r.id)

        self._items_by_id: Dict[int, ItemDef] = {i.id: i for i in item_list}
        self._items_by_code: Dict[str, ItemDef] = {i.code: i for i in item_list}
        self._recipes_by_id: Dict[int, RecipeDef] = {r.id: r for r in recipe_list}
        self._recipes_by_code: Dict[str, RecipeDef] = {r.code: r for r in recipe_list}

        items_by_tier: Dict[int, List[ItemDef]] = {}
        for item in item_list:
            items_by_tier.setdefault(item.tier, []).append(item)
        self._items_by_tier: Dict[int, Tuple[ItemDef, ...]] = {
            tier: tuple(entries) for tier, entries in items_by_tier.items()
        }

        recipes_by_tier: Dict[int, List[RecipeDef]] = {}
        for recipe in recipe_list:
            recipes_by_tier.setdefault(recipe.tier, []).append(recipe)
        self._recipes_by_tier: Dict[int, Tuple[RecipeDef, ...]] = {
            tier: tuple(entries) for tier, entries in recipes_by_tier.items()
        }

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    async def load(cls, session: AsyncSession) -> CatalogService:
        """Snapshot every item and recipe currently in the database."""
        item_rows = (await session.execute(select(Item).order_by(Item.id))).scalars().all()
        recipe_rows = (
            (await session.execute(select(Recipe).order_by(Recipe.id))).scalars().all()
        )

        items = [
            ItemDef(
                id=row.id,
                code=row.code,
                name=row.name,
                tier=row.tier,
                volatile=bool(row.volatile),
                bonus_gold=row.bonus_gold,
            )
            for row in item_rows
        ]
        recipes = [
            RecipeDef(
                id=row.id,
                code=row.code,
                name=row.name,
                tier=row.tier,
                output_item_id=row.output_item_id,
                ingredients=tuple(
                    IngredientDef(item_id=ing.item_id, qty=ing.qty, position=ing.position)
                    for ing in sorted(row.ingredients, key=lambda x: (x.position, x.id))
                ),
            )
            for row in recipe_rows
        ]

        catalog = cls(items, recipes)
        logger.info(
            "Catalog snapshot loaded",
            extra={"item_count": len(items), "recipe_count": len(recipes)},
        )
        return catalog

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_item(self, item_id: int) -> Optional[ItemDef]:
        return self._items_by_id.get(item_id)

    def get_item_by_code(self, code: str) -> Optional[ItemDef]:
        return self._items_by_code.get(code)

    def get_recipe(self, recipe_id: int) -> Optional[RecipeDef]:
        return self._recipes_by_id.get(recipe_id)

    def get_recipe_by_code(self, code: str) -> Optional[RecipeDef]:
        return self._recipes_by_code.get(code)

    def items_by_tier(self, tier: int, include_volatile: bool = True) -> Tuple[ItemDef, ...]:
        """Items of `tier` in ascending id order."""
        items = self._items_by_tier.get(tier, ())
        if include_volatile:
            return items
        return tuple(item for item in items if not item.volatile)

    def recipes_by_tier(self, tier: int) -> Tuple[RecipeDef, ...]:
        """Recipes of `tier` in ascending id order."""
        return self._recipes_by_tier.get(tier, ())

    def find_by_code(self, code: str) -> Optional[Tuple[ListingKind, CatalogEntry]]:
        """
        Resolve a code to (kind, definition).

        Codes starting with "R_" name recipes; anything else names an item.
        """
        code = (code or "").strip()
        if not code:
            return None
        if code.startswith(RECIPE_CODE_PREFIX):
            recipe = self.get_recipe_by_code(code)
            return (ListingKind.RECIPE, recipe) if recipe else None
        item = self.get_item_by_code(code)
        return (ListingKind.ITEM, item) if item else None

    def describe_target(
        self, item_id: Optional[int], recipe_id: Optional[int]
    ) -> Optional[CatalogEntry]:
        """Definition for an (item_id, recipe_id) target pair, whichever is set."""
        if item_id is not None:
            return self.get_item(item_id)
        if recipe_id is not None:
            return self.get_recipe(recipe_id)
        return None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def item_count(self) -> int:
        return len(self._items_by_id)

    @property
    def recipe_count(self) -> int:
        return len(self._recipes_by_id)

