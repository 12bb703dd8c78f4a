"""
Catalog Seeder
==============

Purpose
-------
External seeding process for the reference catalog. Reads a YAML document
(or an equivalent mapping) and upserts items and recipes by code.

Document Shape
--------------
    items:
      - {code: STONE, name: Stone, tier: 1}
      - {code: SCRAP, name: Scrap, tier: 1, volatile: true}
      - {code: ARTEFACT, name: Artefact, tier: 6, bonus_gold: 100}
    recipes:
      - {code: R_GLASS, name: Glass, tier: 2, output: GLASS,
         ingredients: [[SAND, 2], [RESIN, 1]]}

Rules
-----
- Items are matched by code; name, tier and volatile are overwritten.
  `bonus_gold` is applied on insert only, since the admin tool owns it
  afterwards.
- Recipes are matched by code; an existing recipe has its ingredient list
  replaced. Ingredient order in the document becomes `position`.
- Every referenced item code must exist in the document or the database.
- The whole seed runs in one transaction; a malformed document changes
  nothing.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config.config import Config
from src.core.database.service import DatabaseService
from src.core.logging.logger import get_logger
from src.core.validation.input_validator import InputValidator
from src.database.models.catalog import Item, Recipe, RecipeIngredient
from src.modules.shared.constants import RECIPE_CODE_PREFIX
from src.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)

SeedSource = Union[Path, str, Mapping[str, Any]]


class CatalogSeeder:
    """Upserts the reference catalog from YAML."""

    def __init__(self, default_path: Optional[Path] = None) -> None:
        self._default_path = default_path or Config.CATALOG_SEED_PATH

    # ========================================================================
    # Loading
    # ========================================================================

    def load_document(self, source: Optional[SeedSource] = None) -> Dict[str, Any]:
        if source is None:
            source = self._default_path

        if isinstance(source, Mapping):
            document: Any = dict(source)
        else:
            path = Path(source)
            try:
                with path.open("r", encoding="utf-8") as handle:
                    document = yaml.safe_load(handle)
            except FileNotFoundError as exc:
                raise ValidationError(
                    "catalog_path", f"Seed file not found: {path}"
                ) from exc
            except yaml.YAMLError as exc:
                raise ValidationError(
                    "catalog_path", f"Seed file is not valid YAML: {exc}"
                ) from exc

        if not isinstance(document, dict):
            raise ValidationError("catalog", "Seed document must be a mapping")

        items = document.get("items") or []
        recipes = document.get("recipes") or []
        if not isinstance(items, list) or not isinstance(recipes, list):
            raise ValidationError("catalog", "'items' and 'recipes' must be lists")

        return {"items": items, "recipes": recipes}

    # ========================================================================
    # Seeding
    # ========================================================================

    async def seed(
        self,
        source: Optional[SeedSource] = None,
        session: Optional[AsyncSession] = None,
    ) -> Dict[str, int]:
        """
        Upsert the catalog.

        Returns:
            Counts: {"items_created", "items_updated", "recipes_created",
            "recipes_updated"}
        """
        document = self.load_document(source)

        async def _do_seed(tx_session: AsyncSession) -> Dict[str, int]:
            stats = {
                "items_created": 0,
                "items_updated": 0,
                "recipes_created": 0,
                "recipes_updated": 0,
            }
            items_by_code = await self._upsert_items(tx_session, document["items"], stats)
            await self._upsert_recipes(
                tx_session, document["recipes"], items_by_code, stats
            )
            return stats

        if session is not None:
            stats = await _do_seed(session)
        else:
            async with DatabaseService.get_transaction() as tx_session:
                stats = await _do_seed(tx_session)

        logger.info("Catalog seeded", extra=stats)
        return stats

    async def _upsert_items(
        self,
        session: AsyncSession,
        entries: List[Any],
        stats: Dict[str, int],
    ) -> Dict[str, Item]:
        existing = {
            item.code: item
            for item in (await session.execute(select(Item))).scalars().all()
        }

        for index, entry in enumerate(entries):
            if not isinstance(entry, Mapping):
                raise ValidationError("items", f"Entry {index} must be a mapping")

            code = InputValidator.validate_string(
                entry.get("code"), "item.code", min_length=1, max_length=64,
                allowed_chars="A-Z0-9_",
            )
            if code.startswith(RECIPE_CODE_PREFIX):
                raise ValidationError(
                    "item.code", f"Item code may not start with {RECIPE_CODE_PREFIX}: {code}"
                )
            name = InputValidator.validate_string(
                entry.get("name"), "item.name", min_length=1, max_length=128
            )
            tier = InputValidator.validate_tier(entry.get("tier"), "item.tier")
            volatile = bool(entry.get("volatile", False))

            item = existing.get(code)
            if item is None:
                item = Item(
                    code=code,
                    name=name,
                    tier=tier,
                    volatile=volatile,
                    bonus_gold=InputValidator.validate_non_negative_integer(
                        entry.get("bonus_gold", 0), "item.bonus_gold"
                    ),
                )
                session.add(item)
                existing[code] = item
                stats["items_created"] += 1
            else:
                item.name = name
                item.tier = tier
                item.volatile = volatile
                stats["items_updated"] += 1

        await session.flush()
        return existing

    async def _upsert_recipes(
        self,
        session: AsyncSession,
        entries: List[Any],
        items_by_code: Dict[str, Item],
        stats: Dict[str, int],
    ) -> None:
        existing = {
            recipe.code: recipe
            for recipe in (await session.execute(select(Recipe))).scalars().all()
        }

        for index, entry in enumerate(entries):
            if not isinstance(entry, Mapping):
                raise ValidationError("recipes", f"Entry {index} must be a mapping")

            code = InputValidator.validate_string(
                entry.get("code"), "recipe.code", min_length=3, max_length=64,
                allowed_chars="A-Z0-9_",
            )
            if not code.startswith(RECIPE_CODE_PREFIX):
                raise ValidationError(
                    "recipe.code", f"Recipe code must start with {RECIPE_CODE_PREFIX}: {code}"
                )
            name = InputValidator.validate_string(
                entry.get("name"), "recipe.name", min_length=1, max_length=128
            )
            tier = InputValidator.validate_tier(entry.get("tier"), "recipe.tier")
            output = self._resolve_item(items_by_code, entry.get("output"), code)
            ingredients = self._parse_ingredients(items_by_code, entry.get("ingredients"), code)

            recipe = existing.get(code)
            if recipe is None:
                recipe = Recipe(code=code, name=name, tier=tier, output_item_id=output.id)
                session.add(recipe)
                existing[code] = recipe
                stats["recipes_created"] += 1
            else:
                recipe.name = name
                recipe.tier = tier
                recipe.output_item_id = output.id
                recipe.ingredients.clear()
                # Old rows must be gone before re-inserting the same (recipe, item) pairs
                await session.flush()
                stats["recipes_updated"] += 1

            for position, (item, qty) in enumerate(ingredients):
                recipe.ingredients.append(
                    RecipeIngredient(item_id=item.id, qty=qty, position=position)
                )

        await session.flush()

    @staticmethod
    def _resolve_item(items_by_code: Dict[str, Item], code: Any, recipe_code: str) -> Item:
        item = items_by_code.get(str(code)) if code is not None else None
        if item is None:
            raise ValidationError(
                "recipe.output", f"{recipe_code}: unknown item code {code!r}"
            )
        return item

    def _parse_ingredients(
        self,
        items_by_code: Dict[str, Item],
        raw: Any,
        recipe_code: str,
    ) -> List[tuple]:
        if not isinstance(raw, list) or not raw:
            raise ValidationError(
                "recipe.ingredients", f"{recipe_code}: ingredients must be a non-empty list"
            )

        parsed = []
        seen = set()
        for entry in raw:
            if isinstance(entry, Mapping):
                item_code, qty = entry.get("item"), entry.get("qty", 1)
            elif isinstance(entry, (list, tuple)) and len(entry) == 2:
                item_code, qty = entry
            else:
                raise ValidationError(
                    "recipe.ingredients", f"{recipe_code}: malformed ingredient {entry!r}"
                )

            item = self._resolve_item(items_by_code, item_code, recipe_code)
            if item.code in seen:
                raise ValidationError(
                    "recipe.ingredients", f"{recipe_code}: duplicate ingredient {item.code}"
                )
            seen.add(item.code)
            parsed.append(
                (item, InputValidator.validate_positive_integer(qty, "ingredient.qty"))
            )
        return parsed
