"""
Unit tests for CatalogSeeder and CatalogService.
"""

import copy

import pytest
from sqlalchemy import select

from src.core.database.service import DatabaseService
from src.database.models.catalog import Item, Recipe
from src.database.models.enums import ListingKind
from src.modules.catalog import CatalogSeeder, CatalogService
from src.modules.shared.exceptions import ValidationError
from tests.conftest import TEST_CATALOG

pytestmark = pytest.mark.unit


async def _load_catalog() -> CatalogService:
    async with DatabaseService.get_session() as session:
        return await CatalogService.load(session)


class TestSeeder:
    async def test_seed_counts(self, database):
        stats = await CatalogSeeder().seed(TEST_CATALOG)

        assert stats == {
            "items_created": 18,
            "items_updated": 0,
            "recipes_created": 4,
            "recipes_updated": 0,
        }

    async def test_reseed_is_idempotent(self, seeded_database):
        stats = await CatalogSeeder().seed(TEST_CATALOG)

        assert stats["items_created"] == 0
        assert stats["items_updated"] == 18
        assert stats["recipes_updated"] == 4

        catalog = await _load_catalog()
        assert catalog.item_count == 18
        assert catalog.recipe_count == 4
        assert catalog.get_item_by_code("STONE").id == 2

    async def test_reseed_replaces_ingredients(self, seeded_database):
        document = copy.deepcopy(TEST_CATALOG)
        bottle = next(r for r in document["recipes"] if r["code"] == "R_BOTTLE")
        bottle["ingredients"] = [["RESIN", 3], ["GLASS", 2]]

        await CatalogSeeder().seed(document)

        recipe = (await _load_catalog()).get_recipe_by_code("R_BOTTLE")
        assert [(i.item_id, i.qty, i.position) for i in recipe.ingredients] == [
            (4, 3, 0),
            (5, 2, 1),
        ]

    async def test_bonus_gold_only_applied_on_insert(self, seeded_database):
        async with DatabaseService.get_transaction() as session:
            artefact = (
                await session.execute(select(Item).where(Item.code == "ARTEFACT"))
            ).scalar_one()
            artefact.bonus_gold = 400

        document = copy.deepcopy(TEST_CATALOG)
        for entry in document["items"]:
            if entry["code"] == "ARTEFACT":
                entry["bonus_gold"] = 5
        await CatalogSeeder().seed(document)

        async with DatabaseService.get_session() as session:
            bonus = (
                await session.execute(select(Item.bonus_gold).where(Item.code == "ARTEFACT"))
            ).scalar_one()
        assert bonus == 400

    async def test_seed_from_yaml_file(self, database, tmp_path):
        path = tmp_path / "catalog.yaml"
        path.write_text(
            "items:\n"
            "  - {code: STONE, name: Stone, tier: 1}\n"
            "  - {code: WALL, name: Wall, tier: 2}\n"
            "recipes:\n"
            "  - {code: R_WALL, name: Wall, tier: 2, output: WALL, ingredients: [[STONE, 4]]}\n",
            encoding="utf-8",
        )

        stats = await CatalogSeeder().seed(path)

        assert stats["items_created"] == 2
        assert stats["recipes_created"] == 1

    @pytest.mark.parametrize(
        "document",
        [
            {"items": "STONE"},
            {"items": [{"code": "R_STONE", "name": "Stone", "tier": 1}]},
            {"items": [{"code": "STONE", "name": "Stone", "tier": 9}]},
            {"items": [{"code": "stone", "name": "Stone", "tier": 1}]},
            {
                "items": [{"code": "STONE", "name": "Stone", "tier": 1}],
                "recipes": [{"code": "R_X", "name": "X", "tier": 2, "output": "NOPE",
                             "ingredients": [["STONE", 1]]}],
            },
            {
                "items": [{"code": "STONE", "name": "Stone", "tier": 1}],
                "recipes": [{"code": "R_X", "name": "X", "tier": 2, "output": "STONE",
                             "ingredients": [["STONE", 0]]}],
            },
            {
                "items": [{"code": "STONE", "name": "Stone", "tier": 1}],
                "recipes": [{"code": "R_X", "name": "X", "tier": 2, "output": "STONE",
                             "ingredients": []}],
            },
        ],
    )
    async def test_invalid_document_changes_nothing(self, database, document):
        with pytest.raises(ValidationError):
            await CatalogSeeder().seed(document)

        async with DatabaseService.get_session() as session:
            assert (await session.execute(select(Item))).scalars().all() == []
            assert (await session.execute(select(Recipe))).scalars().all() == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValidationError) as exc_info:
            CatalogSeeder().load_document(tmp_path / "missing.yaml")
        assert exc_info.value.error_code == "VALIDATION_CATALOG_PATH"


class TestCatalogService:
    def test_lookups(self, catalog):
        assert catalog.get_item(2).code == "STONE"
        assert catalog.get_item_by_code("ARTEFACT").bonus_gold == 100
        assert catalog.get_recipe_by_code("R_LAMP").output_item_id == 7
        assert catalog.get_item(999) is None

    def test_items_by_tier(self, catalog):
        assert [i.code for i in catalog.items_by_tier(1)] == ["SCRAP", "STONE", "SAND", "RESIN"]
        assert [i.code for i in catalog.items_by_tier(1, include_volatile=False)] == [
            "STONE",
            "SAND",
            "RESIN",
        ]
        assert len(catalog.items_by_tier(5)) == 10
        assert catalog.items_by_tier(9) == ()

    def test_recipes_by_tier(self, catalog):
        assert [r.code for r in catalog.recipes_by_tier(4)] == ["R_LAMP"]
        assert catalog.recipes_by_tier(1) == ()

    @pytest.mark.parametrize(
        "code,kind,entry_id",
        [
            ("STONE", ListingKind.ITEM, 2),
            ("R_GLASS", ListingKind.RECIPE, 1),
            ("  LAMP ", ListingKind.ITEM, 7),
        ],
    )
    def test_find_by_code(self, catalog, code, kind, entry_id):
        found_kind, entry = catalog.find_by_code(code)
        assert found_kind is kind
        assert entry.id == entry_id

    @pytest.mark.parametrize("code", ["", "NOPE", "R_NOPE", None])
    def test_find_by_code_unknown(self, catalog, code):
        assert catalog.find_by_code(code) is None

    def test_describe_target(self, catalog):
        assert catalog.describe_target(5, None).code == "GLASS"
        assert catalog.describe_target(None, 2).code == "R_BOTTLE"
        assert catalog.describe_target(None, None) is None
