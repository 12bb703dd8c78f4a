"""
Unit tests for InventoryService.
"""

import pytest

from src.core.database.service import DatabaseService
from src.modules.shared.exceptions import (
    InsufficientStockError,
    InvalidTargetError,
    NotFoundError,
    ValidationError,
)

pytestmark = pytest.mark.unit

STONE = 2
R_GLASS = 1


class TestCreditDebit:
    async def test_credit_creates_and_increments(self, container, make_user, holding):
        user_id = await make_user()

        async with DatabaseService.get_transaction() as session:
            assert await container.inventory.credit(session, user_id, item_id=STONE, qty=2) == 2
            assert await container.inventory.credit(session, user_id, item_id=STONE, qty=3) == 5

        assert await holding(user_id, "STONE") == 5

    async def test_debit_to_zero_keeps_row(self, container, make_user, grant):
        user_id = await make_user()
        await grant(user_id, "R_GLASS", 2)

        async with DatabaseService.get_transaction() as session:
            assert await container.inventory.debit(session, user_id, recipe_id=R_GLASS, qty=2) == 0
            row = await container.inventory.get_recipe_holding(session, user_id, R_GLASS)
            assert row is not None
            assert row.qty == 0

    async def test_debit_more_than_held(self, container, make_user, grant, holding):
        user_id = await make_user()
        await grant(user_id, "STONE", 1)

        with pytest.raises(InsufficientStockError) as exc_info:
            async with DatabaseService.get_transaction() as session:
                await container.inventory.debit(session, user_id, item_id=STONE, qty=2)

        assert exc_info.value.details["item_id"] == STONE
        assert exc_info.value.details["deficit"] == 1
        assert await holding(user_id, "STONE") == 1

    async def test_debit_without_row(self, container, make_user):
        user_id = await make_user()

        with pytest.raises(InsufficientStockError) as exc_info:
            async with DatabaseService.get_transaction() as session:
                await container.inventory.debit(session, user_id, item_id=STONE, qty=1)

        assert exc_info.value.details["current"] == 0

    @pytest.mark.parametrize("item_id,recipe_id", [(None, None), (STONE, R_GLASS)])
    async def test_target_must_be_exactly_one(self, container, make_user, item_id, recipe_id):
        user_id = await make_user()

        with pytest.raises(InvalidTargetError):
            async with DatabaseService.get_transaction() as session:
                await container.inventory.credit(
                    session, user_id, item_id=item_id, recipe_id=recipe_id, qty=1
                )

    @pytest.mark.parametrize("qty", [0, -1])
    async def test_qty_must_be_positive(self, container, make_user, qty):
        user_id = await make_user()

        with pytest.raises(ValidationError):
            async with DatabaseService.get_transaction() as session:
                await container.inventory.credit(session, user_id, item_id=STONE, qty=qty)


class TestReads:
    async def test_list_inventory_orders_by_tier_then_name(self, container, make_user, grant):
        user_id = await make_user()
        await grant(user_id, "GLASS")
        await grant(user_id, "STONE", 2)
        await grant(user_id, "SAND", 4)
        await grant(user_id, "R_LAMP")
        await grant(user_id, "R_GLASS", 2)

        inventory = await container.inventory.list_inventory(user_id)

        assert [(i["code"], i["qty"]) for i in inventory["items"]] == [
            ("SAND", 4),
            ("STONE", 2),
            ("GLASS", 1),
        ]
        assert [(r["code"], r["qty"]) for r in inventory["recipes"]] == [
            ("R_GLASS", 2),
            ("R_LAMP", 1),
        ]

    async def test_list_inventory_hides_empty_rows(self, container, make_user, grant):
        user_id = await make_user()
        await grant(user_id, "STONE")
        async with DatabaseService.get_transaction() as session:
            await container.inventory.debit(session, user_id, item_id=STONE, qty=1)

        inventory = await container.inventory.list_inventory(user_id)

        assert inventory["items"] == []

    async def test_list_inventory_unknown_user(self, container):
        with pytest.raises(NotFoundError):
            await container.inventory.list_inventory(9999)


class TestVolatilePurge:
    async def test_purge_zeroes_scrap_only(self, container, make_user, grant, holding):
        first = await make_user()
        second = await make_user()
        await grant(first, "SCRAP", 3)
        await grant(second, "SCRAP", 1)
        await grant(first, "STONE", 2)

        purged = await container.inventory.purge_volatile_holdings()

        assert purged == 2
        assert await holding(first, "SCRAP") == 0
        assert await holding(second, "SCRAP") == 0
        assert await holding(first, "STONE") == 2

    async def test_purge_is_idempotent(self, container, make_user, grant):
        user_id = await make_user()
        await grant(user_id, "SCRAP")

        await container.inventory.purge_volatile_holdings()

        assert await container.inventory.purge_volatile_holdings() == 0
