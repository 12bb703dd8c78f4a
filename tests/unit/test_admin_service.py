"""
Unit tests for AdminService.
"""

import pytest
from sqlalchemy import delete

from src.core.database.service import DatabaseService
from src.database.models.economy import EscrowRecord
from src.modules.shared.exceptions import InsufficientFundsError, NotFoundError, ValidationError

pytestmark = pytest.mark.unit

ARTEFACT_ID = 18
STONE = 2


class TestBonusGold:
    async def test_get_and_set(self, container, recorder):
        assert (await container.admin.get_bonus_gold(ARTEFACT_ID))["bonus_gold"] == 100

        result = await container.admin.set_bonus_gold(ARTEFACT_ID, 0, modified_by="ops")

        assert result == {
            "item_id": ARTEFACT_ID,
            "code": "ARTEFACT",
            "previous_bonus_gold": 100,
            "bonus_gold": 0,
            "modified_by": "ops",
        }
        assert (await container.admin.get_bonus_gold(ARTEFACT_ID))["bonus_gold"] == 0
        assert recorder.published("catalog.bonus_gold_updated") == 1

    async def test_negative_rejected(self, container):
        with pytest.raises(ValidationError):
            await container.admin.set_bonus_gold(ARTEFACT_ID, -1)

    async def test_unknown_item(self, container):
        with pytest.raises(NotFoundError):
            await container.admin.set_bonus_gold(999, 10)


class TestAdjustBalance:
    async def test_mint_and_burn(self, container, make_user, balance):
        user_id = await make_user()

        await container.admin.adjust_balance(user_id, 500, modified_by="ops")
        result = await container.admin.adjust_balance(user_id, -200, modified_by="ops")

        assert result["balance_silver"] == 300
        assert await balance(user_id) == 300
        history = await container.admin.get_ledger_history(user_id)
        assert [(e["reason"], e["ref"]) for e in history["entries"]] == [
            ("ADMIN_ADJUST", "admin:ops"),
            ("ADMIN_ADJUST", "admin:ops"),
        ]

    async def test_zero_rejected(self, container, make_user):
        user_id = await make_user()
        with pytest.raises(ValidationError):
            await container.admin.adjust_balance(user_id, 0)

    async def test_cannot_go_negative(self, container, make_user, balance):
        user_id = await make_user(balance=100)

        with pytest.raises(InsufficientFundsError):
            await container.admin.adjust_balance(user_id, -101)

        assert await balance(user_id) == 100


class TestIntegrityAudit:
    async def test_healthy_after_mixed_activity(self, container, make_user, grant):
        seller = await make_user(balance=1000)
        buyer = await make_user(balance=1000)
        await grant(seller, "STONE", 3)
        for _ in range(3):
            await container.shop.buy_base_roll(buyer)

        sold = await container.marketplace.create_listing(seller, "item", STONE, 1, 300)
        await container.marketplace.buy_listing(buyer, sold["listing"]["id"])
        await container.marketplace.create_listing(seller, "item", STONE, 1, 200)

        report = await container.admin.run_integrity_audit()

        assert report == {
            "healthy": True,
            "balance_mismatches": [],
            "live_without_escrow": [],
            "escrow_without_live": [],
        }

    async def test_money_is_conserved(self, container, make_user, grant):
        seller = await make_user(balance=1000)
        buyer = await make_user(balance=1000)
        await grant(seller, "STONE")
        listing = await container.marketplace.create_listing(seller, "item", STONE, 1, 1000)
        sale = await container.marketplace.buy_listing(buyer, listing["listing"]["id"])

        total = sum(
            [(await container.ledger.get_balance(u))["balance_silver"] for u in (seller, buyer)]
        )
        house = listing["listing_fee_silver"] + sale["fee_silver"]
        assert total + house == 2000

    async def test_missing_escrow_is_reported(self, container, make_user, grant):
        seller = await make_user()
        await grant(seller, "STONE")
        listing_id = (await container.marketplace.create_listing(seller, "item", STONE, 1, 50))[
            "listing"
        ]["id"]

        async with DatabaseService.get_transaction() as session:
            await session.execute(delete(EscrowRecord).where(EscrowRecord.listing_id == listing_id))

        report = await container.admin.run_integrity_audit()

        assert report["healthy"] is False
        assert report["live_without_escrow"] == [listing_id]
