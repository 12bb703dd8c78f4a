"""
Unit tests for MarketplaceService.

Default economy config: listing fee = price // 100, sale fee = 100 bps.
"""

from datetime import datetime, timedelta

import pytest

from src.core.config.manager import ConfigManager
from src.core.database.service import DatabaseService
from src.modules.shared.exceptions import (
    ForbiddenError,
    InsufficientFundsError,
    InsufficientStockError,
    InvalidPriceError,
    ListingNotLiveError,
    NotFoundError,
    SelfPurchaseError,
    ValidationError,
)

pytestmark = pytest.mark.unit

STONE = 2


async def _reasons(container, user_id):
    entries = (await container.ledger.get_history(user_id))["entries"]
    return [entry["reason"] for entry in entries]


class TestCreateListing:
    async def test_listing_moves_goods_into_escrow(self, container, make_user, grant, holding, balance):
        seller = await make_user(balance=5)
        await grant(seller, "STONE", 3)

        result = await container.marketplace.create_listing(seller, "item", STONE, 2, 500)

        listing = result["listing"]
        assert listing["status"] == "live"
        assert listing["code"] == "STONE"
        assert listing["qty"] == 2
        assert listing["fee_bps"] == 100
        assert result["listing_fee_silver"] == 5
        assert result["balance_silver"] == 0

        start = datetime.fromisoformat(listing["start_time"])
        end = datetime.fromisoformat(listing["end_time"])
        assert end - start == timedelta(minutes=10080)

        assert await holding(seller, "STONE") == 1
        assert await balance(seller) == 0
        assert (await _reasons(container, seller))[0] == "SALE_LIST_FEE"
        assert await container.marketplace.audit_escrow() == {
            "live_without_escrow": [],
            "escrow_without_live": [],
        }

    async def test_zero_fee_writes_no_entry(self, container, make_user, grant):
        seller = await make_user()
        await grant(seller, "STONE")

        result = await container.marketplace.create_listing(seller, "item", STONE, 1, 99)

        assert result["listing_fee_silver"] == 0
        assert (await container.ledger.get_history(seller))["entries"] == []

    async def test_fee_above_balance(self, container, make_user, grant, holding):
        seller = await make_user(balance=4)
        await grant(seller, "STONE")

        with pytest.raises(InsufficientFundsError):
            await container.marketplace.create_listing(seller, "item", STONE, 1, 500)

        assert await holding(seller, "STONE") == 1
        assert await container.marketplace.list_seller_listings(seller) == []

    async def test_stock_short_rolls_back_fee(self, container, make_user, balance):
        seller = await make_user(balance=100)

        with pytest.raises(InsufficientStockError):
            await container.marketplace.create_listing(seller, "item", STONE, 1, 500)

        assert await balance(seller) == 100
        assert await container.marketplace.list_seller_listings(seller) == []

    @pytest.mark.parametrize("price", [0, -5, "abc", 1.5, None])
    async def test_invalid_price(self, container, make_user, grant, price):
        seller = await make_user()
        await grant(seller, "STONE")

        with pytest.raises(InvalidPriceError) as exc_info:
            await container.marketplace.create_listing(seller, "item", STONE, 1, price)
        assert exc_info.value.error_code == "INVALID_PRICE"

    async def test_invalid_kind(self, container, make_user):
        seller = await make_user()
        with pytest.raises(ValidationError):
            await container.marketplace.create_listing(seller, "gem", STONE, 1, 100)

    async def test_unknown_target(self, container, make_user):
        seller = await make_user()
        with pytest.raises(NotFoundError) as exc_info:
            await container.marketplace.create_listing(seller, "recipe", 999, 1, 100)
        assert exc_info.value.error_code == "RECIPE_NOT_FOUND"

    async def test_create_by_code(self, container, make_user, grant, holding):
        seller = await make_user()
        await grant(seller, "R_GLASS", 2)

        result = await container.marketplace.create_listing_by_code(seller, "R_GLASS", 1, 80)

        assert result["listing"]["kind"] == "recipe"
        assert result["listing"]["recipe_id"] == 1
        assert result["listing"]["item_id"] is None
        assert await holding(seller, "R_GLASS") == 1

    async def test_create_by_unknown_code(self, container, make_user):
        seller = await make_user()
        with pytest.raises(NotFoundError) as exc_info:
            await container.marketplace.create_listing_by_code(seller, "NOPE", 1, 80)
        assert exc_info.value.error_code == "UNKNOWN_CODE"


class TestBuyListing:
    async def test_sale_settlement(self, container, make_user, grant, holding, balance, recorder):
        seller = await make_user(balance=5)
        buyer = await make_user(balance=500)
        await grant(seller, "STONE")
        listing_id = (await container.marketplace.create_listing(seller, "item", STONE, 1, 500))[
            "listing"
        ]["id"]

        result = await container.marketplace.buy_listing(buyer, listing_id)

        assert result["fee_silver"] == 5
        assert result["net_silver"] == 495
        assert result["buyer_balance_silver"] == 0
        assert result["seller_balance_silver"] == 495
        assert result["listing"]["status"] == "paid"
        assert result["listing"]["winner_user_id"] == buyer
        assert result["listing"]["sold_price_silver"] == 500
        assert result["listing"]["settled_at"] is not None

        assert await balance(buyer) == 0
        assert await balance(seller) == 495
        assert await holding(buyer, "STONE") == 1
        assert await holding(seller, "STONE") == 0
        assert (await _reasons(container, buyer))[0] == "SALE_BUY"
        assert (await _reasons(container, seller))[0] == "SALE_EARN"
        assert (await container.marketplace.audit_escrow())["escrow_without_live"] == []
        assert recorder.published("marketplace.listing_sold") == 1

    async def test_fee_bps_is_frozen_at_creation(self, container, make_user, grant):
        await ConfigManager.set("economy.marketplace.fee_bps", 1000, modified_by="tests")
        seller = await make_user(balance=10)
        buyer = await make_user(balance=1000)
        await grant(seller, "STONE")
        listing = (await container.marketplace.create_listing(seller, "item", STONE, 1, 1000))[
            "listing"
        ]
        assert listing["fee_bps"] == 1000

        await ConfigManager.set("economy.marketplace.fee_bps", 100, modified_by="tests")
        result = await container.marketplace.buy_listing(buyer, listing["id"])

        assert result["fee_silver"] == 100
        assert result["net_silver"] == 900

    async def test_buyer_short_of_funds(self, container, make_user, grant, balance):
        seller = await make_user(balance=1)
        buyer = await make_user(balance=99)
        await grant(seller, "STONE")
        listing_id = (await container.marketplace.create_listing(seller, "item", STONE, 1, 100))[
            "listing"
        ]["id"]

        with pytest.raises(InsufficientFundsError):
            await container.marketplace.buy_listing(buyer, listing_id)

        assert await balance(buyer) == 99
        assert (await container.marketplace.get_listing(listing_id))["status"] == "live"

    async def test_self_purchase(self, container, make_user, grant):
        seller = await make_user(balance=1000)
        await grant(seller, "STONE")
        listing_id = (await container.marketplace.create_listing(seller, "item", STONE, 1, 100))[
            "listing"
        ]["id"]

        with pytest.raises(SelfPurchaseError):
            await container.marketplace.buy_listing(seller, listing_id)

    async def test_buy_twice(self, container, make_user, grant):
        seller = await make_user(balance=1)
        buyer = await make_user(balance=1000)
        await grant(seller, "STONE")
        listing_id = (await container.marketplace.create_listing(seller, "item", STONE, 1, 100))[
            "listing"
        ]["id"]
        await container.marketplace.buy_listing(buyer, listing_id)

        with pytest.raises(ListingNotLiveError):
            await container.marketplace.buy_listing(buyer, listing_id)

    async def test_unknown_listing(self, container, make_user):
        buyer = await make_user(balance=100)
        with pytest.raises(NotFoundError):
            await container.marketplace.buy_listing(buyer, 999)


class TestCancelListing:
    async def test_cancel_returns_goods_without_refund(self, container, make_user, grant, holding, balance):
        seller = await make_user(balance=5)
        await grant(seller, "STONE", 2)
        listing_id = (await container.marketplace.create_listing(seller, "item", STONE, 2, 500))[
            "listing"
        ]["id"]

        result = await container.marketplace.cancel_listing(seller, listing_id)

        assert result["returned_qty"] == 2
        assert result["listing"]["status"] == "canceled"
        assert result["listing"]["settled_at"] is not None
        assert await holding(seller, "STONE") == 2
        assert await balance(seller) == 0
        assert await container.marketplace.audit_escrow() == {
            "live_without_escrow": [],
            "escrow_without_live": [],
        }

    async def test_only_seller_may_cancel(self, container, make_user, grant):
        seller = await make_user()
        other = await make_user()
        await grant(seller, "STONE")
        listing_id = (await container.marketplace.create_listing(seller, "item", STONE, 1, 50))[
            "listing"
        ]["id"]

        with pytest.raises(ForbiddenError):
            await container.marketplace.cancel_listing(other, listing_id)

        assert (await container.marketplace.get_listing(listing_id))["status"] == "live"

    async def test_buy_after_cancel(self, container, make_user, grant):
        seller = await make_user()
        buyer = await make_user(balance=100)
        await grant(seller, "STONE")
        listing_id = (await container.marketplace.create_listing(seller, "item", STONE, 1, 50))[
            "listing"
        ]["id"]
        await container.marketplace.cancel_listing(seller, listing_id)

        with pytest.raises(ListingNotLiveError):
            await container.marketplace.buy_listing(buyer, listing_id)
        with pytest.raises(ListingNotLiveError):
            await container.marketplace.cancel_listing(seller, listing_id)

    async def test_caller_session_publishes_nothing(self, container, make_user, grant, recorder):
        seller = await make_user()
        await grant(seller, "STONE")

        async with DatabaseService.get_transaction() as session:
            created = await container.marketplace.create_listing(
                seller, "item", STONE, 1, 50, session=session
            )
            await container.marketplace.cancel_listing(
                seller, created["listing"]["id"], session=session
            )

        assert recorder.published("marketplace.listing_created") == 0
        assert recorder.published("marketplace.listing_canceled") == 0


class TestReads:
    async def test_live_and_seller_listings(self, container, make_user, grant):
        seller = await make_user()
        await grant(seller, "STONE", 3)
        ids = [
            (await container.marketplace.create_listing(seller, "item", STONE, 1, 50))["listing"]["id"]
            for _ in range(3)
        ]
        await container.marketplace.cancel_listing(seller, ids[1])

        live = await container.marketplace.list_live_listings()
        assert [listing["id"] for listing in live] == [ids[0], ids[2]]

        mine = await container.marketplace.list_seller_listings(seller)
        assert [listing["id"] for listing in mine] == list(reversed(ids))

        page = await container.marketplace.list_live_listings(limit=1, offset=1)
        assert [listing["id"] for listing in page] == [ids[2]]

    async def test_get_unknown_listing(self, container):
        with pytest.raises(NotFoundError) as exc_info:
            await container.marketplace.get_listing(999)
        assert exc_info.value.error_code == "LISTING_NOT_FOUND"
