"""
Concurrency Tests (PostgreSQL)
==============================

Races that only real row locks resolve: every operation runs in its own
transaction on its own connection, started together with asyncio.gather.
"""

import asyncio

import pytest

from src.core.database.service import DatabaseService
from src.modules.shared.exceptions import (
    InsufficientFundsError,
    InsufficientStockError,
    ListingNotLiveError,
)

pytestmark = [pytest.mark.integration, pytest.mark.database]

STONE = 2


async def _grant_stone(container, user_id: int, qty: int) -> None:
    async with DatabaseService.get_transaction() as session:
        await container.ledger.lock_user(session, user_id)
        await container.inventory.credit(session, user_id, item_id=STONE, qty=qty)


def _split(results):
    wins = [r for r in results if not isinstance(r, BaseException)]
    losses = [r for r in results if isinstance(r, BaseException)]
    return wins, losses


class TestListingRaces:
    async def test_buy_and_cancel_have_one_winner(self, pg_container, make_pg_user):
        seller = await make_pg_user(balance=10)
        buyer = await make_pg_user(balance=1000)
        await _grant_stone(pg_container, seller, 1)
        listing_id = (
            await pg_container.marketplace.create_listing(seller, "item", STONE, 1, 500)
        )["listing"]["id"]

        results = await asyncio.gather(
            pg_container.marketplace.buy_listing(buyer, listing_id),
            pg_container.marketplace.cancel_listing(seller, listing_id),
            return_exceptions=True,
        )

        wins, losses = _split(results)
        assert len(wins) == 1
        assert len(losses) == 1
        assert isinstance(losses[0], ListingNotLiveError)

        listing = await pg_container.marketplace.get_listing(listing_id)
        assert listing["status"] in ("paid", "canceled")

        report = await pg_container.admin.run_integrity_audit()
        assert report["healthy"] is True

    async def test_two_buyers_one_sale(self, pg_container, make_pg_user):
        seller = await make_pg_user(balance=2)
        buyers = [await make_pg_user(balance=200) for _ in range(2)]
        await _grant_stone(pg_container, seller, 1)
        listing_id = (
            await pg_container.marketplace.create_listing(seller, "item", STONE, 1, 200)
        )["listing"]["id"]

        results = await asyncio.gather(
            *[pg_container.marketplace.buy_listing(b, listing_id) for b in buyers],
            return_exceptions=True,
        )

        wins, losses = _split(results)
        assert len(wins) == 1
        assert isinstance(losses[0], ListingNotLiveError)

        balances = sorted(
            [(await pg_container.ledger.get_balance(b))["balance_silver"] for b in buyers]
        )
        assert balances == [0, 200]
        assert (await pg_container.ledger.get_balance(seller))["balance_silver"] == 198

    async def test_same_stock_listed_twice(self, pg_container, make_pg_user):
        seller = await make_pg_user()
        await _grant_stone(pg_container, seller, 1)

        results = await asyncio.gather(
            pg_container.marketplace.create_listing(seller, "item", STONE, 1, 50),
            pg_container.marketplace.create_listing(seller, "item", STONE, 1, 50),
            return_exceptions=True,
        )

        wins, losses = _split(results)
        assert len(wins) == 1
        assert isinstance(losses[0], InsufficientStockError)
        assert len(await pg_container.marketplace.list_live_listings()) == 1


class TestShopRaces:
    async def test_concurrent_purchases_never_overdraw(self, pg_container, make_pg_user):
        user_id = await make_pg_user(balance=500)

        results = await asyncio.gather(
            *[pg_container.shop.buy_base_roll(user_id) for _ in range(8)],
            return_exceptions=True,
        )

        wins, losses = _split(results)
        assert len(wins) == 5
        assert all(isinstance(exc, InsufficientFundsError) for exc in losses)

        profile = await pg_container.user.get_profile(user_id)
        assert profile["balance_silver"] == 0
        assert profile["shop_buy_count"] == 5

        check = await pg_container.ledger.verify_balance(user_id)
        assert check["consistent"] is True
