"""
Integration Tests for DatabaseService
=====================================

Purpose
-------
Run the schema and transaction handling against real PostgreSQL
(testcontainers).

Test Coverage
-------------
- Connection and schema creation
- Commit and rollback through `get_transaction`
- CHECK / UNIQUE constraints backing the economy invariants
"""

import pytest
from sqlalchemy import select, text, update
from sqlalchemy.exc import IntegrityError

from src.core.database.base import utc_now
from src.core.database.service import DatabaseService
from src.database.models import EscrowRecord, Listing, User, UserItemHolding
from src.modules.shared.exceptions import InsufficientFundsError

pytestmark = [pytest.mark.integration, pytest.mark.database]

EXPECTED_TABLES = {
    "users",
    "game_config",
    "items",
    "recipes",
    "recipe_ingredients",
    "user_items",
    "user_recipes",
    "currency_ledger",
    "listings",
    "escrow",
    "user_trophies",
}


# ============================================================================
# CONNECTION / SCHEMA
# ============================================================================


class TestDatabaseConnection:
    async def test_database_connection(self, pg_database):
        async with DatabaseService.get_session() as session:
            row = (await session.execute(text("SELECT 1 AS value"))).fetchone()

        assert row is not None
        assert row.value == 1

    async def test_schema_created(self, pg_database):
        async with DatabaseService.get_session() as session:
            result = await session.execute(
                text("SELECT tablename FROM pg_tables WHERE schemaname = 'public'")
            )
            tables = {row[0] for row in result}

        assert EXPECTED_TABLES <= tables

    async def test_health_check(self, pg_database):
        assert await DatabaseService.health_check() is True


# ============================================================================
# TRANSACTIONS
# ============================================================================


class TestTransactions:
    async def test_commit(self, pg_database):
        async with DatabaseService.get_transaction() as session:
            session.add(User(email="commit@example.com"))

        async with DatabaseService.get_session() as session:
            user = (
                await session.execute(select(User).where(User.email == "commit@example.com"))
            ).scalar_one()
        assert user.balance_silver == 0

    async def test_domain_error_rolls_back(self, pg_container, make_pg_user):
        user_id = await make_pg_user(balance=100)

        with pytest.raises(InsufficientFundsError):
            async with DatabaseService.get_transaction() as session:
                user = await pg_container.ledger.lock_user(session, user_id)
                user.shop_buy_count = 42
                await session.flush()
                raise InsufficientFundsError(required=1, current=0, user_id=user_id)

        profile = await pg_container.user.get_profile(user_id)
        assert profile["shop_buy_count"] == 0


# ============================================================================
# CONSTRAINTS
# ============================================================================


class TestConstraints:
    async def test_balance_cannot_go_negative(self, pg_container, make_pg_user):
        user_id = await make_pg_user()

        with pytest.raises(IntegrityError):
            async with DatabaseService.get_transaction() as session:
                await session.execute(
                    update(User).where(User.id == user_id).values(balance_silver=-1)
                )

    async def test_holding_pair_is_unique(self, pg_container, make_pg_user):
        user_id = await make_pg_user()

        with pytest.raises(IntegrityError):
            async with DatabaseService.get_transaction() as session:
                session.add(UserItemHolding(user_id=user_id, item_id=2, qty=1))
                session.add(UserItemHolding(user_id=user_id, item_id=2, qty=1))

    async def test_listing_needs_exactly_one_target(self, pg_container, make_pg_user):
        user_id = await make_pg_user()

        with pytest.raises(IntegrityError):
            async with DatabaseService.get_transaction() as session:
                session.add(
                    Listing(
                        seller_user_id=user_id,
                        kind="item",
                        item_id=2,
                        recipe_id=1,
                        qty=1,
                        price_silver=10,
                        fee_bps=100,
                        status="live",
                        end_time=utc_now(),
                    )
                )

    async def test_one_escrow_per_listing(self, pg_container, make_pg_user):
        user_id = await make_pg_user(balance=100)
        async with DatabaseService.get_transaction() as session:
            await pg_container.ledger.lock_user(session, user_id)
            await pg_container.inventory.credit(session, user_id, item_id=2, qty=1)
        listing_id = (
            await pg_container.marketplace.create_listing(user_id, "item", 2, 1, 100)
        )["listing"]["id"]

        with pytest.raises(IntegrityError):
            async with DatabaseService.get_transaction() as session:
                session.add(
                    EscrowRecord(
                        listing_id=listing_id,
                        owner_user_id=user_id,
                        kind="item",
                        item_id=2,
                        qty=1,
                    )
                )
