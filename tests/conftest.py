"""
Pytest Configuration and Fixtures for the Economy Engine Tests
===============================================================

Purpose
-------
Centralized test fixtures for the economy test suite.

Responsibilities
----------------
- Temporary SQLite database (aiosqlite) for service tests
- Testcontainers PostgreSQL for integration tests
- Small seeded catalog and a service container wired to it
- Scripted random source so rolls are deterministic
- User factory funded through the admin ledger path

Architecture Notes
------------------
- Service tests run the real services against a throwaway database file;
  every test gets a fresh schema.
- Integration tests point DatabaseService at PostgreSQL so row locks are
  real, and truncate between tests.
- Each container gets its own EventBus so published events can be asserted
  without touching the global bus.
"""

from __future__ import annotations

import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from typing import Any, AsyncGenerator, Dict, Generator, List, Optional, Sequence

import pytest
import pytest_asyncio
from sqlalchemy import text
from testcontainers.postgres import PostgresContainer

from src.core.config.config import Config
from src.core.config.manager import ConfigManager
from src.core.database.service import DatabaseService
from src.core.event.bus import EventBus
from src.core.logging.logger import get_logger
from src.core.services.container import ServiceContainer
from src.database.models.core import User
from src.modules.catalog import CatalogSeeder

logger = get_logger(__name__)


# ============================================================================
# TEST CATALOG
# ============================================================================

T5_CODES = [f"ORB_{n}" for n in range(1, 11)]

TEST_CATALOG: Dict[str, Any] = {
    "items": [
        {"code": "SCRAP", "name": "Scrap", "tier": 1, "volatile": True},
        {"code": "STONE", "name": "Stone", "tier": 1},
        {"code": "SAND", "name": "Sand", "tier": 1},
        {"code": "RESIN", "name": "Resin", "tier": 1},
        {"code": "GLASS", "name": "Glass", "tier": 2},
        {"code": "BOTTLE", "name": "Glass bottle", "tier": 3},
        {"code": "LAMP", "name": "Lamp", "tier": 4},
        *[{"code": code, "name": f"Orb {code.split('_')[1]}", "tier": 5} for code in T5_CODES],
        {"code": "ARTEFACT", "name": "Artefact", "tier": 6, "bonus_gold": 100},
    ],
    "recipes": [
        {"code": "R_GLASS", "name": "Glass", "tier": 2, "output": "GLASS",
         "ingredients": [["SAND", 2]]},
        {"code": "R_BOTTLE", "name": "Glass bottle", "tier": 3, "output": "BOTTLE",
         "ingredients": [["GLASS", 1], ["RESIN", 1]]},
        {"code": "R_LAMP", "name": "Lamp", "tier": 4, "output": "LAMP",
         "ingredients": [["BOTTLE", 1], ["STONE", 2]]},
        {"code": "R_ORB", "name": "Orb", "tier": 5, "output": "ORB_1",
         "ingredients": [["LAMP", 1]]},
    ],
}


# ============================================================================
# SCRIPTED RANDOMNESS
# ============================================================================


class ScriptedRandom:
    """
    RandomSource that replays scripted values.

    - randint: next scripted value (must lie in [a, b]); `b` once exhausted
    - random: next scripted value; 0.0 once exhausted
    - choice: sequence index from the script; index 0 once exhausted
    """

    def __init__(
        self,
        randints: Sequence[int] = (),
        randoms: Sequence[float] = (),
        choices: Sequence[int] = (),
    ) -> None:
        self.randints: List[int] = list(randints)
        self.randoms: List[float] = list(randoms)
        self.choices: List[int] = list(choices)
        self.calls: List[tuple] = []

    def randint(self, a: int, b: int) -> int:
        value = self.randints.pop(0) if self.randints else b
        assert a <= value <= b, f"scripted randint {value} outside [{a}, {b}]"
        self.calls.append(("randint", a, b, value))
        return value

    def random(self) -> float:
        value = self.randoms.pop(0) if self.randoms else 0.0
        self.calls.append(("random", value))
        return value

    def choice(self, seq):
        index = self.choices.pop(0) if self.choices else 0
        self.calls.append(("choice", len(seq), index))
        return seq[index]


class EventRecorder:
    """Collects every payload published on a bus; names come from the bus counters."""

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self.payloads: List[Dict[str, Any]] = []
        bus.subscribe("*", self._record, identifier="test-recorder")

    async def _record(self, payload: Dict[str, Any]) -> None:
        self.payloads.append(payload)

    def published(self, event_name: str) -> int:
        return self._bus.get_publish_counts().get(event_name, 0)


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def reset_config_cache() -> Generator[None, None, None]:
    """Drop DB overrides cached by ConfigManager.set between tests."""
    ConfigManager.clear_cache()
    yield
    ConfigManager.clear_cache()


@pytest_asyncio.fixture
async def database(tmp_path, monkeypatch) -> AsyncGenerator[type, None]:
    """
    Fresh SQLite database with the full schema.

    Scope: function
    """
    monkeypatch.setattr(
        Config, "DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'economy.db'}"
    )
    await DatabaseService.initialize()
    await DatabaseService.create_schema()

    yield DatabaseService

    await DatabaseService.shutdown()


@pytest_asyncio.fixture
async def seeded_database(database) -> type:
    await CatalogSeeder().seed(TEST_CATALOG)
    return database


# ============================================================================
# SERVICE FIXTURES
# ============================================================================


@pytest.fixture
def rng() -> ScriptedRandom:
    return ScriptedRandom()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus(ConfigManager)


@pytest.fixture
def recorder(event_bus) -> EventRecorder:
    return EventRecorder(event_bus)


@pytest_asyncio.fixture
async def container(seeded_database, rng, event_bus) -> AsyncGenerator[ServiceContainer, None]:
    services = ServiceContainer(
        config_manager=ConfigManager,
        event_bus=event_bus,
        logger=get_logger("tests.container"),
        rng=rng,
    )
    await services.initialize()
    yield services
    await event_bus.drain()
    await services.shutdown()


@pytest.fixture
def catalog(container):
    return container.catalog


@pytest.fixture
def make_user(container):
    """
    Factory: register a user and optionally fund them.

    Usage:
        user_id = await make_user(balance=1000)
    """
    counter = {"n": 0}

    async def _make(balance: int = 0, email: Optional[str] = None) -> int:
        counter["n"] += 1
        result = await container.user.register_user(email or f"user{counter['n']}@example.com")
        if balance:
            await container.admin.adjust_balance(result["user_id"], balance, modified_by="tests")
        return result["user_id"]

    return _make


@pytest.fixture
def grant(container, catalog):
    """
    Factory: credit holdings by catalog code.

    Usage:
        await grant(user_id, "STONE", 3)
        await grant(user_id, "R_GLASS")
    """

    async def _grant(user_id: int, code: str, qty: int = 1) -> None:
        kind, entry = catalog.find_by_code(code)
        async with DatabaseService.get_transaction() as session:
            await container.ledger.lock_user(session, user_id)
            if kind.value == "recipe":
                await container.inventory.credit(session, user_id, recipe_id=entry.id, qty=qty)
            else:
                await container.inventory.credit(session, user_id, item_id=entry.id, qty=qty)

    return _grant


@pytest.fixture
def holding(container, catalog):
    """Factory: current quantity held of a catalog code (0 when absent)."""

    async def _holding(user_id: int, code: str) -> int:
        kind, entry = catalog.find_by_code(code)
        async with DatabaseService.get_session() as session:
            if kind.value == "recipe":
                row = await container.inventory.get_recipe_holding(session, user_id, entry.id)
            else:
                row = await container.inventory.get_item_holding(session, user_id, entry.id)
            return row.qty if row is not None else 0

    return _holding


@pytest.fixture
def balance(container):
    async def _balance(user_id: int) -> int:
        return (await container.ledger.get_balance(user_id))["balance_silver"]

    return _balance


async def set_next_recipe_at(user_id: int, value: Optional[int]) -> None:
    """Pin a user's pity threshold."""
    async with DatabaseService.get_transaction() as session:
        user = await DatabaseService.get_locked_entity(session, User, user_id)
        user.next_recipe_at = value


# ============================================================================
# MOCK FIXTURES (Unit Tests)
# ============================================================================


@pytest.fixture
def mock_event_bus(mocker):
    """
    Mock EventBus for unit tests.

    Scope: function
    Uses: Unit tests that assert on published events without a bus
    """
    mock_bus = mocker.MagicMock()
    mock_bus.publish = mocker.AsyncMock(return_value=[])
    mock_bus.subscribe = mocker.MagicMock()
    return mock_bus


@pytest.fixture
def mock_config_manager(mocker):
    """
    Mock ConfigManager for unit tests.

    Scope: function
    Uses: Unit tests that need to control configuration values
    """
    mock_config = mocker.MagicMock()
    mock_config.get = mocker.MagicMock(side_effect=lambda key, default=None: default)
    return mock_config


# ============================================================================
# TESTCONTAINERS FIXTURES (Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL testcontainer for integration tests.

    Scope: session (container persists across all tests)
    """
    logger.info("Starting PostgreSQL testcontainer...")
    container = PostgresContainer(image="postgres:17-alpine", driver="asyncpg")
    container.start()
    logger.info("PostgreSQL testcontainer started")

    yield container

    logger.info("Stopping PostgreSQL testcontainer...")
    container.stop()


@pytest_asyncio.fixture
async def pg_database(postgres_container, monkeypatch) -> AsyncGenerator[type, None]:
    """
    DatabaseService pointed at the PostgreSQL container, with a clean schema
    and the test catalog seeded.
    """
    monkeypatch.setattr(Config, "DATABASE_URL", postgres_container.get_connection_url())
    await DatabaseService.initialize()

    from src.database.models import Base

    await DatabaseService.create_schema()
    async with DatabaseService.get_transaction() as session:
        tables = ", ".join(table.name for table in Base.metadata.sorted_tables)
        await session.execute(text(f"TRUNCATE {tables} RESTART IDENTITY CASCADE"))

    await CatalogSeeder().seed(TEST_CATALOG)

    yield DatabaseService

    await DatabaseService.shutdown()


@pytest_asyncio.fixture
async def pg_container(pg_database, event_bus) -> AsyncGenerator[ServiceContainer, None]:
    services = ServiceContainer(
        config_manager=ConfigManager,
        event_bus=event_bus,
        logger=get_logger("tests.container"),
        rng=ScriptedRandom(),
    )
    await services.initialize()
    yield services
    await event_bus.drain()
    await services.shutdown()


@pytest.fixture
def make_pg_user(pg_container):
    """`make_user` against the PostgreSQL container."""
    counter = {"n": 0}

    async def _make(balance: int = 0) -> int:
        counter["n"] += 1
        result = await pg_container.user.register_user(f"pg{counter['n']}@example.com")
        if balance:
            await pg_container.admin.adjust_balance(result["user_id"], balance, modified_by="tests")
        return result["user_id"]

    return _make
