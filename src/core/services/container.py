"""
Service Container
=================

Purpose
-------
Centralized dependency injection container for the economy services.
Builds one instance of each service in dependency order and hands them out.

Responsibilities
----------------
- Load (or accept) the catalog snapshot the services share
- Initialize every economy service with its collaborators
- Share one random source between the randomized services
- Provide access to services once initialized

Non-Responsibilities
--------------------
- Database lifecycle (DatabaseService)
- Catalog seeding (CatalogSeeder, run by the bootstrap job)

Dependency Order
----------------
    catalog -> ledger, inventory -> user
            -> shop, crafting, artefact, marketplace -> admin
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Dict, Optional

from src.core.database.service import DatabaseService
from src.core.logging.logger import get_logger
from src.modules.admin import AdminService
from src.modules.artefact import ArtefactService
from src.modules.catalog import CatalogService
from src.modules.crafting import CraftingService
from src.modules.inventory import InventoryService
from src.modules.ledger import LedgerService
from src.modules.marketplace import MarketplaceService
from src.modules.shop import ShopService
from src.modules.user import UserService

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.shared.random_source import RandomSource

logger = get_logger(__name__)

SERVICE_COUNT = 9


class ServiceContainer:
    """
    Dependency injection container for the economy services.

    Usage:
        container = ServiceContainer(ConfigManager, event_bus, logger)
        await container.initialize()

        await container.shop.buy_base_roll(user_id)
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        rng: Optional[RandomSource] = None,
    ) -> None:
        """
        Args:
            config_manager: Application configuration manager
            event_bus: Event bus for post-commit notifications
            logger: Structured logger instance
            rng: Random source for the shop and crafting services; the
                 system random source when omitted
        """
        self._config_manager = config_manager
        self._event_bus = event_bus
        self._logger = logger
        self._rng = rng

        self._catalog: Optional[CatalogService] = None
        self._ledger: Optional[LedgerService] = None
        self._inventory: Optional[InventoryService] = None
        self._user: Optional[UserService] = None
        self._shop: Optional[ShopService] = None
        self._crafting: Optional[CraftingService] = None
        self._artefact: Optional[ArtefactService] = None
        self._marketplace: Optional[MarketplaceService] = None
        self._admin: Optional[AdminService] = None

        self._initialized = False

        self._service_init_times: Dict[str, float] = {}
        self._init_start: Optional[float] = None
        self._init_end: Optional[float] = None

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def initialize(self, catalog: Optional[CatalogService] = None) -> None:
        """
        Initialize all services.

        Call after DatabaseService and ConfigManager are ready and the catalog
        has been seeded. A prebuilt `catalog` skips loading it from the
        database.
        """
        if self._initialized:
            self._logger.warning("ServiceContainer already initialized")
            return

        self._init_start = time.perf_counter()
        self._logger.info("Service container initialization starting...")

        try:
            start = time.perf_counter()
            if catalog is None:
                async with DatabaseService.get_session() as session:
                    catalog = await CatalogService.load(session)
            self._catalog = catalog
            self._service_init_times["catalog"] = time.perf_counter() - start

            self._ledger = self._create_service("ledger", LedgerService)
            self._inventory = self._create_service("inventory", InventoryService)
            self._user = self._create_service("user", UserService)

            collaborators = {
                "catalog": self._catalog,
                "ledger": self._ledger,
                "inventory": self._inventory,
            }
            self._shop = self._create_service("shop", ShopService, rng=self._rng, **collaborators)
            self._crafting = self._create_service(
                "crafting", CraftingService, rng=self._rng, **collaborators
            )
            self._artefact = self._create_service("artefact", ArtefactService, **collaborators)
            self._marketplace = self._create_service(
                "marketplace", MarketplaceService, **collaborators
            )

            self._admin = self._create_service(
                "admin",
                AdminService,
                catalog=self._catalog,
                ledger=self._ledger,
                marketplace=self._marketplace,
            )

            self._init_end = time.perf_counter()
            self._initialized = True

            extra_data: Dict[str, Any] = {
                "total_time_seconds": round(self._init_end - self._init_start, 3),
                "service_count": len(self._service_init_times),
                "item_count": self._catalog.item_count,
                "recipe_count": self._catalog.recipe_count,
            }
            if self._service_init_times:
                slowest = max(
                    self._service_init_times,
                    key=self._service_init_times.__getitem__,
                )
                extra_data["slowest_service"] = slowest
                extra_data["slowest_duration"] = round(self._service_init_times[slowest], 3)

            self._logger.info("Service container initialized successfully", extra=extra_data)

        except Exception as e:
            self._logger.critical(
                "Service container initialization failed",
                exc_info=True,
                extra={"error": str(e)},
            )
            raise

    def _create_service(self, name: str, cls: type, **collaborators: Any) -> Any:
        """Construct a service with the shared dependencies and record its init time."""
        start = time.perf_counter()
        try:
            instance = cls(
                config_manager=self._config_manager,
                event_bus=self._event_bus,
                logger=get_logger(f"{cls.__module__}.{cls.__name__}"),
                **collaborators,
            )
        except Exception:
            self._logger.error(f"Failed to initialize {name}", exc_info=True)
            raise

        duration = time.perf_counter() - start
        self._service_init_times[name] = duration
        self._logger.debug(f"Initialized {name} in {duration:.3f}s")
        return instance

    async def shutdown(self) -> None:
        if not self._initialized:
            return
        self._logger.info("Shutting down service container...")
        self._initialized = False
        self._logger.info("Service container shut down")

    async def health_check(self) -> Dict[str, Any]:
        return {
            "initialized": self._initialized,
            "service_count": len(self._service_init_times),
            "total_init_time_seconds": (
                round(self._init_end - self._init_start, 3)
                if self._init_start and self._init_end
                else None
            ),
            "all_services_available": self._initialized
            and len(self._service_init_times) == SERVICE_COUNT,
        }

    def _require(self, service: Any) -> Any:
        if not self._initialized or service is None:
            raise RuntimeError("ServiceContainer not initialized. Call initialize() first.")
        return service

    # ========================================================================
    # Services
    # ========================================================================

    @property
    def catalog(self) -> CatalogService:
        return self._require(self._catalog)

    @property
    def ledger(self) -> LedgerService:
        return self._require(self._ledger)

    @property
    def inventory(self) -> InventoryService:
        return self._require(self._inventory)

    @property
    def user(self) -> UserService:
        return self._require(self._user)

    @property
    def shop(self) -> ShopService:
        return self._require(self._shop)

    @property
    def crafting(self) -> CraftingService:
        return self._require(self._crafting)

    @property
    def artefact(self) -> ArtefactService:
        return self._require(self._artefact)

    @property
    def marketplace(self) -> MarketplaceService:
        return self._require(self._marketplace)

    @property
    def admin(self) -> AdminService:
        return self._require(self._admin)
