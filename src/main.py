"""
Economy Engine - Bootstrap Job
==============================

Run with `python -m src.main`.

Steps
-----
- Config validation
- Database initialization and schema creation
- ConfigManager initialization
- Catalog seeding from `data/catalog.yaml`
- Service container initialization
- Volatile holdings purge
- Integrity audit (ledger vs balances, live listings vs escrow)
- Graceful shutdown

Exit code is 0 when the audit is clean, 2 when it found mismatches and 1 on
any startup failure.
"""

import asyncio
import signal
import sys
from typing import Any, Dict, Optional

from src.core.config.config import Config
from src.core.config.manager import ConfigManager
from src.core.database.service import DatabaseService
from src.core.event import event_bus
from src.core.logging.logger import (
    LogContext,
    get_logger,
    get_logging_health,
    setup_logging,
    shutdown_logging,
)
from src.core.services.container import ServiceContainer
from src.modules.catalog import CatalogSeeder

logger = get_logger(__name__)


# ============================================================================
# Bootstrap
# ============================================================================


async def _startup() -> ServiceContainer:
    """Initialize infrastructure, seed the catalog and build the services."""
    logger.info("========== ECONOMY ENGINE INITIALIZATION START ==========")

    # Step 1: Validate configuration early
    try:
        Config.validate()
        logger.info("✓ Configuration validated", extra=Config.get_config_summary())
    except Exception as exc:
        logger.critical(f"Configuration validation failed: {exc}")
        raise

    # Step 2: Initialize database service and schema
    try:
        await DatabaseService.initialize()
        await DatabaseService.create_schema()
        logger.info("✓ Database service initialized")
    except Exception as exc:
        logger.critical(f"Database initialization failed: {exc}", exc_info=True)
        raise

    # Step 3: Initialize config manager
    try:
        await ConfigManager.initialize(start_refresh=False)
        logger.info("✓ Config manager initialized", extra=ConfigManager.health_snapshot())
    except Exception as exc:
        logger.critical(f"Config manager initialization failed: {exc}", exc_info=True)
        raise

    # Step 4: Seed the reference catalog
    try:
        stats = await CatalogSeeder().seed()
        logger.info("✓ Catalog seeded", extra=stats)
    except Exception as exc:
        logger.critical(f"Catalog seeding failed: {exc}", exc_info=True)
        raise

    # Step 5: Initialize service container
    try:
        container = ServiceContainer(
            config_manager=ConfigManager,
            event_bus=event_bus,
            logger=get_logger("src.core.services.container"),
        )
        await container.initialize()
        logger.info("✓ Service container initialized")
    except Exception as exc:
        logger.critical(f"Service container initialization failed: {exc}", exc_info=True)
        raise

    # Step 6: Scrap does not survive a restart
    purged = await container.inventory.purge_volatile_holdings()
    logger.info("✓ Volatile holdings purged", extra={"rows_zeroed": purged})

    logger.info("========== INFRASTRUCTURE INITIALIZED SUCCESSFULLY ==========")
    return container


async def _shutdown(container: Optional[ServiceContainer]) -> None:
    """Shut down the container and infrastructure services."""
    logger.info("========== SHUTDOWN START ==========")

    if container is not None:
        try:
            await container.shutdown()
            logger.info("✓ Service container shut down")
        except Exception as exc:
            logger.error(f"Service container shutdown error: {exc}", exc_info=True)

    try:
        await event_bus.drain()
        await ConfigManager.shutdown()
        logger.info("✓ Config manager shut down")
    except Exception as exc:
        logger.error(f"Config manager shutdown error: {exc}", exc_info=True)

    try:
        await DatabaseService.shutdown()
        logger.info("✓ Database service shut down")
    except Exception as exc:
        logger.error(f"Database service shutdown error: {exc}", exc_info=True)

    health = get_logging_health()
    if health.records_dropped:
        logger.warning(
            "Log records dropped on queue overflow",
            extra={"records_dropped": health.records_dropped},
        )
    logger.info("========== SHUTDOWN COMPLETE ==========")


# ============================================================================
# Entrypoint
# ============================================================================


async def main() -> int:
    """
    Bootstrap the engine, run the integrity audit and exit.

    Returns:
        Process exit code
    """
    container: Optional[ServiceContainer] = None

    try:
        container = await _startup()
        async with LogContext(component="bootstrap", operation="integrity_audit"):
            report: Dict[str, Any] = await container.admin.run_integrity_audit()
        return 0 if report["healthy"] else 2

    except asyncio.CancelledError:
        logger.warning("Asyncio task cancellation received; shutting down gracefully.")
        raise

    except Exception as exc:
        logger.critical(f"Fatal startup error: {exc}", exc_info=True)
        return 1

    finally:
        await _shutdown(container)


def _install_signal_handlers(loop: asyncio.AbstractEventLoop) -> None:
    try:
        loop.add_signal_handler(signal.SIGTERM, loop.stop)
        logger.debug("SIGTERM handler installed")
    except NotImplementedError:
        logger.debug("SIGTERM not supported on this platform (likely Windows)")


if __name__ == "__main__":
    setup_logging()
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    _install_signal_handlers(loop)

    exit_code = 1
    try:
        exit_code = loop.run_until_complete(main())
    except KeyboardInterrupt:
        logger.info("Bootstrap stopped via keyboard interrupt.")
    finally:
        loop.close()
        shutdown_logging()

    sys.exit(exit_code)
