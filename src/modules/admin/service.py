"""
Admin Service
=============

Purpose
-------
Operator-facing tools around the economy engine:

- Read and write an item's `bonus_gold` catalog attribute
- Mint or burn currency through `ADMIN_ADJUST` ledger entries
- Read a user's ledger history
- Run the integrity audit (ledger vs balance, live listings vs escrow)

Authorization is the request layer's concern; `modified_by` is recorded in
logs and events only.

Notes
-----
`bonus_gold` is the only catalog attribute that changes at runtime. The
catalog snapshot keeps its load-time value; readers that need the current
value (artefact assembly, this service) query the database.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.service import DatabaseService
from src.core.logging.logger import get_logger
from src.core.validation.input_validator import InputValidator
from src.database.models.catalog import Item
from src.database.models.enums import LedgerReason
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import NotFoundError, ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.catalog.service import CatalogService
    from src.modules.ledger.service import LedgerService
    from src.modules.marketplace.service import MarketplaceService


class ItemRepository(BaseRepository[Item]):
    """Repository for Item."""

    pass


class AdminService(BaseService):
    """
    Administrative collaborator of the economy engine.

    Public Methods
    --------------
    - get_bonus_gold() / set_bonus_gold() -> Item bonus-gold attribute
    - adjust_balance() -> Credit or debit a user (ADMIN_ADJUST)
    - get_ledger_history() -> A user's ledger entries, newest first
    - run_integrity_audit() -> Balance and escrow mismatches
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        catalog: CatalogService,
        ledger: LedgerService,
        marketplace: MarketplaceService,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._catalog = catalog
        self._ledger = ledger
        self._marketplace = marketplace
        self._item_repo = ItemRepository(
            model_class=Item,
            logger=get_logger(f"{__name__}.ItemRepository"),
        )

    # ========================================================================
    # BONUS GOLD
    # ========================================================================

    async def get_bonus_gold(self, item_id: int) -> Dict[str, Any]:
        item_id = InputValidator.validate_id(item_id, "item_id")

        async with DatabaseService.get_session() as session:
            item = await self._item_repo.get(session, item_id)
            if item is None:
                raise NotFoundError("Item", item_id)
            return {"item_id": item.id, "code": item.code, "bonus_gold": item.bonus_gold}

    async def set_bonus_gold(
        self,
        item_id: int,
        value: int,
        modified_by: str = "admin",
    ) -> Dict[str, Any]:
        """
        Set an item's bonus gold.

        Raises:
            ValidationError: value is negative or not an integer
            NotFoundError: Unknown item
        """
        item_id = InputValidator.validate_id(item_id, "item_id")
        value = InputValidator.validate_non_negative_integer(value, "bonus_gold")

        self.log_operation(
            "set_bonus_gold", item_id=item_id, bonus_gold=value, modified_by=modified_by
        )

        async with DatabaseService.get_transaction() as session:
            item = await self._item_repo.get(session, item_id, for_update=True)
            if item is None:
                raise NotFoundError("Item", item_id)
            previous = item.bonus_gold
            item.bonus_gold = value
            await session.flush()
            result = {
                "item_id": item.id,
                "code": item.code,
                "previous_bonus_gold": previous,
                "bonus_gold": value,
                "modified_by": modified_by,
            }

        await self.emit_event("catalog.bonus_gold_updated", result)
        self.log.info(f"Bonus gold updated: {result['code']}", extra=result)
        return result

    # ========================================================================
    # BALANCES
    # ========================================================================

    async def adjust_balance(
        self,
        user_id: int,
        delta_silver: int,
        modified_by: str = "admin",
        session: Optional[AsyncSession] = None,
    ) -> Dict[str, Any]:
        """
        Mint (positive) or burn (negative) currency for a user.

        Raises:
            ValidationError: delta is zero or not an integer
            NotFoundError: Unknown user
            InsufficientFundsError: The debit would leave a negative balance
        """
        user_id = InputValidator.validate_id(user_id, "user_id")
        delta_silver = InputValidator.validate_integer(delta_silver, "delta_silver")
        if delta_silver == 0:
            raise ValidationError("delta_silver", "Adjustment cannot be zero")

        self.log_operation(
            "adjust_balance",
            user_id=user_id,
            delta_silver=delta_silver,
            modified_by=modified_by,
            has_session=session is not None,
        )

        async def _do_adjust(tx_session: AsyncSession) -> Dict[str, Any]:
            user = await self._ledger.lock_user(tx_session, user_id)
            await self._ledger.apply_delta(
                tx_session, user, delta_silver, LedgerReason.ADMIN_ADJUST, f"admin:{modified_by}"
            )
            await tx_session.flush()
            return {
                "user_id": user_id,
                "delta_silver": delta_silver,
                "balance_silver": user.balance_silver,
                "modified_by": modified_by,
            }

        if session is not None:
            return await _do_adjust(session)

        async with DatabaseService.get_transaction() as tx_session:
            result = await _do_adjust(tx_session)

        await self.emit_event("ledger.balance_adjusted", result)
        self.log.info("Balance adjusted", extra=result)
        return result

    async def get_ledger_history(
        self, user_id: int, limit: int = 50, offset: int = 0
    ) -> Dict[str, Any]:
        return await self._ledger.get_history(user_id, limit=limit, offset=offset)

    # ========================================================================
    # AUDIT
    # ========================================================================

    async def run_integrity_audit(self) -> Dict[str, Any]:
        """
        Check every user's ledger sum against the stored balance, and the
        live-listing/escrow bijection.

        Returns:
            {"healthy": bool, "balance_mismatches": [...],
             "live_without_escrow": [...], "escrow_without_live": [...]}
        """
        self.log_operation("run_integrity_audit")

        async with DatabaseService.get_session() as session:
            mismatches = await self._ledger.find_balance_mismatches(session)
            escrow = await self._marketplace.audit_escrow(session=session)

        report = {
            "healthy": not mismatches
            and not escrow["live_without_escrow"]
            and not escrow["escrow_without_live"],
            "balance_mismatches": mismatches,
            **escrow,
        }

        if report["healthy"]:
            self.log.info("Integrity audit passed")
        else:
            self.log.critical(
                "Integrity audit found mismatches",
                extra={
                    "balance_mismatch_count": len(mismatches),
                    "live_without_escrow": escrow["live_without_escrow"],
                    "escrow_without_live": escrow["escrow_without_live"],
                },
            )
        return report
