"""
Ledger Service
==============

Purpose
-------
Sole writer of user balances. Every balance change is applied to
`users.balance_silver` and appended to `currency_ledger` in the same
transaction, so per user the ledger sum always equals the stored balance.

Domain
------
- Balance in silver (100 silver = 1 gold), never negative
- Reason codes: see `LedgerReason`
- Zero-delta marker entries record non-monetary outcomes (recipe drops,
  craft results) for the audit trail

Transaction Rules
-----------------
- `lock_user` / `lock_users` acquire user row locks (users in ascending id
  order) and are the first lock any user-scoped operation takes after the
  listing row.
- `apply_delta` and `record_marker` run in the caller's session on a user
  the caller has locked.
- A delta that would leave the balance negative raises
  `InsufficientFundsError` before anything is written.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.service import DatabaseService
from src.core.logging.logger import get_logger
from src.core.validation.input_validator import InputValidator
from src.database.models.core import User
from src.database.models.economy import CurrencyLedgerEntry
from src.database.models.enums import LedgerReason
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.constants import LEDGER_HISTORY_MAX_LIMIT
from src.modules.shared.exceptions import InsufficientFundsError, NotFoundError
from src.modules.shared.formulas import split_silver

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus

ReasonLike = Union[LedgerReason, str]


# ============================================================================
# Repositories
# ============================================================================


class UserRepository(BaseRepository[User]):
    """Repository for User."""

    pass


class LedgerRepository(BaseRepository[CurrencyLedgerEntry]):
    """Repository for CurrencyLedgerEntry (append-only)."""

    pass


# ============================================================================
# LedgerService
# ============================================================================


class LedgerService(BaseService):
    """
    Balance mutations, ledger appends and ledger reads.

    Public Methods
    --------------
    - lock_user() / lock_users() -> User rows under FOR UPDATE
    - apply_delta() -> Change a balance and append the ledger entry
    - record_marker() -> Append a zero-delta entry
    - get_balance() -> Balance in silver plus gold/silver split
    - get_history() -> Ledger entries, newest first
    - verify_balance() -> Ledger sum vs stored balance for one user
    - find_balance_mismatches() -> Every user whose ledger sum disagrees
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)

        self._user_repo = UserRepository(
            model_class=User,
            logger=get_logger(f"{__name__}.UserRepository"),
        )
        self._ledger_repo = LedgerRepository(
            model_class=CurrencyLedgerEntry,
            logger=get_logger(f"{__name__}.LedgerRepository"),
        )

    # ========================================================================
    # LOCKING
    # ========================================================================

    async def lock_user(self, session: AsyncSession, user_id: int) -> User:
        """
        Lock and return a user row.

        Raises:
            NotFoundError: User does not exist
        """
        user = await self._user_repo.get(session, user_id, for_update=True)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def lock_users(self, session: AsyncSession, user_ids: Iterable[int]) -> Dict[int, User]:
        """Lock several users one at a time in ascending id order."""
        locked: Dict[int, User] = {}
        for user_id in sorted(set(user_ids)):
            locked[user_id] = await self.lock_user(session, user_id)
        return locked

    # ========================================================================
    # WRITES (caller's transaction)
    # ========================================================================

    async def apply_delta(
        self,
        session: AsyncSession,
        user: User,
        delta_silver: int,
        reason: ReasonLike,
        ref: Optional[str] = None,
    ) -> CurrencyLedgerEntry:
        """
        Apply a signed balance change and append its ledger entry.

        Raises:
            InsufficientFundsError: The resulting balance would be negative
        """
        reason_code = LedgerReason(reason).value
        old_balance = user.balance_silver
        new_balance = old_balance + delta_silver

        if new_balance < 0:
            raise InsufficientFundsError(
                required=-delta_silver, current=old_balance, user_id=user.id
            )

        user.balance_silver = new_balance
        entry = self._ledger_repo.add(
            session,
            CurrencyLedgerEntry(
                user_id=user.id,
                delta_silver=delta_silver,
                reason=reason_code,
                ref=ref,
            ),
        )
        await session.flush()

        self.log.debug(
            f"Ledger: {reason_code} {delta_silver:+d}",
            extra={
                "user_id": user.id,
                "reason": reason_code,
                "delta_silver": delta_silver,
                "old_balance": old_balance,
                "new_balance": new_balance,
                "ref": ref,
            },
        )
        return entry

    async def record_marker(
        self,
        session: AsyncSession,
        user_id: int,
        reason: ReasonLike,
        ref: Optional[str] = None,
    ) -> CurrencyLedgerEntry:
        """Append a zero-delta audit entry."""
        entry = self._ledger_repo.add(
            session,
            CurrencyLedgerEntry(
                user_id=user_id,
                delta_silver=0,
                reason=LedgerReason(reason).value,
                ref=ref,
            ),
        )
        await session.flush()
        return entry

    # ========================================================================
    # READS
    # ========================================================================

    async def get_balance(self, user_id: int) -> Dict[str, Any]:
        user_id = InputValidator.validate_id(user_id, "user_id")

        async with DatabaseService.get_session() as session:
            user = await self._user_repo.get(session, user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            gold, silver = split_silver(user.balance_silver)
            return {
                "user_id": user_id,
                "balance_silver": user.balance_silver,
                "gold": gold,
                "silver": silver,
            }

    async def get_history(
        self,
        user_id: int,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """
        Ledger entries for a user, newest first.

        Raises:
            NotFoundError: User does not exist
            ValidationError: limit/offset out of range
        """
        user_id = InputValidator.validate_id(user_id, "user_id")
        limit = InputValidator.validate_positive_integer(
            limit, "limit", max_value=LEDGER_HISTORY_MAX_LIMIT
        )
        offset = InputValidator.validate_non_negative_integer(offset, "offset")

        self.log_operation("get_history", user_id=user_id, limit=limit, offset=offset)

        async with DatabaseService.get_session() as session:
            if await self._user_repo.get(session, user_id) is None:
                raise NotFoundError("User", user_id)

            entries = await self._ledger_repo.find_many_where(
                session,
                CurrencyLedgerEntry.user_id == user_id,
                order_by=[CurrencyLedgerEntry.id.desc()],
                limit=limit,
                offset=offset,
            )

        return {
            "user_id": user_id,
            "limit": limit,
            "offset": offset,
            "entries": [
                {
                    "id": entry.id,
                    "delta_silver": entry.delta_silver,
                    "reason": entry.reason,
                    "ref": entry.ref,
                    "created_at": entry.created_at.isoformat(),
                }
                for entry in entries
            ],
        }

    async def verify_balance(
        self, user_id: int, session: Optional[AsyncSession] = None
    ) -> Dict[str, Any]:
        """Compare a user's ledger sum with the stored balance."""
        user_id = InputValidator.validate_id(user_id, "user_id")

        async def _do_verify(tx_session: AsyncSession) -> Dict[str, Any]:
            user = await self._user_repo.get(tx_session, user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            ledger_sum = (
                await tx_session.execute(
                    select(func.coalesce(func.sum(CurrencyLedgerEntry.delta_silver), 0)).where(
                        CurrencyLedgerEntry.user_id == user_id
                    )
                )
            ).scalar_one()
            return {
                "user_id": user_id,
                "balance_silver": user.balance_silver,
                "ledger_sum": int(ledger_sum),
                "consistent": int(ledger_sum) == user.balance_silver,
            }

        if session is not None:
            return await _do_verify(session)

        async with DatabaseService.get_session() as read_session:
            return await _do_verify(read_session)

    async def find_balance_mismatches(self, session: AsyncSession) -> List[Dict[str, Any]]:
        """Users whose ledger sum differs from their stored balance."""
        ledger_sums = (
            select(
                CurrencyLedgerEntry.user_id.label("user_id"),
                func.sum(CurrencyLedgerEntry.delta_silver).label("ledger_sum"),
            )
            .group_by(CurrencyLedgerEntry.user_id)
            .subquery()
        )
        rows = (
            await session.execute(
                select(
                    User.id,
                    User.balance_silver,
                    func.coalesce(ledger_sums.c.ledger_sum, 0),
                )
                .outerjoin(ledger_sums, ledger_sums.c.user_id == User.id)
                .order_by(User.id)
            )
        ).all()

        return [
            {"user_id": user_id, "balance_silver": balance, "ledger_sum": int(total)}
            for user_id, balance, total in rows
            if int(total) != balance
        ]
