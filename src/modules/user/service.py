"""
User Service
============

Purpose
-------
Registration and profile reads for economy accounts.

Domain
------
- A new user starts with balance 0, purchase counter 0 and no pending
  recipe-drop threshold (the shop arms it on the first purchase)
- Emails are stored lower-cased and are unique
- Profiles report the balance as silver and as a gold/silver split, plus how
  many shop purchases remain before the next guaranteed recipe drop

Authentication and session issuance belong to the request layer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

from sqlalchemy.exc import IntegrityError

from src.core.database.service import DatabaseService
from src.core.logging.logger import get_logger
from src.core.validation.input_validator import InputValidator
from src.database.models.core import User
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import NotFoundError, ValidationError
from src.modules.shared.formulas import buys_to_next, split_silver

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus


class UserRepository(BaseRepository[User]):
    """Repository for User."""

    pass


class UserService(BaseService):
    """
    Account registration and profiles.

    Public Methods
    --------------
    - register_user() -> Create an account
    - get_profile() -> Balance, shop counters and pity progress
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

    async def register_user(self, email: str, is_admin: bool = False) -> Dict[str, Any]:
        """
        Create a user.

        Raises:
            ValidationError: Malformed or already registered email
        """
        email = InputValidator.validate_email(email)
        self.log_operation("register_user", email=email, is_admin=is_admin)

        async with DatabaseService.get_transaction() as session:
            if await self._user_repo.exists(session, User.email == email):
                raise ValidationError(
                    "email", "Email already registered", error_code="EMAIL_TAKEN"
                )

            user = self._user_repo.add(
                session,
                User(
                    email=email,
                    is_admin=bool(is_admin),
                    balance_silver=0,
                    shop_buy_count=0,
                    next_recipe_at=None,
                ),
            )
            try:
                await session.flush()
            except IntegrityError as exc:
                # Lost a race with a concurrent registration of the same email
                raise ValidationError(
                    "email", "Email already registered", error_code="EMAIL_TAKEN"
                ) from exc

            result = {"user_id": user.id, "email": user.email, "is_admin": user.is_admin}

        await self.emit_event("user.registered", result)
        self.log.info("User registered", extra=result)
        return result

    async def get_profile(self, user_id: int) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: User does not exist
        """
        user_id = InputValidator.validate_id(user_id, "user_id")

        async with DatabaseService.get_session() as session:
            user = await self._user_repo.get(session, user_id)
            if user is None:
                raise NotFoundError("User", user_id)

            gold, silver = split_silver(user.balance_silver)
            return {
                "user_id": user.id,
                "email": user.email,
                "is_admin": user.is_admin,
                "balance_silver": user.balance_silver,
                "gold": gold,
                "silver": silver,
                "shop_buy_count": user.shop_buy_count,
                "next_recipe_at": user.next_recipe_at,
                "buys_to_next": buys_to_next(user.shop_buy_count, user.next_recipe_at),
            }
