"""
Base Repository Pattern

Purpose
-------
Type-safe, generic data access over SQLAlchemy 2.0 async sessions. Each
economy service owns a few thin repositories; anything beyond simple
filtering (guarded UPDATEs, aggregates) is written inline by the service.

Design Notes
------------
- Repositories never open or commit transactions; the caller passes the
  session it is working in
- `for_update=True` issues SELECT ... FOR UPDATE (ignored by SQLite)
- Results are ordered when `order_by` is supplied so callers get
  deterministic iteration

Usage
-----
    class HoldingRepository(BaseRepository[UserItemHolding]):
        pass

    repo = HoldingRepository(UserItemHolding, logger)
    rows = await repo.find_many_where(
        session,
        UserItemHolding.user_id == user_id,
        UserItemHolding.qty > 0,
        order_by=[UserItemHolding.item_id],
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, select

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Generic base repository.

    Type Parameters:
        T: The SQLAlchemy model class this repository manages
    """

    def __init__(self, model_class: Type[T], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger

    @property
    def _model_name(self) -> str:
        return self.model_class.__name__

    async def get(
        self,
        session: AsyncSession,
        id_value: Any,
        for_update: bool = False,
    ) -> Optional[T]:
        """
        Get a single record by primary key.

        With `for_update`, the row is locked and re-read even if it is already
        in the session's identity map.
        """
        if for_update:
            instance = await session.get(
                self.model_class,
                id_value,
                with_for_update=True,
                populate_existing=True,
            )
        else:
            instance = await session.get(self.model_class, id_value)

        self.log.debug(
            f"Repository.get: {self._model_name}",
            extra={
                "model": self._model_name,
                "id": id_value,
                "found": instance is not None,
                "locked": for_update,
            },
        )
        return instance

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
    ) -> Optional[T]:
        """Find a single record matching conditions."""
        stmt = select(self.model_class).where(*conditions)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)

        result = await session.execute(stmt)
        instance = result.scalar_one_or_none()

        self.log.debug(
            f"Repository.find_one_where: {self._model_name}",
            extra={
                "model": self._model_name,
                "found": instance is not None,
                "locked": for_update,
            },
        )
        return instance

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        order_by: Optional[Sequence[Any]] = None,
        for_update: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[T]:
        """Find multiple records matching conditions."""
        stmt = select(self.model_class).where(*conditions)

        if order_by:
            stmt = stmt.order_by(*order_by)
        if for_update:
            stmt = stmt.with_for_update()
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)

        result = await session.execute(stmt)
        instances = list(result.scalars().all())

        self.log.debug(
            f"Repository.find_many_where: {self._model_name}",
            extra={
                "model": self._model_name,
                "found_count": len(instances),
                "locked": for_update,
                "limit": limit,
                "offset": offset,
            },
        )
        return instances

    async def exists(
        self, session: AsyncSession, *conditions: ColumnElement[bool]
    ) -> bool:
        return await self.count(session, *conditions) > 0

    async def count(
        self, session: AsyncSession, *conditions: ColumnElement[bool]
    ) -> int:
        stmt = select(func.count()).select_from(self.model_class).where(*conditions)
        result = await session.execute(stmt)
        count = int(result.scalar_one())

        self.log.debug(
            f"Repository.count: {self._model_name}",
            extra={"model": self._model_name, "count": count},
        )
        return count

    def add(self, session: AsyncSession, instance: T) -> T:
        session.add(instance)
        self.log.debug(
            f"Repository.add: {self._model_name}",
            extra={"model": self._model_name},
        )
        return instance

    async def delete(self, session: AsyncSession, instance: T) -> None:
        await session.delete(instance)
        self.log.debug(
            f"Repository.delete: {self._model_name}",
            extra={"model": self._model_name},
        )
