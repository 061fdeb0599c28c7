"""
ConnectionStore — generic keyed upsert / select over the ORM tables.

Connectors, API clients and sync engines only talk to this interface, so
the persistence layer can be swapped (PostgreSQL in production, an
in-memory fake in tests).  Rows travel as plain dicts keyed by column name.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Type

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.models import Base

Row = Dict[str, Any]


class ConnectionStore(ABC):
    """Abstract keyed store used by the linking and sync components."""

    @abstractmethod
    async def upsert(
        self,
        model: Type[Base],
        values: Row,
        conflict: Sequence[str],
    ) -> Row:
        """
        Insert ``values`` or, when a row with the same ``conflict`` columns
        exists, overwrite it.

        Returns
        -------
        The stored row (including its primary key).
        """
        ...

    @abstractmethod
    async def select_one(self, model: Type[Base], **filters: Any) -> Optional[Row]:
        """Return the single row matching ``filters``, or None."""
        ...

    @abstractmethod
    async def select_all(self, model: Type[Base], **filters: Any) -> List[Row]:
        ...

    @abstractmethod
    async def update(self, model: Type[Base], values: Row, **filters: Any) -> int:
        """Update every row matching ``filters``; return the number of rows touched."""
        ...


class SQLAlchemyStore(ConnectionStore):
    """
    PostgreSQL implementation.

    Every call opens its own session and commits on success, so a failed
    write in one sync step never rolls back the steps around it.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @staticmethod
    def _where(model: Type[Base], filters: Dict[str, Any]) -> list:
        table = model.__table__
        return [table.c[name] == value for name, value in filters.items()]

    async def upsert(
        self,
        model: Type[Base],
        values: Row,
        conflict: Sequence[str],
    ) -> Row:
        table = model.__table__
        update_cols = {k: v for k, v in values.items() if k not in conflict and k != "id"}
        stmt = pg_insert(table).values(**values)
        if update_cols:
            stmt = stmt.on_conflict_do_update(index_elements=list(conflict), set_=update_cols)
        else:
            # Nothing to overwrite; touch the conflict columns so RETURNING still yields the row.
            stmt = stmt.on_conflict_do_update(
                index_elements=list(conflict),
                set_={c: stmt.excluded[c] for c in conflict},
            )
        stmt = stmt.returning(*table.c)

        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(stmt)
                row = result.mappings().one()
        return dict(row)

    async def select_one(self, model: Type[Base], **filters: Any) -> Optional[Row]:
        table = model.__table__
        stmt = select(table).where(*self._where(model, filters))
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            row = result.mappings().one_or_none()
        return dict(row) if row is not None else None

    async def select_all(self, model: Type[Base], **filters: Any) -> List[Row]:
        table = model.__table__
        stmt = select(table).where(*self._where(model, filters))
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [dict(r) for r in result.mappings().all()]

    async def update(self, model: Type[Base], values: Row, **filters: Any) -> int:
        table = model.__table__
        stmt = update(table).where(*self._where(model, filters)).values(**values)
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(stmt)
        return result.rowcount


_store: Optional[ConnectionStore] = None


def get_store() -> ConnectionStore:
    """Return the process-wide store, building it on first use."""
    global _store
    if _store is None:
        from database.session import async_session_factory

        _store = SQLAlchemyStore(async_session_factory)
    return _store


def set_store(store: Optional[ConnectionStore]) -> None:
    """Override the process-wide store (tests, alternative backends)."""
    global _store
    _store = store
