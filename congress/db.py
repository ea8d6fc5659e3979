"""Snapshot persistence: an async SQL backend and an in-memory one."""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import settings
from .errors import (
    PersistenceError,
    SchemaNotInitializedError,
    is_schema_missing_error,
    schema_not_initialized_message,
)
from .models import Base, Snapshot

ENTITY_KINDS = ("agent", "debate", "vote", "committee", "coalition")


class Persister(Protocol):
    async def save(self, kind: str, entity_id: str, snapshot: dict[str, Any]) -> None: ...

    async def load(self, kind: str, entity_id: str) -> dict[str, Any] | None: ...

    async def list_ids(self, kind: str) -> list[str]: ...

    async def delete(self, kind: str, entity_id: str) -> bool: ...


def _check_kind(kind: str) -> None:
    if kind not in ENTITY_KINDS:
        raise PersistenceError(f"Unknown entity kind: {kind}")


def _round_trip(snapshot: dict[str, Any]) -> dict[str, Any]:
    try:
        return json.loads(json.dumps(snapshot))
    except (TypeError, ValueError) as exc:
        raise PersistenceError(f"Snapshot is not JSON-serialisable: {exc}") from exc


class MemoryPersister:
    """Dict-backed persister. Snapshots are JSON round-tripped on the way in."""

    def __init__(self) -> None:
        self._data: dict[tuple[str, str], dict[str, Any]] = {}

    async def save(self, kind: str, entity_id: str, snapshot: dict[str, Any]) -> None:
        _check_kind(kind)
        self._data[(kind, entity_id)] = _round_trip(snapshot)

    async def load(self, kind: str, entity_id: str) -> dict[str, Any] | None:
        _check_kind(kind)
        stored = self._data.get((kind, entity_id))
        return json.loads(json.dumps(stored)) if stored is not None else None

    async def list_ids(self, kind: str) -> list[str]:
        _check_kind(kind)
        return [entity_id for (k, entity_id) in self._data if k == kind]

    async def delete(self, kind: str, entity_id: str) -> bool:
        _check_kind(kind)
        return self._data.pop((kind, entity_id), None) is not None


class SqlPersister:
    """Snapshots in one SQL table keyed by (entity_kind, entity_id)."""

    def __init__(self, database_url: str | None = None, *, echo: bool = False) -> None:
        url = database_url or settings.database_url
        self.engine = create_async_engine(url, echo=echo, pool_pre_ping=True)
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)

    async def init_db(self) -> None:
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession]:
        """Async context manager for database sessions."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception as exc:
                await session.rollback()
                if isinstance(exc, SQLAlchemyError) and is_schema_missing_error(exc):
                    raise SchemaNotInitializedError(schema_not_initialized_message(exc)) from exc
                if isinstance(exc, SQLAlchemyError):
                    raise PersistenceError(f"Snapshot store error: {exc}") from exc
                raise

    async def save(self, kind: str, entity_id: str, snapshot: dict[str, Any]) -> None:
        _check_kind(kind)
        payload = _round_trip(snapshot)
        async with self.get_session() as session:
            row = await session.get(Snapshot, (kind, entity_id))
            if row is None:
                session.add(Snapshot(entity_kind=kind, entity_id=entity_id, payload=payload))
            else:
                row.payload = payload

    async def load(self, kind: str, entity_id: str) -> dict[str, Any] | None:
        _check_kind(kind)
        async with self.get_session() as session:
            row = await session.get(Snapshot, (kind, entity_id))
            return dict(row.payload) if row is not None else None

    async def list_ids(self, kind: str) -> list[str]:
        _check_kind(kind)
        async with self.get_session() as session:
            result = await session.execute(
                select(Snapshot.entity_id)
                .where(Snapshot.entity_kind == kind)
                .order_by(Snapshot.created_at, Snapshot.entity_id)
            )
            return list(result.scalars().all())

    async def delete(self, kind: str, entity_id: str) -> bool:
        _check_kind(kind)
        async with self.get_session() as session:
            result = await session.execute(
                delete(Snapshot).where(
                    Snapshot.entity_kind == kind, Snapshot.entity_id == entity_id
                )
            )
            return bool(result.rowcount)
