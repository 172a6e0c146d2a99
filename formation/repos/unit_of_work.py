"""Unit of work: one atomic read-modify-write against the progress store.

``store.unit_of_work(user_id)`` yields repositories bound to a single
transaction. Leaving the block normally commits; any exception rolls
everything back, so a cascade is either fully written or not at all.

Exclusive units of work (the default) are serialized per user. Two
cascades of the same learner (a content completion and a quiz pass on
the same chapter) then always observe each other's writes. Different
users never wait on each other.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from formation.db.engine import async_session_factory
from formation.repos.hierarchy_repo import HierarchyRepo, InMemoryHierarchyRepo
from formation.repos.pg_hierarchy_repo import PgHierarchyRepo
from formation.repos.pg_progress_repo import PgProgressRepo
from formation.repos.progress_repo import InMemoryProgressRepo, ProgressRepo
from formation.services.errors import StoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UnitOfWork:
    hierarchy: HierarchyRepo
    progress: ProgressRepo


class Store(Protocol):
    def unit_of_work(
        self, user_id: str, *, exclusive: bool = True
    ) -> AbstractAsyncContextManager[UnitOfWork]: ...


class InMemoryStore:
    """Process-local store for development and tests."""

    def __init__(
        self,
        hierarchy: InMemoryHierarchyRepo | None = None,
        progress: InMemoryProgressRepo | None = None,
    ) -> None:
        self.hierarchy = hierarchy or InMemoryHierarchyRepo()
        self.progress = progress or InMemoryProgressRepo()
        # user_id -> (lock, holders and waiters); dropped when nobody needs it
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    def clear(self) -> None:
        self.hierarchy.clear()
        self.progress.clear()
        self._locks.clear()

    @asynccontextmanager
    async def unit_of_work(
        self, user_id: str, *, exclusive: bool = True
    ) -> AsyncIterator[UnitOfWork]:
        uow = UnitOfWork(hierarchy=self.hierarchy, progress=self.progress)
        if not exclusive:
            yield uow
            return

        lock, users = self._locks.get(user_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[user_id] = (lock, users + 1)
        try:
            async with lock:
                saved = self.progress.snapshot(user_id)
                try:
                    yield uow
                except BaseException:
                    self.progress.restore(user_id, saved)
                    raise
        finally:
            self._release(user_id)

    def _release(self, user_id: str) -> None:
        lock, users = self._locks[user_id]
        if users == 1:
            del self._locks[user_id]
        else:
            self._locks[user_id] = (lock, users - 1)


class PgStore:
    """PostgreSQL store: one AsyncSession transaction per unit of work."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def unit_of_work(
        self, user_id: str, *, exclusive: bool = True
    ) -> AsyncIterator[UnitOfWork]:
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    if exclusive:
                        # released automatically at commit/rollback
                        await session.execute(
                            select(func.pg_advisory_xact_lock(func.hashtext(user_id)))
                        )
                    yield UnitOfWork(
                        hierarchy=PgHierarchyRepo(session),
                        progress=PgProgressRepo(session),
                    )
            except SQLAlchemyError as e:
                logger.exception("Unit of work rolled back  user_id=%s", user_id)
                raise StoreError("progress store unavailable") from e


if async_session_factory is not None:
    store: Store = PgStore(async_session_factory)
else:
    store = InMemoryStore()
