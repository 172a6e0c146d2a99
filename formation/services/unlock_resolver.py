"""Unlock resolution: which contents, quizzes and modules a learner may open.

Unlock state is derived, never stored. Two independent chains apply:

- contents form one linear chain across the whole active catalog, ordered
  by (module.order, chapter.order, content.order); each content opens when
  its predecessor is completed, so the last content of a chapter opens the
  first content of the next one;
- modules form their own chain: a module opens when the previous active
  module is completed.

A chapter's quiz opens once every active content of the chapter is done.

The helpers at module level are pure and shared with the catalog
overview; ``UnlockResolver`` feeds them from the repositories.
"""

from __future__ import annotations

from collections.abc import Collection, Sequence
from uuid import UUID

from formation.repos.hierarchy_repo import HierarchyRepo
from formation.repos.progress_repo import ProgressRepo
from formation.services.cache import (
    COMPLETED_CONTENTS,
    COMPLETED_MODULES,
    CacheService,
    cached_id_set,
)
from formation.services.errors import NotFoundError


def unlocked_in_chain(
    chain: Sequence[UUID], completed: Collection[UUID], entity_id: UUID
) -> bool:
    """The first link is always open; any other needs its predecessor done."""
    index = chain.index(entity_id)
    return index == 0 or chain[index - 1] in completed


def unlocked_ids(chain: Sequence[UUID], completed: Collection[UUID]) -> set[UUID]:
    return {
        entity_id
        for i, entity_id in enumerate(chain)
        if i == 0 or chain[i - 1] in completed
    }


def all_completed(ids: Collection[UUID], completed: Collection[UUID]) -> bool:
    """True when ``ids`` is non-empty and every id is in ``completed``."""
    return bool(ids) and all(i in completed for i in ids)


class UnlockResolver:
    """Read-only unlock queries for one store view.

    Pass a cache only on read paths. Inside a unit of work the resolver
    must see the transaction's own writes, so it is built without one.
    """

    def __init__(
        self,
        hierarchy: HierarchyRepo,
        progress: ProgressRepo,
        *,
        cache: CacheService | None = None,
        cache_ttl: int = 0,
    ) -> None:
        self._hierarchy = hierarchy
        self._progress = progress
        self._cache = cache
        self._cache_ttl = cache_ttl

    async def completed_content_ids(self, user_id: str) -> set[UUID]:
        if self._cache is None:
            return await self._progress.completed_content_ids(user_id)
        return await cached_id_set(
            self._cache,
            user_id,
            COMPLETED_CONTENTS,
            self._cache_ttl,
            lambda: self._progress.completed_content_ids(user_id),
        )

    async def completed_module_ids(self, user_id: str) -> set[UUID]:
        if self._cache is None:
            return await self._progress.completed_module_ids(user_id)
        return await cached_id_set(
            self._cache,
            user_id,
            COMPLETED_MODULES,
            self._cache_ttl,
            lambda: self._progress.completed_module_ids(user_id),
        )

    async def is_content_unlocked(self, user_id: str, content_id: UUID) -> bool:
        chain = [c.id for c in await self._hierarchy.list_active_contents_in_order()]
        if content_id not in chain:
            raise NotFoundError("content", content_id)
        completed = await self.completed_content_ids(user_id)
        return unlocked_in_chain(chain, completed, content_id)

    async def is_chapter_quiz_unlocked(self, user_id: str, chapter_id: UUID) -> bool:
        tree = await self._hierarchy.get_chapter_with_children(chapter_id)
        content_ids = [c.id for c in tree.contents]
        completed = await self.completed_content_ids(user_id)
        return all_completed(content_ids, completed)

    async def is_module_unlocked(self, user_id: str, module_id: UUID) -> bool:
        chain = [m.id for m in await self._hierarchy.list_active_modules_in_order()]
        if module_id not in chain:
            raise NotFoundError("module", module_id)
        completed = await self.completed_module_ids(user_id)
        return unlocked_in_chain(chain, completed, module_id)
