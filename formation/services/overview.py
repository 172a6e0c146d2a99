"""Read-side views of a learner's progress through the catalog.

Everything here is a pure read. Unlock facts go through the progress
read cache; watch times, chapter rows and quiz results are read from
the store directly.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from uuid import UUID

from formation.core.config import SETTINGS
from formation.models.hierarchy import Content, Module
from formation.models.progress import ContentProgress, QuizResult
from formation.repos.unit_of_work import Store, UnitOfWork, store
from formation.services.cache import CacheService, cache_service
from formation.services.completion_engine import progress_percent
from formation.services.unlock_resolver import (
    UnlockResolver,
    all_completed,
    unlocked_ids,
)


@dataclass(frozen=True, slots=True)
class ContentProgressView:
    content_id: UUID
    watch_time: float
    is_completed: bool
    completed_at: int | None
    progress_percent: int
    is_unlocked: bool


@dataclass(frozen=True, slots=True)
class ContentOverview:
    content: Content
    is_unlocked: bool
    is_completed: bool
    watch_time: float
    progress: int


@dataclass(frozen=True, slots=True)
class QuizSummary:
    id: UUID
    title: str
    passing_score: int
    is_passed: bool
    is_unlocked: bool


@dataclass(frozen=True, slots=True)
class ChapterOverview:
    id: UUID
    title: str
    order: int
    contents: tuple[ContentOverview, ...]
    quiz: QuizSummary | None
    all_contents_completed: bool
    quiz_passed: bool
    is_completed: bool
    is_unlocked: bool


@dataclass(frozen=True, slots=True)
class ModuleOverview:
    module: Module
    chapters: tuple[ChapterOverview, ...]
    is_unlocked: bool
    is_completed: bool
    progress: int


@dataclass(frozen=True, slots=True)
class UserStats:
    total_modules: int
    completed_modules: int
    total_watch_time: float
    average_score: int


@dataclass(frozen=True, slots=True)
class CatalogOverview:
    modules: tuple[ModuleOverview, ...]
    stats: UserStats


def _half_up_ratio(part: int, whole: int) -> int:
    if whole == 0:
        return 0
    return math.floor(100 * part / whole + 0.5)


def average_passed_score(results: list[QuizResult]) -> int:
    scores = [r.score for r in results if r.passed]
    if not scores:
        return 0
    return math.floor(sum(scores) / len(scores) + 0.5)


@dataclass(slots=True)
class _UserFacts:
    content_unlocked: set[UUID]
    completed_contents: set[UUID]
    completed_chapters: set[UUID]
    module_unlocked: set[UUID]
    completed_modules: set[UUID]
    progress_by_content: dict[UUID, ContentProgress]
    results_by_quiz: dict[UUID, QuizResult]


class ProgressReader:
    def __init__(self, store: Store, cache: CacheService, cache_ttl: int) -> None:
        self._store = store
        self._cache = cache
        self._cache_ttl = cache_ttl

    def _resolver(self, uow: UnitOfWork) -> UnlockResolver:
        return UnlockResolver(
            uow.hierarchy, uow.progress, cache=self._cache, cache_ttl=self._cache_ttl
        )

    # --- unlock checks ---

    async def content_unlocked(self, user_id: str, content_id: UUID) -> bool:
        async with self._store.unit_of_work(user_id, exclusive=False) as uow:
            return await self._resolver(uow).is_content_unlocked(user_id, content_id)

    async def quiz_unlocked(self, user_id: str, chapter_id: UUID) -> bool:
        async with self._store.unit_of_work(user_id, exclusive=False) as uow:
            return await self._resolver(uow).is_chapter_quiz_unlocked(
                user_id, chapter_id
            )

    async def module_unlocked(self, user_id: str, module_id: UUID) -> bool:
        async with self._store.unit_of_work(user_id, exclusive=False) as uow:
            return await self._resolver(uow).is_module_unlocked(user_id, module_id)

    # --- progress lookups ---

    async def content_progress(
        self, user_id: str, content_id: UUID
    ) -> ContentProgressView:
        async with self._store.unit_of_work(user_id, exclusive=False) as uow:
            content = await uow.hierarchy.get_content(content_id)
            row = await uow.progress.get_content_progress(user_id, content_id)
            unlocked = await self._resolver(uow).is_content_unlocked(
                user_id, content_id
            )
        if row is None:
            return ContentProgressView(
                content_id=content_id,
                watch_time=0.0,
                is_completed=False,
                completed_at=None,
                progress_percent=0,
                is_unlocked=unlocked,
            )
        return ContentProgressView(
            content_id=content_id,
            watch_time=row.watch_time,
            is_completed=row.is_completed,
            completed_at=row.completed_at,
            progress_percent=progress_percent(row.watch_time, content.duration),
            is_unlocked=unlocked,
        )

    async def catalog(self, user_id: str) -> CatalogOverview:
        async with self._store.unit_of_work(user_id, exclusive=False) as uow:
            facts = await self._load_facts(uow, user_id)
            modules = await uow.hierarchy.list_active_modules_in_order()
            overviews = tuple(
                [await self._module_overview(uow, m.id, facts) for m in modules]
            )

        stats = UserStats(
            total_modules=len(overviews),
            completed_modules=sum(1 for m in overviews if m.is_completed),
            total_watch_time=sum(p.watch_time for p in facts.progress_by_content.values()),
            average_score=average_passed_score(list(facts.results_by_quiz.values())),
        )
        return CatalogOverview(modules=overviews, stats=stats)

    async def module(self, user_id: str, module_id: UUID) -> ModuleOverview:
        async with self._store.unit_of_work(user_id, exclusive=False) as uow:
            facts = await self._load_facts(uow, user_id)
            return await self._module_overview(uow, module_id, facts)

    # --- helpers ---

    async def _load_facts(self, uow: UnitOfWork, user_id: str) -> _UserFacts:
        resolver = self._resolver(uow)
        content_chain = [
            c.id for c in await uow.hierarchy.list_active_contents_in_order()
        ]
        module_chain = [m.id for m in await uow.hierarchy.list_active_modules_in_order()]
        completed_contents = await resolver.completed_content_ids(user_id)
        completed_modules = await resolver.completed_module_ids(user_id)
        return _UserFacts(
            content_unlocked=unlocked_ids(content_chain, completed_contents),
            completed_contents=completed_contents,
            completed_chapters=await uow.progress.completed_chapter_ids(user_id),
            module_unlocked=unlocked_ids(module_chain, completed_modules),
            completed_modules=completed_modules,
            progress_by_content={
                p.content_id: p for p in await uow.progress.list_content_progress(user_id)
            },
            results_by_quiz={
                r.quiz_id: r for r in await uow.progress.list_quiz_results(user_id)
            },
        )

    async def _module_overview(
        self, uow: UnitOfWork, module_id: UUID, facts: _UserFacts
    ) -> ModuleOverview:
        tree = await uow.hierarchy.get_module_with_children(module_id)
        chapters = []
        for chapter in tree.chapters:
            chapter_tree = await uow.hierarchy.get_chapter_with_children(chapter.id)
            contents = tuple(
                self._content_overview(c, facts) for c in chapter_tree.contents
            )
            content_ids = [c.content.id for c in contents]
            contents_done = all_completed(content_ids, facts.completed_contents)

            quiz = None
            quiz_passed = True
            if chapter_tree.quiz is not None:
                result = facts.results_by_quiz.get(chapter_tree.quiz.id)
                quiz_passed = result is not None and result.passed
                quiz = QuizSummary(
                    id=chapter_tree.quiz.id,
                    title=chapter_tree.quiz.title,
                    passing_score=chapter_tree.quiz.passing_score,
                    is_passed=quiz_passed,
                    is_unlocked=contents_done,
                )

            chapters.append(
                ChapterOverview(
                    id=chapter.id,
                    title=chapter.title,
                    order=chapter.order,
                    contents=contents,
                    quiz=quiz,
                    all_contents_completed=contents_done,
                    quiz_passed=quiz_passed,
                    is_completed=chapter.id in facts.completed_chapters,
                    is_unlocked=any(c.is_unlocked for c in contents),
                )
            )

        completed_chapters = sum(1 for c in chapters if c.is_completed)
        return ModuleOverview(
            module=tree.module,
            chapters=tuple(chapters),
            is_unlocked=module_id in facts.module_unlocked,
            is_completed=module_id in facts.completed_modules,
            progress=_half_up_ratio(completed_chapters, len(chapters)),
        )

    def _content_overview(self, content: Content, facts: _UserFacts) -> ContentOverview:
        row = facts.progress_by_content.get(content.id)
        watch_time = row.watch_time if row is not None else 0.0
        return ContentOverview(
            content=content,
            is_unlocked=content.id in facts.content_unlocked,
            is_completed=content.id in facts.completed_contents,
            watch_time=watch_time,
            progress=progress_percent(watch_time, content.duration),
        )


progress_reader = ProgressReader(store, cache_service, SETTINGS.progress_cache_ttl)
