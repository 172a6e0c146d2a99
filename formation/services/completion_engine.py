"""Completion engine: record watch time and cascade completion upward.

    content completed ─▶ reevaluate chapter ─▶ reevaluate module ─▶ notify

Each entry point runs its whole read-modify-write cascade inside one
unit of work. Nothing is visible to other requests until the cascade
commits, and a failure anywhere rolls back every level together.

Side effects that must not roll back progress (the module-completed
notification, cache invalidation) run only after the commit, and only
for the transitions that this unit of work actually performed.

The three step functions below are pure: each takes the ids of an
entity's children and the set of completed ones and answers whether
the entity is complete. They are composed bottom-up by the engine.
"""

from __future__ import annotations

import datetime
import logging
import math
from collections.abc import Collection
from dataclasses import dataclass, field
from uuid import UUID

from formation.core.metrics import (
    CACHE_OPERATIONS,
    CHAPTER_COMPLETIONS,
    CONTENT_COMPLETIONS,
    LOCKED_ACCESS,
    MODULE_COMPLETIONS,
)
from formation.repos.unit_of_work import Store, UnitOfWork, store
from formation.services.cache import CacheService, cache_service, invalidate_user_progress
from formation.services.errors import InvalidInputError, LockedError
from formation.services.notifier import Notifier, notifier
from formation.services.unlock_resolver import UnlockResolver, all_completed

logger = logging.getLogger(__name__)

COMPLETION_THRESHOLD = 0.95

LOCKED_CONTENT_MESSAGE = "Complete the previous item first"


def _now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


# ---------------------------------------------------------------------------
# Pure step functions
# ---------------------------------------------------------------------------


def clamp_watch_time(observed: float, duration: int) -> float:
    return min(max(observed, 0.0), float(duration))


def content_completed(watch_time: float, duration: int) -> bool:
    return watch_time >= duration * COMPLETION_THRESHOLD


def chapter_completed(
    content_ids: Collection[UUID],
    completed_content_ids: Collection[UUID],
    *,
    quiz_passed: bool,
) -> bool:
    """All active contents done and the quiz (if any) passed.

    Callers pass ``quiz_passed=True`` for a chapter without a quiz.
    """
    return all_completed(content_ids, completed_content_ids) and quiz_passed


def module_completed(
    chapter_ids: Collection[UUID], completed_chapter_ids: Collection[UUID]
) -> bool:
    return all_completed(chapter_ids, completed_chapter_ids)


def progress_percent(watch_time: float, duration: int) -> int:
    """Percentage watched, rounded half-up and capped at 100."""
    if duration <= 0:
        return 0
    return min(100, math.floor(100 * watch_time / duration + 0.5))


def validate_watch_time(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise InvalidInputError("watch_time must be a number")
    if not math.isfinite(value) or value < 0:
        raise InvalidInputError("watch_time must be a non-negative number")
    return float(value)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class WatchTimeResult:
    content_id: UUID
    watch_time: float
    is_completed: bool
    completed_at: int | None
    progress_percent: int


@dataclass(slots=True)
class CascadeOutcome:
    """Transitions performed by one unit of work, published after commit."""

    chapters_completed: list[UUID] = field(default_factory=list)
    modules_completed: list[UUID] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class CompletionEngine:
    def __init__(self, store: Store, notifier: Notifier, cache: CacheService) -> None:
        self._store = store
        self._notifier = notifier
        self._cache = cache

    async def record_watch_time(
        self, user_id: str, content_id: UUID, observed_seconds: object
    ) -> WatchTimeResult:
        """Store a watch-time report and cascade if the content is complete.

        Raises NotFoundError for an absent or inactive content, LockedError
        when the previous content of the catalog chain is not completed,
        InvalidInputError for a negative or non-numeric report.
        """
        observed = validate_watch_time(observed_seconds)
        now = _now()
        outcome = CascadeOutcome()

        async with self._store.unit_of_work(user_id) as uow:
            content = await uow.hierarchy.get_content(content_id)
            resolver = UnlockResolver(uow.hierarchy, uow.progress)
            if not await resolver.is_content_unlocked(user_id, content_id):
                LOCKED_ACCESS.labels(entity="content").inc()
                logger.info(
                    "Locked content rejected  user_id=%s content_id=%s",
                    user_id,
                    content_id,
                )
                raise LockedError(LOCKED_CONTENT_MESSAGE)

            watch_time = clamp_watch_time(observed, content.duration)
            previous = await uow.progress.get_content_progress(user_id, content_id)
            row = await uow.progress.upsert_content_progress(
                user_id,
                content_id,
                watch_time=watch_time,
                is_completed=content_completed(watch_time, content.duration),
                now=now,
            )
            if row.is_completed:
                await self.cascade_from_chapter(
                    uow, user_id, content.chapter_id, now=now, outcome=outcome
                )

        if row.is_completed and (previous is None or not previous.is_completed):
            CONTENT_COMPLETIONS.inc()
            logger.info(
                "Content completed  user_id=%s content_id=%s", user_id, content_id
            )
        await self.publish(user_id, outcome)

        return WatchTimeResult(
            content_id=content_id,
            watch_time=row.watch_time,
            is_completed=row.is_completed,
            completed_at=row.completed_at,
            progress_percent=progress_percent(row.watch_time, content.duration),
        )

    async def reevaluate_chapter(self, user_id: str, chapter_id: UUID) -> CascadeOutcome:
        """Re-run the chapter → module cascade in its own unit of work."""
        outcome = CascadeOutcome()
        async with self._store.unit_of_work(user_id) as uow:
            await self.cascade_from_chapter(
                uow, user_id, chapter_id, now=_now(), outcome=outcome
            )
        await self.publish(user_id, outcome)
        return outcome

    async def reevaluate_module(self, user_id: str, module_id: UUID) -> CascadeOutcome:
        outcome = CascadeOutcome()
        async with self._store.unit_of_work(user_id) as uow:
            await self.cascade_from_module(
                uow, user_id, module_id, now=_now(), outcome=outcome
            )
        await self.publish(user_id, outcome)
        return outcome

    # --- steps run inside a caller's unit of work ---

    async def cascade_from_chapter(
        self,
        uow: UnitOfWork,
        user_id: str,
        chapter_id: UUID,
        *,
        now: int,
        outcome: CascadeOutcome,
    ) -> None:
        tree = await uow.hierarchy.get_chapter_with_children(chapter_id)
        content_ids = [c.id for c in tree.contents]
        done = await uow.progress.completed_content_ids(user_id, content_ids)

        quiz_passed = True
        if tree.quiz is not None:
            result = await uow.progress.get_quiz_result(user_id, tree.quiz.id)
            quiz_passed = result is not None and result.passed

        if not chapter_completed(content_ids, done, quiz_passed=quiz_passed):
            logger.debug(
                "Chapter not complete yet  user_id=%s chapter_id=%s contents=%d/%d quiz_passed=%s",
                user_id,
                chapter_id,
                len(done),
                len(content_ids),
                quiz_passed,
            )
            return

        if await uow.progress.mark_chapter_completed(user_id, chapter_id, now=now):
            outcome.chapters_completed.append(chapter_id)
        await self.cascade_from_module(
            uow, user_id, tree.chapter.module_id, now=now, outcome=outcome
        )

    async def cascade_from_module(
        self,
        uow: UnitOfWork,
        user_id: str,
        module_id: UUID,
        *,
        now: int,
        outcome: CascadeOutcome,
    ) -> None:
        tree = await uow.hierarchy.get_module_with_children(module_id)
        chapter_ids = [c.id for c in tree.chapters]
        done = await uow.progress.completed_chapter_ids(user_id, chapter_ids)
        if not module_completed(chapter_ids, done):
            return
        if await uow.progress.mark_module_completed(user_id, module_id, now=now):
            outcome.modules_completed.append(module_id)

    async def publish(self, user_id: str, outcome: CascadeOutcome) -> None:
        """Post-commit effects: metrics, notifications, cache invalidation."""
        for chapter_id in outcome.chapters_completed:
            CHAPTER_COMPLETIONS.inc()
            logger.info(
                "Chapter completed  user_id=%s chapter_id=%s", user_id, chapter_id
            )
        for module_id in outcome.modules_completed:
            MODULE_COMPLETIONS.inc()
            logger.info("Module completed  user_id=%s module_id=%s", user_id, module_id)
            await self._notifier.module_completed(user_id, module_id)
        try:
            await invalidate_user_progress(self._cache, user_id)
        except Exception:
            # the write is committed; the cache TTL bounds the staleness
            CACHE_OPERATIONS.labels(operation="invalidate_failed").inc()
            logger.exception("Progress cache not invalidated  user_id=%s", user_id)


completion_engine = CompletionEngine(store, notifier, cache_service)
