"""Completion engine: watch-time recording and the content → chapter → module cascade.

Each test builds a private store with make_engines(), so engine state never
leaks through the app singletons.
"""

from __future__ import annotations

import asyncio
import logging
import math
import uuid

import pytest
from prometheus_client import REGISTRY

from formation.services.cache import (
    COMPLETED_CONTENTS,
    InMemoryCacheService,
    current_generation,
    progress_key,
)
from formation.services.completion_engine import (
    CompletionEngine,
    chapter_completed,
    clamp_watch_time,
    content_completed,
    module_completed,
    progress_percent,
)
from formation.services.errors import (
    InvalidInputError,
    LockedError,
    NotFoundError,
    StoreError,
)
from formation.services.notifier import ModuleCompletionNotifier
from tests.catalog import (
    FOUR_OF_FIVE,
    add_chapter,
    add_content,
    add_module,
    build_scenario,
    drain,
    make_engines,
)

USER = "learner-1"


def _sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


def _single_content_module():
    eng = make_engines()
    module = add_module(eng.hierarchy, 1)
    chapter = add_chapter(eng.hierarchy, module, 1)
    content = add_content(eng.hierarchy, chapter, 1, duration=100)
    return eng, module, chapter, content


# ---- pure step functions ----


def test_clamp_watch_time_bounds() -> None:
    assert clamp_watch_time(-3.0, 100) == 0.0
    assert clamp_watch_time(42.5, 100) == 42.5
    assert clamp_watch_time(600.0, 100) == 100.0


def test_content_completed_threshold_is_inclusive() -> None:
    assert content_completed(95.0, 100) is True
    assert content_completed(94.99, 100) is False


def test_chapter_completed_requires_contents_and_quiz() -> None:
    a, b = uuid.uuid4(), uuid.uuid4()
    assert chapter_completed([a, b], {a, b}, quiz_passed=True) is True
    assert chapter_completed([a, b], {a, b}, quiz_passed=False) is False
    assert chapter_completed([a, b], {a}, quiz_passed=True) is False


def test_empty_chapter_and_module_never_complete() -> None:
    assert chapter_completed([], set(), quiz_passed=True) is False
    assert module_completed([], set()) is False


def test_progress_percent_rounds_half_up_and_caps() -> None:
    assert progress_percent(47.5, 100) == 48
    assert progress_percent(12.4, 100) == 12
    assert progress_percent(100.0, 100) == 100
    assert progress_percent(0.0, 100) == 0


# ---- threshold and clamping ----


def test_94_percent_is_not_completed() -> None:
    eng, _, _, content = _single_content_module()
    result = asyncio.run(eng.completion.record_watch_time(USER, content.id, 94.0))
    assert result.is_completed is False
    assert result.completed_at is None
    assert result.progress_percent == 94


def test_95_percent_is_completed() -> None:
    eng, _, _, content = _single_content_module()
    result = asyncio.run(eng.completion.record_watch_time(USER, content.id, 95.0))
    assert result.is_completed is True
    assert result.completed_at is not None


def test_threshold_on_uneven_duration() -> None:
    eng = make_engines()
    module = add_module(eng.hierarchy, 1)
    chapter = add_chapter(eng.hierarchy, module, 1)
    content = add_content(eng.hierarchy, chapter, 1, duration=137)

    below = asyncio.run(
        eng.completion.record_watch_time(USER, content.id, 0.94 * 137)
    )
    assert below.is_completed is False
    at = asyncio.run(eng.completion.record_watch_time(USER, content.id, 0.95 * 137))
    assert at.is_completed is True


def test_watch_time_is_clamped_to_duration() -> None:
    eng, _, _, content = _single_content_module()
    result = asyncio.run(eng.completion.record_watch_time(USER, content.id, 600))
    assert result.watch_time == 100.0
    assert result.progress_percent == 100

    row = asyncio.run(eng.store.progress.get_content_progress(USER, content.id))
    assert row is not None
    assert row.watch_time == 100.0


# ---- monotonicity ----


def test_completion_never_reverts() -> None:
    eng, _, _, content = _single_content_module()
    first = asyncio.run(eng.completion.record_watch_time(USER, content.id, 100))
    assert first.is_completed is True

    for seconds in (0, 10, 94.9):
        later = asyncio.run(
            eng.completion.record_watch_time(USER, content.id, seconds)
        )
        assert later.is_completed is True
        assert later.completed_at == first.completed_at
        assert later.watch_time == float(seconds)


# ---- gates and input validation ----


def test_second_content_is_locked_until_first_done() -> None:
    eng = make_engines()
    s = build_scenario(eng.hierarchy)
    a, b = s.c1_contents

    with pytest.raises(LockedError):
        asyncio.run(eng.completion.record_watch_time(USER, b.id, 100))
    assert asyncio.run(eng.store.progress.get_content_progress(USER, b.id)) is None

    asyncio.run(eng.completion.record_watch_time(USER, a.id, 100))
    result = asyncio.run(eng.completion.record_watch_time(USER, b.id, 10))
    assert result.watch_time == 10.0


def test_locked_access_is_counted() -> None:
    eng = make_engines()
    s = build_scenario(eng.hierarchy)
    before = _sample("locked_access_total", {"entity": "content"})
    with pytest.raises(LockedError):
        asyncio.run(eng.completion.record_watch_time(USER, s.c2_content.id, 10))
    assert _sample("locked_access_total", {"entity": "content"}) - before == 1


def test_chain_crosses_chapter_boundary() -> None:
    eng = make_engines()
    s = build_scenario(eng.hierarchy)
    a, b = s.c1_contents
    asyncio.run(eng.completion.record_watch_time(USER, a.id, 100))
    asyncio.run(eng.completion.record_watch_time(USER, b.id, 100))
    # last content of C1 done → first content of C2 opens
    result = asyncio.run(
        eng.completion.record_watch_time(USER, s.c2_content.id, 20)
    )
    assert result.progress_percent == 10


@pytest.mark.parametrize("bad", [-1, -0.01, "10", True, None, math.nan, math.inf])
def test_invalid_watch_time_is_rejected_before_any_write(bad) -> None:
    eng, _, _, content = _single_content_module()
    with pytest.raises(InvalidInputError):
        asyncio.run(eng.completion.record_watch_time(USER, content.id, bad))
    assert asyncio.run(eng.store.progress.list_content_progress(USER)) == []


def test_unknown_content_is_not_found() -> None:
    eng, _, _, _ = _single_content_module()
    with pytest.raises(NotFoundError):
        asyncio.run(eng.completion.record_watch_time(USER, uuid.uuid4(), 10))


def test_content_under_inactive_chapter_is_not_found() -> None:
    eng = make_engines()
    module = add_module(eng.hierarchy, 1)
    hidden = add_chapter(eng.hierarchy, module, 1, is_active=False)
    content = add_content(eng.hierarchy, hidden, 1)
    with pytest.raises(NotFoundError):
        asyncio.run(eng.completion.record_watch_time(USER, content.id, 10))


def test_inactive_content_is_skipped_in_chain() -> None:
    eng = make_engines()
    module = add_module(eng.hierarchy, 1)
    chapter = add_chapter(eng.hierarchy, module, 1)
    first = add_content(eng.hierarchy, chapter, 1)
    add_content(eng.hierarchy, chapter, 2, is_active=False)
    third = add_content(eng.hierarchy, chapter, 3)

    asyncio.run(eng.completion.record_watch_time(USER, first.id, 100))
    result = asyncio.run(eng.completion.record_watch_time(USER, third.id, 5))
    assert result.watch_time == 5.0


# ---- cascade ----


def test_scenario_cascade_fires_notification_once() -> None:
    eng = make_engines()
    s = build_scenario(eng.hierarchy)
    a, b = s.c1_contents
    progress = eng.store.progress

    asyncio.run(eng.completion.record_watch_time(USER, a.id, 100))
    asyncio.run(eng.completion.record_watch_time(USER, b.id, 100))
    c1 = asyncio.run(progress.get_chapter_progress(USER, s.c1.id))
    assert c1 is not None and c1.is_completed is True
    assert asyncio.run(progress.get_module_progress(USER, s.module.id)) is None

    asyncio.run(eng.completion.record_watch_time(USER, s.c2_content.id, 200))
    # quiz still required
    assert asyncio.run(progress.get_chapter_progress(USER, s.c2.id)) is None
    assert asyncio.run(progress.get_module_progress(USER, s.module.id)) is None

    result = asyncio.run(eng.quiz.submit_quiz(USER, s.quiz.id, FOUR_OF_FIVE))
    assert result.score == 80
    assert result.passed is True

    c2 = asyncio.run(progress.get_chapter_progress(USER, s.c2.id))
    assert c2 is not None and c2.is_completed is True
    module = asyncio.run(progress.get_module_progress(USER, s.module.id))
    assert module is not None and module.is_completed is True
    assert len(drain(eng.queue)) == 1


def test_reevaluate_completed_module_emits_nothing() -> None:
    eng, module, _, content = _single_content_module()
    asyncio.run(eng.completion.record_watch_time(USER, content.id, 100))
    assert len(drain(eng.queue)) == 1

    outcome = asyncio.run(eng.completion.reevaluate_module(USER, module.id))
    assert outcome.modules_completed == []
    # re-watching re-runs the cascade as a no-op
    asyncio.run(eng.completion.record_watch_time(USER, content.id, 100))
    assert drain(eng.queue) == []


def test_reevaluate_chapter_without_progress_is_noop() -> None:
    eng, _, chapter, _ = _single_content_module()
    outcome = asyncio.run(eng.completion.reevaluate_chapter(USER, chapter.id))
    assert outcome.chapters_completed == []
    assert outcome.modules_completed == []


def test_notification_payload() -> None:
    eng, module, _, content = _single_content_module()
    asyncio.run(eng.completion.record_watch_time(USER, content.id, 100))
    [task] = drain(eng.queue)
    assert task.user_id == USER
    assert task.module_id == module.id
    assert task.title == "Module completed!"


def test_progress_is_partitioned_by_user() -> None:
    eng, _, _, content = _single_content_module()
    asyncio.run(eng.completion.record_watch_time("alice", content.id, 100))
    bob = asyncio.run(eng.store.progress.get_content_progress("bob", content.id))
    assert bob is None


# ---- atomicity ----


def test_failed_cascade_rolls_back_content_progress(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    eng, _, _, content = _single_content_module()

    async def broken(module_id):
        raise StoreError("connection lost")

    monkeypatch.setattr(eng.hierarchy, "get_module_with_children", broken)
    with pytest.raises(StoreError):
        asyncio.run(eng.completion.record_watch_time(USER, content.id, 100))

    progress = eng.store.progress
    assert asyncio.run(progress.get_content_progress(USER, content.id)) is None
    assert asyncio.run(progress.completed_chapter_ids(USER)) == set()
    assert drain(eng.queue) == []


def test_notification_failure_does_not_roll_back(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    eng, module, _, content = _single_content_module()

    async def refuse(task):
        raise ConnectionError("redis down")

    monkeypatch.setattr(eng.queue, "push", refuse)
    before = _sample("notification_failures_total")

    result = asyncio.run(eng.completion.record_watch_time(USER, content.id, 100))
    assert result.is_completed is True
    row = asyncio.run(eng.store.progress.get_module_progress(USER, module.id))
    assert row is not None and row.is_completed is True
    assert _sample("notification_failures_total") - before == 1


# ---- concurrency ----


def test_concurrent_duplicate_reports_complete_once() -> None:
    eng, _, chapter, content = _single_content_module()
    before = _sample("content_completions_total")

    async def race():
        return await asyncio.gather(
            *(eng.completion.record_watch_time(USER, content.id, 95) for _ in range(5))
        )

    results = asyncio.run(race())
    assert all(r.is_completed for r in results)
    assert len({r.completed_at for r in results}) == 1
    assert len(asyncio.run(eng.store.progress.list_content_progress(USER))) == 1
    assert _sample("content_completions_total") - before == 1
    assert asyncio.run(eng.store.progress.completed_chapter_ids(USER)) == {chapter.id}
    assert len(drain(eng.queue)) == 1


def test_write_retires_user_cache_generation_only() -> None:
    eng, _, _, content = _single_content_module()
    mine = progress_key(USER, COMPLETED_CONTENTS, 0)
    theirs = progress_key("other", COMPLETED_CONTENTS, 0)
    eng.cache._store[mine] = "[]"
    eng.cache._store[theirs] = "[]"

    asyncio.run(eng.completion.record_watch_time(USER, content.id, 50))
    assert mine not in eng.cache._store
    assert theirs in eng.cache._store
    assert asyncio.run(current_generation(eng.cache, USER)) == 1
    assert asyncio.run(current_generation(eng.cache, "other")) == 0


def test_cache_failure_after_commit_is_logged_not_raised(
    caplog: pytest.LogCaptureFixture,
) -> None:
    eng, module, _, content = _single_content_module()

    class _DownCache(InMemoryCacheService):
        async def incr(self, key: str) -> int:
            raise ConnectionError("redis down")

    eng.completion = CompletionEngine(
        eng.store, ModuleCompletionNotifier(eng.queue), _DownCache()
    )
    labels = {"operation": "invalidate_failed"}
    before = _sample("progress_cache_operations_total", labels)

    with caplog.at_level(logging.ERROR, logger="formation.services.completion_engine"):
        result = asyncio.run(eng.completion.record_watch_time(USER, content.id, 100))

    assert result.is_completed is True
    row = asyncio.run(eng.store.progress.get_module_progress(USER, module.id))
    assert row is not None and row.is_completed is True
    assert len(drain(eng.queue)) == 1
    assert "Progress cache not invalidated" in caplog.text
    assert _sample("progress_cache_operations_total", labels) - before == 1
