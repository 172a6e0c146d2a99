from __future__ import annotations

import asyncio
import uuid

import pytest

from formation.models.progress import QuizResult
from formation.services.errors import NotFoundError
from formation.services.overview import ProgressReader, average_passed_score
from tests.catalog import (
    ALL_CORRECT,
    FOUR_OF_FIVE,
    add_chapter,
    add_content,
    add_module,
    build_scenario,
    make_engines,
)

USER = "learner-1"


def _reader(eng) -> ProgressReader:
    return ProgressReader(eng.store, eng.cache, cache_ttl=60)


def _result(score: int, passed: bool) -> QuizResult:
    return QuizResult(
        user_id=USER, quiz_id=uuid.uuid4(), score=score, passed=passed
    )


def test_average_score_counts_passed_results_only() -> None:
    assert average_passed_score([]) == 0
    assert average_passed_score([_result(30, False)]) == 0
    assert average_passed_score([_result(80, True), _result(75, True), _result(10, False)]) == 78


def test_fresh_learner_catalog() -> None:
    eng = make_engines()
    s = build_scenario(eng.hierarchy)
    add_module(eng.hierarchy, 2)

    overview = asyncio.run(_reader(eng).catalog(USER))

    assert [m.module.order for m in overview.modules] == [1, 2]
    first, second = overview.modules
    assert first.is_unlocked is True
    assert second.is_unlocked is False
    assert first.progress == 0

    c1, c2 = first.chapters
    assert c1.is_unlocked is True
    assert [c.is_unlocked for c in c1.contents] == [True, False]
    assert c2.is_unlocked is False
    assert c2.quiz is not None
    assert c2.quiz.id == s.quiz.id
    assert c2.quiz.is_unlocked is False
    assert c1.quiz is None

    assert overview.stats.total_modules == 2
    assert overview.stats.completed_modules == 0
    assert overview.stats.total_watch_time == 0
    assert overview.stats.average_score == 0


def test_catalog_after_module_completion() -> None:
    eng = make_engines()
    s = build_scenario(eng.hierarchy)
    add_module(eng.hierarchy, 2)
    for content in (*s.c1_contents, s.c2_content):
        asyncio.run(eng.completion.record_watch_time(USER, content.id, content.duration))
    asyncio.run(eng.quiz.submit_quiz(USER, s.quiz.id, FOUR_OF_FIVE))

    overview = asyncio.run(_reader(eng).catalog(USER))
    first, second = overview.modules

    assert first.is_completed is True
    assert first.progress == 100
    assert second.is_unlocked is True
    c2 = first.chapters[1]
    assert c2.all_contents_completed is True
    assert c2.quiz_passed is True
    assert c2.is_completed is True
    assert overview.stats.completed_modules == 1
    assert overview.stats.total_watch_time == 400
    assert overview.stats.average_score == 80


def test_half_done_module_progress() -> None:
    eng = make_engines()
    s = build_scenario(eng.hierarchy)
    for content in s.c1_contents:
        asyncio.run(eng.completion.record_watch_time(USER, content.id, content.duration))

    module = asyncio.run(_reader(eng).module(USER, s.module.id))

    assert module.progress == 50
    assert module.chapters[0].is_completed is True
    # quiz opens once C2's only content is done
    assert module.chapters[1].quiz is not None
    assert module.chapters[1].quiz.is_unlocked is False
    assert module.chapters[1].is_unlocked is True


def test_passed_quiz_alone_does_not_mark_chapter_completed() -> None:
    eng = make_engines()
    s = build_scenario(eng.hierarchy)
    asyncio.run(eng.quiz.submit_quiz(USER, s.quiz.id, ALL_CORRECT))

    module = asyncio.run(_reader(eng).module(USER, s.module.id))
    assert module.chapters[1].quiz_passed is True
    assert module.chapters[1].is_completed is False


def test_partial_watch_is_reported_as_percent() -> None:
    eng = make_engines()
    s = build_scenario(eng.hierarchy)
    first = s.c1_contents[0]
    asyncio.run(eng.completion.record_watch_time(USER, first.id, 33.5))

    view = asyncio.run(_reader(eng).content_progress(USER, first.id))
    assert view.watch_time == 33.5
    assert view.progress_percent == 34
    assert view.is_completed is False
    assert view.is_unlocked is True


def test_content_progress_without_row() -> None:
    eng = make_engines()
    s = build_scenario(eng.hierarchy)
    view = asyncio.run(_reader(eng).content_progress(USER, s.c2_content.id))
    assert view.watch_time == 0.0
    assert view.progress_percent == 0
    assert view.completed_at is None
    assert view.is_unlocked is False


def test_unknown_module_is_not_found() -> None:
    eng = make_engines()
    build_scenario(eng.hierarchy)
    with pytest.raises(NotFoundError):
        asyncio.run(_reader(eng).module(USER, uuid.uuid4()))


def test_inactive_content_is_hidden_from_overview() -> None:
    eng = make_engines()
    module = add_module(eng.hierarchy, 1)
    chapter = add_chapter(eng.hierarchy, module, 1)
    shown = add_content(eng.hierarchy, chapter, 1)
    add_content(eng.hierarchy, chapter, 2, is_active=False)

    overview = asyncio.run(_reader(eng).module(USER, module.id))
    assert [c.content.id for c in overview.chapters[0].contents] == [shown.id]


def test_overview_is_per_user() -> None:
    eng = make_engines()
    s = build_scenario(eng.hierarchy)
    first = s.c1_contents[0]
    asyncio.run(eng.completion.record_watch_time("someone-else", first.id, 100))

    module = asyncio.run(_reader(eng).module(USER, s.module.id))
    assert module.chapters[0].contents[0].is_completed is False
    assert module.chapters[0].contents[1].is_unlocked is False
