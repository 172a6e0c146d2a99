from __future__ import annotations

import asyncio
import uuid

import pytest

from formation.models.hierarchy import Content
from formation.repos.hierarchy_repo import InMemoryHierarchyRepo
from formation.services.errors import NotFoundError
from tests.catalog import add_chapter, add_content, add_module, add_quiz


def test_chain_is_ordered_across_modules_and_chapters() -> None:
    repo = InMemoryHierarchyRepo()
    m1 = add_module(repo, 1)
    m2 = add_module(repo, 2)
    m2_c1 = add_chapter(repo, m2, 1)
    m1_c2 = add_chapter(repo, m1, 2)
    m1_c1 = add_chapter(repo, m1, 1)
    last = add_content(repo, m2_c1, 1)
    third = add_content(repo, m1_c2, 1)
    second = add_content(repo, m1_c1, 2)
    first = add_content(repo, m1_c1, 1)

    chain = asyncio.run(repo.list_active_contents_in_order())
    assert [c.id for c in chain] == [first.id, second.id, third.id, last.id]


def test_inactive_ancestor_hides_descendants() -> None:
    repo = InMemoryHierarchyRepo()
    module = add_module(repo, 1, is_active=False)
    chapter = add_chapter(repo, module, 1)
    content = add_content(repo, chapter, 1)
    quiz = add_quiz(repo, chapter)

    assert asyncio.run(repo.list_active_contents_in_order()) == []
    with pytest.raises(NotFoundError):
        asyncio.run(repo.get_chapter(chapter.id))
    with pytest.raises(NotFoundError):
        asyncio.run(repo.get_content(content.id))
    with pytest.raises(NotFoundError):
        asyncio.run(repo.get_quiz(quiz.id))


def test_chapter_tree_keeps_active_contents_in_order() -> None:
    repo = InMemoryHierarchyRepo()
    chapter = add_chapter(repo, add_module(repo, 1), 1)
    second = add_content(repo, chapter, 2)
    add_content(repo, chapter, 3, is_active=False)
    first = add_content(repo, chapter, 1)
    quiz = add_quiz(repo, chapter)

    tree = asyncio.run(repo.get_chapter_with_children(chapter.id))
    assert [c.id for c in tree.contents] == [first.id, second.id]
    assert tree.quiz == quiz


def test_module_tree_lists_active_chapters() -> None:
    repo = InMemoryHierarchyRepo()
    module = add_module(repo, 1)
    kept = add_chapter(repo, module, 1)
    add_chapter(repo, module, 2, is_active=False)

    tree = asyncio.run(repo.get_module_with_children(module.id))
    assert tree.chapters == (kept,)


def test_unknown_ids_raise_not_found() -> None:
    repo = InMemoryHierarchyRepo()
    with pytest.raises(NotFoundError, match="module"):
        asyncio.run(repo.get_module(uuid.uuid4()))
    with pytest.raises(NotFoundError, match="quiz"):
        asyncio.run(repo.get_quiz(uuid.uuid4()))


def test_authoring_rejects_non_positive_duration() -> None:
    repo = InMemoryHierarchyRepo()
    chapter = add_chapter(repo, add_module(repo, 1), 1)
    with pytest.raises(ValueError):
        repo.add_content(Content.new(chapter_id=chapter.id, order=1, duration=0))


def test_authoring_allows_one_quiz_per_chapter() -> None:
    repo = InMemoryHierarchyRepo()
    chapter = add_chapter(repo, add_module(repo, 1), 1)
    add_quiz(repo, chapter)
    with pytest.raises(ValueError):
        add_quiz(repo, chapter)
