from __future__ import annotations

import asyncio

from formation.repos.hierarchy_repo import InMemoryHierarchyRepo
from formation.seed import seed_demo_catalog


def test_seed_builds_two_module_catalog_once() -> None:
    repo = InMemoryHierarchyRepo()
    assert seed_demo_catalog(repo) is True
    assert seed_demo_catalog(repo) is False

    modules = asyncio.run(repo.list_active_modules_in_order())
    assert [m.title for m in modules] == ["Foundations", "Community"]
    assert len(asyncio.run(repo.list_active_contents_in_order())) == 3


def test_seeded_welcome_chapter_has_no_quiz() -> None:
    repo = InMemoryHierarchyRepo()
    seed_demo_catalog(repo)
    first = asyncio.run(repo.list_active_modules_in_order())[0]
    tree = asyncio.run(repo.get_module_with_children(first.id))
    welcome = asyncio.run(repo.get_chapter_with_children(tree.chapters[0].id))
    assert welcome.quiz is None
