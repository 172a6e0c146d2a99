from __future__ import annotations

from typing import Protocol
from uuid import UUID

from formation.models.hierarchy import (
    Chapter,
    ChapterTree,
    Content,
    Module,
    ModuleTree,
    Quiz,
)
from formation.services.errors import NotFoundError


class HierarchyRepo(Protocol):
    """Read access to the active catalog.

    Every getter raises NotFoundError when the id is absent or when the
    record or any of its ancestors is inactive.
    """

    async def get_module(self, module_id: UUID) -> Module: ...
    async def get_chapter(self, chapter_id: UUID) -> Chapter: ...
    async def get_content(self, content_id: UUID) -> Content: ...
    async def get_quiz(self, quiz_id: UUID) -> Quiz: ...
    async def get_chapter_with_children(self, chapter_id: UUID) -> ChapterTree: ...
    async def get_module_with_children(self, module_id: UUID) -> ModuleTree: ...
    async def list_active_modules_in_order(self) -> list[Module]: ...
    async def list_active_contents_in_order(self) -> list[Content]: ...


class InMemoryHierarchyRepo:
    def __init__(self) -> None:
        self._modules: dict[UUID, Module] = {}
        self._chapters: dict[UUID, Chapter] = {}
        self._contents: dict[UUID, Content] = {}
        self._quizzes: dict[UUID, Quiz] = {}

    # --- authoring (seed data and tests) ---

    def add_module(self, module: Module) -> Module:
        self._modules[module.id] = module
        return module

    def add_chapter(self, chapter: Chapter) -> Chapter:
        if chapter.module_id not in self._modules:
            raise KeyError("module not found")
        self._chapters[chapter.id] = chapter
        return chapter

    def add_content(self, content: Content) -> Content:
        if content.chapter_id not in self._chapters:
            raise KeyError("chapter not found")
        if content.duration <= 0:
            raise ValueError("content duration must be positive")
        self._contents[content.id] = content
        return content

    def add_quiz(self, quiz: Quiz) -> Quiz:
        if quiz.chapter_id not in self._chapters:
            raise KeyError("chapter not found")
        if any(q.chapter_id == quiz.chapter_id for q in self._quizzes.values()):
            raise ValueError("chapter already has a quiz")
        self._quizzes[quiz.id] = quiz
        return quiz

    def clear(self) -> None:
        self._modules.clear()
        self._chapters.clear()
        self._contents.clear()
        self._quizzes.clear()

    # --- activity checks ---

    def _module_active(self, module_id: UUID) -> bool:
        module = self._modules.get(module_id)
        return module is not None and module.is_active

    def _chapter_active(self, chapter_id: UUID) -> bool:
        chapter = self._chapters.get(chapter_id)
        return (
            chapter is not None
            and chapter.is_active
            and self._module_active(chapter.module_id)
        )

    def _content_active(self, content: Content) -> bool:
        return content.is_active and self._chapter_active(content.chapter_id)

    def _content_sort_key(self, content: Content) -> tuple[int, int, int, str]:
        chapter = self._chapters[content.chapter_id]
        module = self._modules[chapter.module_id]
        return (module.order, chapter.order, content.order, str(content.id))

    # --- HierarchyRepo ---

    async def get_module(self, module_id: UUID) -> Module:
        if not self._module_active(module_id):
            raise NotFoundError("module", module_id)
        return self._modules[module_id]

    async def get_chapter(self, chapter_id: UUID) -> Chapter:
        if not self._chapter_active(chapter_id):
            raise NotFoundError("chapter", chapter_id)
        return self._chapters[chapter_id]

    async def get_content(self, content_id: UUID) -> Content:
        content = self._contents.get(content_id)
        if content is None or not self._content_active(content):
            raise NotFoundError("content", content_id)
        return content

    async def get_quiz(self, quiz_id: UUID) -> Quiz:
        quiz = self._quizzes.get(quiz_id)
        if quiz is None or not self._chapter_active(quiz.chapter_id):
            raise NotFoundError("quiz", quiz_id)
        return quiz

    async def get_chapter_with_children(self, chapter_id: UUID) -> ChapterTree:
        chapter = await self.get_chapter(chapter_id)
        contents = sorted(
            (
                c
                for c in self._contents.values()
                if c.chapter_id == chapter_id and c.is_active
            ),
            key=lambda c: (c.order, str(c.id)),
        )
        quiz = next(
            (q for q in self._quizzes.values() if q.chapter_id == chapter_id), None
        )
        return ChapterTree(chapter=chapter, contents=tuple(contents), quiz=quiz)

    async def get_module_with_children(self, module_id: UUID) -> ModuleTree:
        module = await self.get_module(module_id)
        chapters = sorted(
            (
                c
                for c in self._chapters.values()
                if c.module_id == module_id and c.is_active
            ),
            key=lambda c: (c.order, str(c.id)),
        )
        return ModuleTree(module=module, chapters=tuple(chapters))

    async def list_active_modules_in_order(self) -> list[Module]:
        return sorted(
            (m for m in self._modules.values() if m.is_active),
            key=lambda m: (m.order, str(m.id)),
        )

    async def list_active_contents_in_order(self) -> list[Content]:
        active = [c for c in self._contents.values() if self._content_active(c)]
        return sorted(active, key=self._content_sort_key)
