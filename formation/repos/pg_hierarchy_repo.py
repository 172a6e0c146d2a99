"""PostgreSQL implementation of HierarchyRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from formation.db.tables import ChapterRow, ContentRow, ModuleRow, QuizRow
from formation.models.hierarchy import (
    Chapter,
    ChapterTree,
    Content,
    Module,
    ModuleTree,
    Quiz,
    parse_questions,
)
from formation.services.errors import NotFoundError, StoreError


class PgHierarchyRepo:
    """Satisfies the HierarchyRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_module(self, module_id: UUID) -> Module:
        stmt = select(ModuleRow).where(
            ModuleRow.id == module_id, ModuleRow.is_active.is_(True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise NotFoundError("module", module_id)
        return _row_to_module(row)

    async def get_chapter(self, chapter_id: UUID) -> Chapter:
        stmt = (
            select(ChapterRow)
            .join(ModuleRow, ModuleRow.id == ChapterRow.module_id)
            .where(
                ChapterRow.id == chapter_id,
                ChapterRow.is_active.is_(True),
                ModuleRow.is_active.is_(True),
            )
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise NotFoundError("chapter", chapter_id)
        return _row_to_chapter(row)

    async def get_content(self, content_id: UUID) -> Content:
        stmt = _active_contents().where(ContentRow.id == content_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise NotFoundError("content", content_id)
        return _row_to_content(row)

    async def get_quiz(self, quiz_id: UUID) -> Quiz:
        stmt = (
            select(QuizRow)
            .join(ChapterRow, ChapterRow.id == QuizRow.chapter_id)
            .join(ModuleRow, ModuleRow.id == ChapterRow.module_id)
            .where(
                QuizRow.id == quiz_id,
                ChapterRow.is_active.is_(True),
                ModuleRow.is_active.is_(True),
            )
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise NotFoundError("quiz", quiz_id)
        return _row_to_quiz(row)

    async def get_chapter_with_children(self, chapter_id: UUID) -> ChapterTree:
        chapter = await self.get_chapter(chapter_id)
        contents_stmt = (
            select(ContentRow)
            .where(ContentRow.chapter_id == chapter_id, ContentRow.is_active.is_(True))
            .order_by(ContentRow.order, ContentRow.id)
        )
        contents = (await self._session.execute(contents_stmt)).scalars().all()
        quiz_stmt = select(QuizRow).where(QuizRow.chapter_id == chapter_id)
        quiz_row = (await self._session.execute(quiz_stmt)).scalar_one_or_none()
        return ChapterTree(
            chapter=chapter,
            contents=tuple(_row_to_content(r) for r in contents),
            quiz=_row_to_quiz(quiz_row) if quiz_row is not None else None,
        )

    async def get_module_with_children(self, module_id: UUID) -> ModuleTree:
        module = await self.get_module(module_id)
        stmt = (
            select(ChapterRow)
            .where(ChapterRow.module_id == module_id, ChapterRow.is_active.is_(True))
            .order_by(ChapterRow.order, ChapterRow.id)
        )
        chapters = (await self._session.execute(stmt)).scalars().all()
        return ModuleTree(
            module=module, chapters=tuple(_row_to_chapter(r) for r in chapters)
        )

    async def list_active_modules_in_order(self) -> list[Module]:
        stmt = (
            select(ModuleRow)
            .where(ModuleRow.is_active.is_(True))
            .order_by(ModuleRow.order, ModuleRow.id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_module(r) for r in rows]

    async def list_active_contents_in_order(self) -> list[Content]:
        stmt = _active_contents().order_by(
            ModuleRow.order, ChapterRow.order, ContentRow.order, ContentRow.id
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_content(r) for r in rows]


def _active_contents():
    return (
        select(ContentRow)
        .join(ChapterRow, ChapterRow.id == ContentRow.chapter_id)
        .join(ModuleRow, ModuleRow.id == ChapterRow.module_id)
        .where(
            ContentRow.is_active.is_(True),
            ChapterRow.is_active.is_(True),
            ModuleRow.is_active.is_(True),
        )
    )


def _row_to_module(row: ModuleRow) -> Module:
    return Module(id=row.id, order=row.order, title=row.title, is_active=row.is_active)


def _row_to_chapter(row: ChapterRow) -> Chapter:
    return Chapter(
        id=row.id,
        module_id=row.module_id,
        order=row.order,
        title=row.title,
        is_active=row.is_active,
    )


def _row_to_content(row: ContentRow) -> Content:
    return Content(
        id=row.id,
        chapter_id=row.chapter_id,
        order=row.order,
        duration=row.duration,
        title=row.title,
        type=row.type,
        is_active=row.is_active,
    )


def _row_to_quiz(row: QuizRow) -> Quiz:
    try:
        questions = parse_questions(row.questions)
    except ValueError as e:
        raise StoreError(f"quiz {row.id} has malformed questions: {e}") from e
    return Quiz(
        id=row.id,
        chapter_id=row.chapter_id,
        passing_score=row.passing_score,
        questions=questions,
        title=row.title,
    )
