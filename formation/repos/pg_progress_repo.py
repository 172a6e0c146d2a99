"""PostgreSQL implementation of ProgressRepo.

Writes are single ``INSERT ... ON CONFLICT DO UPDATE`` statements keyed
by the (user_id, entity_id) primary key:

- content progress merges completion in SQL (old OR new), so a late
  report with a small watch time cannot clear a completed row;
- chapter/module completion only updates rows that are not yet
  completed and RETURNs the key, so exactly one transaction observes
  the transition;
- quiz results are only overwritten while the stored attempt is a fail;
- a certificate insert does nothing when the (user_id, tier) key exists.
"""

from __future__ import annotations

from collections.abc import Collection
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from formation.db.tables import (
    CertificateRow,
    ChapterProgressRow,
    ContentProgressRow,
    ModuleProgressRow,
    QuizResultRow,
)
from formation.models.certificate import Certificate
from formation.models.progress import (
    ChapterProgress,
    ContentProgress,
    ModuleProgress,
    QuizResult,
)


class PgProgressRepo:
    """Satisfies the ProgressRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # --- content ---

    async def get_content_progress(
        self, user_id: str, content_id: UUID
    ) -> ContentProgress | None:
        stmt = select(ContentProgressRow).where(
            ContentProgressRow.user_id == user_id,
            ContentProgressRow.content_id == content_id,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_content_progress(row) if row is not None else None

    async def list_content_progress(self, user_id: str) -> list[ContentProgress]:
        stmt = select(ContentProgressRow).where(ContentProgressRow.user_id == user_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_content_progress(r) for r in rows]

    async def upsert_content_progress(
        self,
        user_id: str,
        content_id: UUID,
        *,
        watch_time: float,
        is_completed: bool,
        now: int,
    ) -> ContentProgress:
        stmt = pg_insert(ContentProgressRow).values(
            user_id=user_id,
            content_id=content_id,
            watch_time=watch_time,
            is_completed=is_completed,
            completed_at=now if is_completed else None,
            updated_at=now,
        )
        stmt = (
            stmt.on_conflict_do_update(
                index_elements=[
                    ContentProgressRow.user_id,
                    ContentProgressRow.content_id,
                ],
                set_={
                    "watch_time": stmt.excluded.watch_time,
                    "is_completed": or_(
                        ContentProgressRow.is_completed, stmt.excluded.is_completed
                    ),
                    "completed_at": func.coalesce(
                        ContentProgressRow.completed_at, stmt.excluded.completed_at
                    ),
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            .returning(ContentProgressRow)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one()
        return _row_to_content_progress(row)

    async def completed_content_ids(
        self, user_id: str, content_ids: Collection[UUID] | None = None
    ) -> set[UUID]:
        stmt = select(ContentProgressRow.content_id).where(
            ContentProgressRow.user_id == user_id,
            ContentProgressRow.is_completed.is_(True),
        )
        if content_ids is not None:
            if not content_ids:
                return set()
            stmt = stmt.where(ContentProgressRow.content_id.in_(list(content_ids)))
        return set((await self._session.execute(stmt)).scalars().all())

    # --- chapter ---

    async def get_chapter_progress(
        self, user_id: str, chapter_id: UUID
    ) -> ChapterProgress | None:
        stmt = select(ChapterProgressRow).where(
            ChapterProgressRow.user_id == user_id,
            ChapterProgressRow.chapter_id == chapter_id,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return ChapterProgress(
            user_id=row.user_id,
            chapter_id=row.chapter_id,
            is_completed=row.is_completed,
            completed_at=row.completed_at,
        )

    async def mark_chapter_completed(
        self, user_id: str, chapter_id: UUID, *, now: int
    ) -> bool:
        stmt = pg_insert(ChapterProgressRow).values(
            user_id=user_id, chapter_id=chapter_id, is_completed=True, completed_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[ChapterProgressRow.user_id, ChapterProgressRow.chapter_id],
            set_={"is_completed": True, "completed_at": now},
            where=ChapterProgressRow.is_completed.is_(False),
        ).returning(ChapterProgressRow.chapter_id)
        return (await self._session.execute(stmt)).first() is not None

    async def completed_chapter_ids(
        self, user_id: str, chapter_ids: Collection[UUID] | None = None
    ) -> set[UUID]:
        stmt = select(ChapterProgressRow.chapter_id).where(
            ChapterProgressRow.user_id == user_id,
            ChapterProgressRow.is_completed.is_(True),
        )
        if chapter_ids is not None:
            if not chapter_ids:
                return set()
            stmt = stmt.where(ChapterProgressRow.chapter_id.in_(list(chapter_ids)))
        return set((await self._session.execute(stmt)).scalars().all())

    # --- module ---

    async def get_module_progress(
        self, user_id: str, module_id: UUID
    ) -> ModuleProgress | None:
        stmt = select(ModuleProgressRow).where(
            ModuleProgressRow.user_id == user_id,
            ModuleProgressRow.module_id == module_id,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return ModuleProgress(
            user_id=row.user_id,
            module_id=row.module_id,
            is_completed=row.is_completed,
            completed_at=row.completed_at,
        )

    async def mark_module_completed(
        self, user_id: str, module_id: UUID, *, now: int
    ) -> bool:
        stmt = pg_insert(ModuleProgressRow).values(
            user_id=user_id, module_id=module_id, is_completed=True, completed_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[ModuleProgressRow.user_id, ModuleProgressRow.module_id],
            set_={"is_completed": True, "completed_at": now},
            where=ModuleProgressRow.is_completed.is_(False),
        ).returning(ModuleProgressRow.module_id)
        return (await self._session.execute(stmt)).first() is not None

    async def completed_module_ids(self, user_id: str) -> set[UUID]:
        stmt = select(ModuleProgressRow.module_id).where(
            ModuleProgressRow.user_id == user_id,
            ModuleProgressRow.is_completed.is_(True),
        )
        return set((await self._session.execute(stmt)).scalars().all())

    # --- quiz results ---

    async def get_quiz_result(self, user_id: str, quiz_id: UUID) -> QuizResult | None:
        stmt = select(QuizResultRow).where(
            QuizResultRow.user_id == user_id, QuizResultRow.quiz_id == quiz_id
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_quiz_result(row) if row is not None else None

    async def list_quiz_results(self, user_id: str) -> list[QuizResult]:
        stmt = select(QuizResultRow).where(QuizResultRow.user_id == user_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_quiz_result(r) for r in rows]

    async def upsert_quiz_result(self, result: QuizResult) -> QuizResult | None:
        stmt = pg_insert(QuizResultRow).values(
            user_id=result.user_id,
            quiz_id=result.quiz_id,
            score=result.score,
            passed=result.passed,
            answers=dict(result.answers),
            submitted_at=result.submitted_at,
        )
        stmt = (
            stmt.on_conflict_do_update(
                index_elements=[QuizResultRow.user_id, QuizResultRow.quiz_id],
                set_={
                    "score": stmt.excluded.score,
                    "passed": stmt.excluded.passed,
                    "answers": stmt.excluded.answers,
                    "submitted_at": stmt.excluded.submitted_at,
                },
                where=QuizResultRow.passed.is_(False),
            )
            .returning(QuizResultRow)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_quiz_result(row) if row is not None else None

    # --- certificates ---

    async def latest_completed_module(self, user_id: str) -> ModuleProgress | None:
        stmt = (
            select(ModuleProgressRow)
            .where(
                ModuleProgressRow.user_id == user_id,
                ModuleProgressRow.is_completed.is_(True),
            )
            .order_by(
                ModuleProgressRow.completed_at.desc().nulls_last(),
                ModuleProgressRow.module_id.desc(),
            )
            .limit(1)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return ModuleProgress(
            user_id=row.user_id,
            module_id=row.module_id,
            is_completed=row.is_completed,
            completed_at=row.completed_at,
        )

    async def list_certificates(self, user_id: str) -> list[Certificate]:
        stmt = select(CertificateRow).where(CertificateRow.user_id == user_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [
            Certificate(
                id=r.id,
                user_id=r.user_id,
                tier=r.tier,
                module_id=r.module_id,
                number=r.number,
                issued_at=r.issued_at,
            )
            for r in rows
        ]

    async def insert_certificate(self, certificate: Certificate) -> bool:
        stmt = (
            pg_insert(CertificateRow)
            .values(
                id=certificate.id,
                user_id=certificate.user_id,
                tier=certificate.tier,
                module_id=certificate.module_id,
                number=certificate.number,
                issued_at=certificate.issued_at,
            )
            .on_conflict_do_nothing(
                index_elements=[CertificateRow.user_id, CertificateRow.tier]
            )
            .returning(CertificateRow.id)
        )
        return (await self._session.execute(stmt)).first() is not None


def _row_to_content_progress(row: ContentProgressRow) -> ContentProgress:
    return ContentProgress(
        user_id=row.user_id,
        content_id=row.content_id,
        watch_time=row.watch_time,
        is_completed=row.is_completed,
        completed_at=row.completed_at,
        updated_at=row.updated_at,
    )


def _row_to_quiz_result(row: QuizResultRow) -> QuizResult:
    return QuizResult(
        user_id=row.user_id,
        quiz_id=row.quiz_id,
        score=row.score,
        passed=row.passed,
        answers=dict(row.answers or {}),
        submitted_at=row.submitted_at,
    )
