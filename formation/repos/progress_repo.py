from __future__ import annotations

import copy
from collections.abc import Collection
from dataclasses import replace
from typing import Any, Protocol
from uuid import UUID

from formation.models.certificate import Certificate
from formation.models.progress import (
    ChapterProgress,
    ContentProgress,
    ModuleProgress,
    QuizResult,
)


class ProgressRepo(Protocol):
    """Per-user completion records, keyed by (user_id, entity_id).

    All writes are upserts. Completion flags are monotonic: no method
    turns a completed row back into an incomplete one.
    """

    async def get_content_progress(
        self, user_id: str, content_id: UUID
    ) -> ContentProgress | None: ...
    async def list_content_progress(self, user_id: str) -> list[ContentProgress]: ...
    async def upsert_content_progress(
        self,
        user_id: str,
        content_id: UUID,
        *,
        watch_time: float,
        is_completed: bool,
        now: int,
    ) -> ContentProgress: ...
    async def completed_content_ids(
        self, user_id: str, content_ids: Collection[UUID] | None = None
    ) -> set[UUID]: ...
    async def get_chapter_progress(
        self, user_id: str, chapter_id: UUID
    ) -> ChapterProgress | None: ...
    async def mark_chapter_completed(
        self, user_id: str, chapter_id: UUID, *, now: int
    ) -> bool: ...
    async def completed_chapter_ids(
        self, user_id: str, chapter_ids: Collection[UUID] | None = None
    ) -> set[UUID]: ...
    async def get_module_progress(
        self, user_id: str, module_id: UUID
    ) -> ModuleProgress | None: ...
    async def mark_module_completed(
        self, user_id: str, module_id: UUID, *, now: int
    ) -> bool: ...
    async def completed_module_ids(self, user_id: str) -> set[UUID]: ...
    async def get_quiz_result(
        self, user_id: str, quiz_id: UUID
    ) -> QuizResult | None: ...
    async def list_quiz_results(self, user_id: str) -> list[QuizResult]: ...
    async def upsert_quiz_result(self, result: QuizResult) -> QuizResult | None: ...
    async def latest_completed_module(self, user_id: str) -> ModuleProgress | None: ...
    async def list_certificates(self, user_id: str) -> list[Certificate]: ...
    async def insert_certificate(self, certificate: Certificate) -> bool: ...


class InMemoryProgressRepo:
    def __init__(self) -> None:
        self._contents: dict[tuple[str, UUID], ContentProgress] = {}
        self._chapters: dict[tuple[str, UUID], ChapterProgress] = {}
        self._modules: dict[tuple[str, UUID], ModuleProgress] = {}
        self._quiz_results: dict[tuple[str, UUID], QuizResult] = {}
        # keyed by (user_id, tier)
        self._certificates: dict[tuple[str, str], Certificate] = {}

    def _tables(self) -> tuple[dict[tuple[str, Any], Any], ...]:
        return (
            self._contents,
            self._chapters,
            self._modules,
            self._quiz_results,
            self._certificates,
        )

    def snapshot(self, user_id: str) -> list[dict[tuple[str, Any], Any]]:
        """Copy one user's rows so a failed unit of work can be undone."""
        return [
            {k: copy.deepcopy(v) for k, v in table.items() if k[0] == user_id}
            for table in self._tables()
        ]

    def restore(self, user_id: str, snapshot: list[dict[tuple[str, Any], Any]]) -> None:
        for table, saved in zip(self._tables(), snapshot, strict=True):
            for key in [k for k in table if k[0] == user_id]:
                del table[key]
            table.update(saved)

    def clear(self) -> None:
        self._contents.clear()
        self._chapters.clear()
        self._modules.clear()
        self._quiz_results.clear()
        self._certificates.clear()

    # --- content ---

    async def get_content_progress(
        self, user_id: str, content_id: UUID
    ) -> ContentProgress | None:
        return self._contents.get((user_id, content_id))

    async def list_content_progress(self, user_id: str) -> list[ContentProgress]:
        return [p for (uid, _), p in self._contents.items() if uid == user_id]

    async def upsert_content_progress(
        self,
        user_id: str,
        content_id: UUID,
        *,
        watch_time: float,
        is_completed: bool,
        now: int,
    ) -> ContentProgress:
        key = (user_id, content_id)
        existing = self._contents.get(key)
        if existing is None:
            row = ContentProgress(
                user_id=user_id,
                content_id=content_id,
                watch_time=watch_time,
                is_completed=is_completed,
                completed_at=now if is_completed else None,
                updated_at=now,
            )
        else:
            completed = existing.is_completed or is_completed
            row = replace(
                existing,
                watch_time=watch_time,
                is_completed=completed,
                completed_at=existing.completed_at
                or (now if completed else None),
                updated_at=now,
            )
        self._contents[key] = row
        return row

    async def completed_content_ids(
        self, user_id: str, content_ids: Collection[UUID] | None = None
    ) -> set[UUID]:
        return {
            cid
            for (uid, cid), p in self._contents.items()
            if uid == user_id
            and p.is_completed
            and (content_ids is None or cid in content_ids)
        }

    # --- chapter ---

    async def get_chapter_progress(
        self, user_id: str, chapter_id: UUID
    ) -> ChapterProgress | None:
        return self._chapters.get((user_id, chapter_id))

    async def mark_chapter_completed(
        self, user_id: str, chapter_id: UUID, *, now: int
    ) -> bool:
        key = (user_id, chapter_id)
        existing = self._chapters.get(key)
        if existing is not None and existing.is_completed:
            return False
        self._chapters[key] = ChapterProgress(
            user_id=user_id, chapter_id=chapter_id, is_completed=True, completed_at=now
        )
        return True

    async def completed_chapter_ids(
        self, user_id: str, chapter_ids: Collection[UUID] | None = None
    ) -> set[UUID]:
        return {
            cid
            for (uid, cid), p in self._chapters.items()
            if uid == user_id
            and p.is_completed
            and (chapter_ids is None or cid in chapter_ids)
        }

    # --- module ---

    async def get_module_progress(
        self, user_id: str, module_id: UUID
    ) -> ModuleProgress | None:
        return self._modules.get((user_id, module_id))

    async def mark_module_completed(
        self, user_id: str, module_id: UUID, *, now: int
    ) -> bool:
        key = (user_id, module_id)
        existing = self._modules.get(key)
        if existing is not None and existing.is_completed:
            return False
        self._modules[key] = ModuleProgress(
            user_id=user_id, module_id=module_id, is_completed=True, completed_at=now
        )
        return True

    async def completed_module_ids(self, user_id: str) -> set[UUID]:
        return {
            mid
            for (uid, mid), p in self._modules.items()
            if uid == user_id and p.is_completed
        }

    # --- quiz results ---

    async def get_quiz_result(self, user_id: str, quiz_id: UUID) -> QuizResult | None:
        return self._quiz_results.get((user_id, quiz_id))

    async def list_quiz_results(self, user_id: str) -> list[QuizResult]:
        return [r for (uid, _), r in self._quiz_results.items() if uid == user_id]

    async def upsert_quiz_result(self, result: QuizResult) -> QuizResult | None:
        key = (result.user_id, result.quiz_id)
        existing = self._quiz_results.get(key)
        if existing is not None and existing.passed:
            return None
        self._quiz_results[key] = result
        return result

    # --- certificates ---

    async def latest_completed_module(self, user_id: str) -> ModuleProgress | None:
        """Most recently completed module; ties go to the greater module id."""
        rows = [
            p for (uid, _), p in self._modules.items() if uid == user_id and p.is_completed
        ]
        if not rows:
            return None
        return max(rows, key=lambda p: (p.completed_at or 0, str(p.module_id)))

    async def list_certificates(self, user_id: str) -> list[Certificate]:
        return [c for (uid, _), c in self._certificates.items() if uid == user_id]

    async def insert_certificate(self, certificate: Certificate) -> bool:
        """Store a certificate unless this tier was already issued to the user."""
        key = (certificate.user_id, certificate.tier)
        if key in self._certificates:
            return False
        self._certificates[key] = certificate
        return True
