"""Catalog overview endpoints.

  GET /v1/modules                       every active module with the caller's progress
  GET /v1/modules/{module_id}           one module
  GET /v1/modules/{module_id}/unlocked  unlock check
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from formation.api.dependencies import UnlockedOut, http_error, require_user
from formation.services.errors import ProgressionError
from formation.services.overview import ModuleOverview, progress_reader

router = APIRouter(prefix="/v1/modules", tags=["modules"])


class ContentOut(BaseModel):
    id: UUID
    title: str
    type: str
    order: int
    duration: int
    is_unlocked: bool
    is_completed: bool
    watch_time: float
    progress: int


class QuizSummaryOut(BaseModel):
    id: UUID
    title: str
    passing_score: int
    is_passed: bool
    is_unlocked: bool


class ChapterOut(BaseModel):
    id: UUID
    title: str
    order: int
    all_contents_completed: bool
    quiz_passed: bool
    is_completed: bool
    is_unlocked: bool
    contents: list[ContentOut]
    quiz: QuizSummaryOut | None = None


class ModuleOut(BaseModel):
    id: UUID
    title: str
    order: int
    is_unlocked: bool
    is_completed: bool
    progress: int
    chapters: list[ChapterOut]


class StatsOut(BaseModel):
    total_modules: int
    completed_modules: int
    total_watch_time: float
    average_score: int


class CatalogOut(BaseModel):
    modules: list[ModuleOut]
    stats: StatsOut


def _module_out(overview: ModuleOverview) -> ModuleOut:
    return ModuleOut(
        id=overview.module.id,
        title=overview.module.title,
        order=overview.module.order,
        is_unlocked=overview.is_unlocked,
        is_completed=overview.is_completed,
        progress=overview.progress,
        chapters=[
            ChapterOut(
                id=ch.id,
                title=ch.title,
                order=ch.order,
                all_contents_completed=ch.all_contents_completed,
                quiz_passed=ch.quiz_passed,
                is_completed=ch.is_completed,
                is_unlocked=ch.is_unlocked,
                contents=[
                    ContentOut(
                        id=c.content.id,
                        title=c.content.title,
                        type=c.content.type,
                        order=c.content.order,
                        duration=c.content.duration,
                        is_unlocked=c.is_unlocked,
                        is_completed=c.is_completed,
                        watch_time=c.watch_time,
                        progress=c.progress,
                    )
                    for c in ch.contents
                ],
                quiz=(
                    QuizSummaryOut(
                        id=ch.quiz.id,
                        title=ch.quiz.title,
                        passing_score=ch.quiz.passing_score,
                        is_passed=ch.quiz.is_passed,
                        is_unlocked=ch.quiz.is_unlocked,
                    )
                    if ch.quiz is not None
                    else None
                ),
            )
            for ch in overview.chapters
        ],
    )


@router.get("", response_model=CatalogOut)
async def list_modules(
    user_id: Annotated[str, Depends(require_user)],
) -> CatalogOut:
    try:
        catalog = await progress_reader.catalog(user_id)
    except ProgressionError as e:
        raise http_error(e) from None

    return CatalogOut(
        modules=[_module_out(m) for m in catalog.modules],
        stats=StatsOut(
            total_modules=catalog.stats.total_modules,
            completed_modules=catalog.stats.completed_modules,
            total_watch_time=catalog.stats.total_watch_time,
            average_score=catalog.stats.average_score,
        ),
    )


@router.get("/{module_id}", response_model=ModuleOut)
async def get_module(
    module_id: UUID,
    user_id: Annotated[str, Depends(require_user)],
) -> ModuleOut:
    try:
        overview = await progress_reader.module(user_id, module_id)
    except ProgressionError as e:
        raise http_error(e) from None
    return _module_out(overview)


@router.get("/{module_id}/unlocked", response_model=UnlockedOut)
async def module_unlocked(
    module_id: UUID,
    user_id: Annotated[str, Depends(require_user)],
) -> UnlockedOut:
    try:
        unlocked = await progress_reader.module_unlocked(user_id, module_id)
    except ProgressionError as e:
        raise http_error(e) from None
    return UnlockedOut(id=module_id, is_unlocked=unlocked)
