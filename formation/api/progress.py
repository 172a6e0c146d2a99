"""Content progress endpoints.

  POST /v1/contents/{content_id}/progress   report watch time
  GET  /v1/contents/{content_id}/progress   stored progress + unlock flag
  GET  /v1/contents/{content_id}/unlocked   unlock check

Players report watch time every few seconds. Each report runs the
completion cascade; duplicate or out-of-order reports are harmless
because completion never reverts.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from formation.api.dependencies import UnlockedOut, http_error, require_user
from formation.services.completion_engine import completion_engine
from formation.services.errors import ProgressionError
from formation.services.overview import progress_reader

router = APIRouter(prefix="/v1/contents", tags=["progress"])

COMPLETED_MESSAGE = "Content completed. The chapter quiz is now available."
UPDATED_MESSAGE = "Progress updated"


class WatchTimeIn(BaseModel):
    # strict: "12" and true are rejected rather than coerced
    watch_time: Annotated[float, Field(strict=True)]


class WatchTimeOut(BaseModel):
    content_id: UUID
    watch_time: float
    is_completed: bool
    completed_at: int | None
    progress_percent: int
    message: str


class ContentProgressOut(BaseModel):
    content_id: UUID
    watch_time: float
    is_completed: bool
    completed_at: int | None
    progress_percent: int
    is_unlocked: bool


@router.post("/{content_id}/progress", response_model=WatchTimeOut)
async def report_watch_time(
    content_id: UUID,
    body: WatchTimeIn,
    user_id: Annotated[str, Depends(require_user)],
) -> WatchTimeOut:
    try:
        result = await completion_engine.record_watch_time(
            user_id, content_id, body.watch_time
        )
    except ProgressionError as e:
        raise http_error(e) from None

    return WatchTimeOut(
        content_id=result.content_id,
        watch_time=result.watch_time,
        is_completed=result.is_completed,
        completed_at=result.completed_at,
        progress_percent=result.progress_percent,
        message=COMPLETED_MESSAGE if result.is_completed else UPDATED_MESSAGE,
    )


@router.get("/{content_id}/progress", response_model=ContentProgressOut)
async def get_content_progress(
    content_id: UUID,
    user_id: Annotated[str, Depends(require_user)],
) -> ContentProgressOut:
    try:
        view = await progress_reader.content_progress(user_id, content_id)
    except ProgressionError as e:
        raise http_error(e) from None

    return ContentProgressOut(
        content_id=view.content_id,
        watch_time=view.watch_time,
        is_completed=view.is_completed,
        completed_at=view.completed_at,
        progress_percent=view.progress_percent,
        is_unlocked=view.is_unlocked,
    )


@router.get("/{content_id}/unlocked", response_model=UnlockedOut)
async def content_unlocked(
    content_id: UUID,
    user_id: Annotated[str, Depends(require_user)],
) -> UnlockedOut:
    try:
        unlocked = await progress_reader.content_unlocked(user_id, content_id)
    except ProgressionError as e:
        raise http_error(e) from None
    return UnlockedOut(id=content_id, is_unlocked=unlocked)
