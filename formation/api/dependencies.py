from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import Header, HTTPException, status
from pydantic import BaseModel

from formation.middleware.request_context import user_id_var
from formation.services.errors import (
    AlreadyIssuedError,
    AlreadyPassedError,
    InvalidInputError,
    LockedError,
    NotFoundError,
    ProgressionError,
    StoreError,
)

logger = logging.getLogger(__name__)

_MAX_USER_ID_LENGTH = 255


async def require_user(
    x_user_id: Annotated[str | None, Header()] = None,
) -> str:
    """Caller identity, pre-validated by the upstream gateway.

    Used as a FastAPI dependency on every learner endpoint.
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-ID header",
        )
    if len(user_id) > _MAX_USER_ID_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-ID is too long",
        )
    user_id_var.set(user_id)
    return user_id


class UnlockedOut(BaseModel):
    id: UUID
    is_unlocked: bool


def http_error(e: ProgressionError) -> HTTPException:
    """Translate a domain error into the HTTP status the client sees."""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, LockedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, AlreadyPassedError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": "Quiz already passed",
                "already_completed": True,
                "result": {
                    "quiz_id": str(e.result.quiz_id),
                    "score": e.result.score,
                    "passed": e.result.passed,
                    "submitted_at": e.result.submitted_at,
                },
            },
        )
    if isinstance(e, AlreadyIssuedError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, InvalidInputError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, StoreError):
        logger.error("Store unavailable: %s", e)
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Progress store unavailable",
        )
    logger.error("Unmapped progression error: %r", e)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal error",
    )
