"""Chapter quiz endpoints.

  GET  /v1/chapters/{chapter_id}/quiz            open the quiz (or review it)
  GET  /v1/chapters/{chapter_id}/quiz/unlocked   unlock check
  POST /v1/quizzes/{quiz_id}/submit              grade an attempt

A second submission after a pass answers 409 with the stored result and
``already_completed: true`` so the client can show it instead of an error.
"""

from __future__ import annotations

from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from formation.api.dependencies import UnlockedOut, http_error, require_user
from formation.services.errors import ProgressionError
from formation.services.overview import progress_reader
from formation.services.quiz_engine import quiz_engine

router = APIRouter(tags=["quiz"])


class QuizSubmitIn(BaseModel):
    # values are checked per question type by the engine
    answers: dict[str, Any]


class QuestionResultOut(BaseModel):
    question_id: str
    user_answer: bool | int
    correct_answer: bool | int
    is_correct: bool
    explanation: str | None = None


class QuizSubmitOut(BaseModel):
    quiz_id: UUID
    score: int
    passed: bool
    passing_score: int
    correct_answers: int
    total_questions: int
    results: list[QuestionResultOut]
    message: str


class PreviousAttemptOut(BaseModel):
    score: int
    passed: bool
    submitted_at: int | None


class QuizOut(BaseModel):
    id: UUID
    chapter_id: UUID
    title: str
    passing_score: int
    review_mode: bool
    estimated_minutes: int
    questions: list[dict[str, Any]]
    previous_result: PreviousAttemptOut | None = None


@router.get("/v1/chapters/{chapter_id}/quiz", response_model=QuizOut)
async def get_chapter_quiz(
    chapter_id: UUID,
    user_id: Annotated[str, Depends(require_user)],
) -> QuizOut:
    try:
        view = await quiz_engine.get_quiz_for_user(user_id, chapter_id)
    except ProgressionError as e:
        raise http_error(e) from None

    previous = None
    if view.previous_result is not None:
        previous = PreviousAttemptOut(
            score=view.previous_result.score,
            passed=view.previous_result.passed,
            submitted_at=view.previous_result.submitted_at,
        )
    return QuizOut(
        id=view.quiz.id,
        chapter_id=view.quiz.chapter_id,
        title=view.quiz.title,
        passing_score=view.quiz.passing_score,
        review_mode=view.review_mode,
        estimated_minutes=view.estimated_minutes,
        questions=list(view.questions),
        previous_result=previous,
    )


@router.get("/v1/chapters/{chapter_id}/quiz/unlocked", response_model=UnlockedOut)
async def chapter_quiz_unlocked(
    chapter_id: UUID,
    user_id: Annotated[str, Depends(require_user)],
) -> UnlockedOut:
    try:
        unlocked = await progress_reader.quiz_unlocked(user_id, chapter_id)
    except ProgressionError as e:
        raise http_error(e) from None
    return UnlockedOut(id=chapter_id, is_unlocked=unlocked)


@router.post("/v1/quizzes/{quiz_id}/submit", response_model=QuizSubmitOut)
async def submit_quiz(
    quiz_id: UUID,
    body: QuizSubmitIn,
    user_id: Annotated[str, Depends(require_user)],
) -> QuizSubmitOut:
    try:
        result = await quiz_engine.submit_quiz(user_id, quiz_id, body.answers)
    except ProgressionError as e:
        raise http_error(e) from None

    return QuizSubmitOut(
        quiz_id=result.quiz_id,
        score=result.score,
        passed=result.passed,
        passing_score=result.passing_score,
        correct_answers=result.correct_answers,
        total_questions=result.total_questions,
        results=[
            QuestionResultOut(
                question_id=r.question_id,
                user_answer=r.user_answer,
                correct_answer=r.correct_answer,
                is_correct=r.is_correct,
                explanation=r.explanation,
            )
            for r in result.results
        ],
        message=result.message,
    )
