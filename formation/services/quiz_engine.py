"""Quiz engine: grade submissions and enforce single-pass semantics.

A quiz may be attempted until it is passed. Only the latest attempt is
stored per (user, quiz). Once an attempt passes, the stored result is
final: later submissions raise AlreadyPassedError carrying that result
and write nothing.

Answers travel as JSON: a multiple-choice answer is an integer option
index, a true/false answer is a boolean. Anything else (a string "2",
a boolean for a multiple-choice question, a missing or unknown question
id) is rejected with InvalidInputError before any write.
"""

from __future__ import annotations

import datetime
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from formation.core.metrics import LOCKED_ACCESS, QUIZ_SUBMISSIONS
from formation.models.hierarchy import Question, Quiz
from formation.models.progress import Answer, QuizResult
from formation.repos.unit_of_work import Store, store
from formation.services.completion_engine import (
    CascadeOutcome,
    CompletionEngine,
    completion_engine,
)
from formation.services.errors import (
    AlreadyPassedError,
    InvalidInputError,
    LockedError,
    NotFoundError,
)
from formation.services.unlock_resolver import UnlockResolver

logger = logging.getLogger(__name__)

LOCKED_QUIZ_MESSAGE = "Complete every content of the chapter first"


@dataclass(frozen=True, slots=True)
class QuestionResult:
    question_id: str
    user_answer: Answer
    correct_answer: Answer
    is_correct: bool
    explanation: str | None = None


@dataclass(frozen=True, slots=True)
class QuizSubmitResult:
    quiz_id: UUID
    chapter_id: UUID
    score: int
    passed: bool
    passing_score: int
    correct_answers: int
    total_questions: int
    results: tuple[QuestionResult, ...]

    @property
    def message(self) -> str:
        if self.passed:
            return "Quiz passed!"
        return (
            f"Score too low ({self.score}%). "
            f"Minimum required: {self.passing_score}%"
        )


@dataclass(frozen=True, slots=True)
class QuizView:
    """What a learner sees when opening a chapter quiz.

    In review mode (quiz already passed) questions keep their correct
    answers and explanations. Otherwise both are stripped.
    """

    quiz: Quiz
    review_mode: bool
    questions: tuple[dict[str, Any], ...]
    previous_result: QuizResult | None
    estimated_minutes: int


def score_percent(correct: int, total: int) -> int:
    """round(100 * correct / total), half-up, in integer arithmetic."""
    return (200 * correct + total) // (2 * total)


def estimated_minutes(question_count: int) -> int:
    return max(10, math.ceil(question_count * 1.5))


def _check_answer(question: Question, answer: Any) -> Answer:
    if question.type == "true_false":
        if not isinstance(answer, bool):
            raise InvalidInputError(
                f"answer to question {question.id} must be a boolean"
            )
        return answer
    if isinstance(answer, bool) or not isinstance(answer, int):
        raise InvalidInputError(
            f"answer to question {question.id} must be an option index"
        )
    if not 0 <= answer < len(question.options):
        raise InvalidInputError(
            f"answer to question {question.id} is out of range"
        )
    return answer


def validate_answers(
    questions: tuple[Question, ...], answers: Any
) -> dict[str, Answer]:
    if not isinstance(answers, Mapping):
        raise InvalidInputError("answers must be an object keyed by question id")
    known = {q.id for q in questions}
    unknown = sorted(str(k) for k in answers if k not in known)
    if unknown:
        raise InvalidInputError(f"unknown question ids: {', '.join(unknown)}")
    missing = [q.id for q in questions if q.id not in answers]
    if missing:
        raise InvalidInputError(f"missing answers for: {', '.join(missing)}")
    return {q.id: _check_answer(q, answers[q.id]) for q in questions}


def grade(quiz: Quiz, answers: Mapping[str, Answer]) -> tuple[int, tuple[QuestionResult, ...]]:
    """Grade validated answers; returns (correct count, per-question results)."""
    results = tuple(
        QuestionResult(
            question_id=q.id,
            user_answer=answers[q.id],
            correct_answer=q.correct_answer,
            is_correct=answers[q.id] == q.correct_answer,
            explanation=q.explanation,
        )
        for q in quiz.questions
    )
    return sum(1 for r in results if r.is_correct), results


def _public_question(question: Question) -> dict[str, Any]:
    data = question.to_dict()
    data.pop("correctAnswer", None)
    data.pop("explanation", None)
    return data


class QuizEngine:
    def __init__(self, store: Store, completion: CompletionEngine) -> None:
        self._store = store
        self._completion = completion

    async def submit_quiz(
        self, user_id: str, quiz_id: UUID, answers: Any
    ) -> QuizSubmitResult:
        """Grade and record one attempt; cascade the chapter on a pass."""
        now = int(datetime.datetime.now(datetime.UTC).timestamp())
        outcome = CascadeOutcome()

        try:
            async with self._store.unit_of_work(user_id) as uow:
                quiz = await uow.hierarchy.get_quiz(quiz_id)
                if not quiz.questions:
                    raise NotFoundError("quiz", quiz_id)

                existing = await uow.progress.get_quiz_result(user_id, quiz_id)
                if existing is not None and existing.passed:
                    raise AlreadyPassedError(existing)

                checked = validate_answers(quiz.questions, answers)
                correct, results = grade(quiz, checked)
                score = score_percent(correct, len(quiz.questions))
                passed = score >= quiz.passing_score

                stored = await uow.progress.upsert_quiz_result(
                    QuizResult(
                        user_id=user_id,
                        quiz_id=quiz_id,
                        score=score,
                        passed=passed,
                        answers=checked,
                        submitted_at=now,
                    )
                )
                if stored is None:
                    # a pass landed between our read and our write
                    raise AlreadyPassedError(
                        await uow.progress.get_quiz_result(user_id, quiz_id)
                    )
                if passed:
                    await self._completion.cascade_from_chapter(
                        uow, user_id, quiz.chapter_id, now=now, outcome=outcome
                    )
        except AlreadyPassedError:
            QUIZ_SUBMISSIONS.labels(result="rejected").inc()
            logger.info(
                "Resubmission after pass rejected  user_id=%s quiz_id=%s",
                user_id,
                quiz_id,
            )
            raise

        QUIZ_SUBMISSIONS.labels(result="passed" if passed else "failed").inc()
        logger.info(
            "Quiz graded  user_id=%s quiz_id=%s score=%d passed=%s",
            user_id,
            quiz_id,
            score,
            passed,
        )
        await self._completion.publish(user_id, outcome)

        return QuizSubmitResult(
            quiz_id=quiz_id,
            chapter_id=quiz.chapter_id,
            score=score,
            passed=passed,
            passing_score=quiz.passing_score,
            correct_answers=correct,
            total_questions=len(quiz.questions),
            results=results,
        )

    async def get_quiz_for_user(self, user_id: str, chapter_id: UUID) -> QuizView:
        """Open a chapter's quiz for a learner.

        NotFoundError when the chapter has no quiz or the quiz has no
        questions; LockedError until every content of the chapter is done.
        """
        async with self._store.unit_of_work(user_id, exclusive=False) as uow:
            tree = await uow.hierarchy.get_chapter_with_children(chapter_id)
            quiz = tree.quiz
            if quiz is None or not quiz.questions:
                raise NotFoundError("quiz for chapter", chapter_id)

            resolver = UnlockResolver(uow.hierarchy, uow.progress)
            if not await resolver.is_chapter_quiz_unlocked(user_id, chapter_id):
                LOCKED_ACCESS.labels(entity="quiz").inc()
                raise LockedError(LOCKED_QUIZ_MESSAGE)

            previous = await uow.progress.get_quiz_result(user_id, quiz.id)

        review = previous is not None and previous.passed
        if review:
            questions = tuple(q.to_dict() for q in quiz.questions)
        else:
            questions = tuple(_public_question(q) for q in quiz.questions)
        return QuizView(
            quiz=quiz,
            review_mode=review,
            questions=questions,
            previous_result=previous,
            estimated_minutes=estimated_minutes(len(quiz.questions)),
        )


quiz_engine = QuizEngine(store, completion_engine)
