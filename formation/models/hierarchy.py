"""Structural catalog: modules → chapters → contents, one quiz per chapter.

These records are authored by the admin layer and read-only here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID, uuid4

QUESTION_TYPES = ("multiple_choice", "true_false")


@dataclass(frozen=True, slots=True)
class Module:
    id: UUID
    order: int
    title: str = ""
    is_active: bool = True

    @staticmethod
    def new(*, order: int, title: str = "", is_active: bool = True) -> Module:
        return Module(id=uuid4(), order=order, title=title, is_active=is_active)


@dataclass(frozen=True, slots=True)
class Chapter:
    id: UUID
    module_id: UUID
    order: int
    title: str = ""
    is_active: bool = True

    @staticmethod
    def new(
        *, module_id: UUID, order: int, title: str = "", is_active: bool = True
    ) -> Chapter:
        return Chapter(
            id=uuid4(),
            module_id=module_id,
            order=order,
            title=title,
            is_active=is_active,
        )


@dataclass(frozen=True, slots=True)
class Content:
    id: UUID
    chapter_id: UUID
    order: int
    duration: int  # seconds, > 0
    title: str = ""
    type: str = "video"  # video|audio
    is_active: bool = True

    @staticmethod
    def new(
        *,
        chapter_id: UUID,
        order: int,
        duration: int,
        title: str = "",
        type: str = "video",
        is_active: bool = True,
    ) -> Content:
        return Content(
            id=uuid4(),
            chapter_id=chapter_id,
            order=order,
            duration=duration,
            title=title,
            type=type,
            is_active=is_active,
        )


@dataclass(frozen=True, slots=True)
class Question:
    id: str
    type: str  # multiple_choice|true_false
    correct_answer: int | bool
    text: str = ""
    options: tuple[str, ...] = ()
    explanation: str | None = None

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> Question:
        """Build a question from its stored JSON shape.

        Raises ValueError when the stored record does not describe a
        well-formed question of a known type.
        """
        qtype = raw.get("type")
        if qtype not in QUESTION_TYPES:
            raise ValueError(f"unknown question type {qtype!r}")
        question_id = raw.get("id")
        if not isinstance(question_id, str) or not question_id:
            raise ValueError("question id must be a non-empty string")

        correct = raw.get("correctAnswer", raw.get("correct_answer"))
        options = tuple(raw.get("options") or ())
        if qtype == "true_false":
            if not isinstance(correct, bool):
                raise ValueError(f"question {question_id}: answer must be a boolean")
        else:
            if isinstance(correct, bool) or not isinstance(correct, int):
                raise ValueError(f"question {question_id}: answer must be an index")
            if not 0 <= correct < len(options):
                raise ValueError(f"question {question_id}: answer index out of range")

        return Question(
            id=question_id,
            type=qtype,
            correct_answer=correct,
            text=raw.get("question", raw.get("text", "")) or "",
            options=options,
            explanation=raw.get("explanation"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "question": self.text,
            "type": self.type,
            "correctAnswer": self.correct_answer,
        }
        if self.options:
            data["options"] = list(self.options)
        if self.explanation is not None:
            data["explanation"] = self.explanation
        return data


@dataclass(frozen=True, slots=True)
class Quiz:
    id: UUID
    chapter_id: UUID
    passing_score: int  # 0-100
    questions: tuple[Question, ...] = ()
    title: str = ""

    @staticmethod
    def new(
        *,
        chapter_id: UUID,
        passing_score: int,
        questions: tuple[Question, ...] = (),
        title: str = "",
    ) -> Quiz:
        return Quiz(
            id=uuid4(),
            chapter_id=chapter_id,
            passing_score=passing_score,
            questions=questions,
            title=title,
        )


def parse_questions(raw: Any) -> tuple[Question, ...]:
    """Parse the stored question list (already JSON-decoded)."""
    if not isinstance(raw, list):
        raise ValueError("questions must be a list")
    return tuple(Question.from_dict(item) for item in raw)


@dataclass(frozen=True, slots=True)
class ChapterTree:
    chapter: Chapter
    contents: tuple[Content, ...] = field(default_factory=tuple)
    quiz: Quiz | None = None


@dataclass(frozen=True, slots=True)
class ModuleTree:
    module: Module
    chapters: tuple[Chapter, ...] = field(default_factory=tuple)
