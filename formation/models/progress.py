from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

Answer = int | bool


@dataclass(frozen=True, slots=True)
class ContentProgress:
    """Watch progress for one (user, content) pair.

    watch_time may move backwards between reports; is_completed never does.
    """

    user_id: str
    content_id: UUID
    watch_time: float = 0.0
    is_completed: bool = False
    completed_at: int | None = None
    updated_at: int | None = None


@dataclass(frozen=True, slots=True)
class ChapterProgress:
    user_id: str
    chapter_id: UUID
    is_completed: bool = False
    completed_at: int | None = None


@dataclass(frozen=True, slots=True)
class ModuleProgress:
    user_id: str
    module_id: UUID
    is_completed: bool = False
    completed_at: int | None = None


@dataclass(frozen=True, slots=True)
class QuizResult:
    """Latest attempt for one (user, quiz) pair. Immutable once passed."""

    user_id: str
    quiz_id: UUID
    score: int
    passed: bool
    answers: dict[str, Answer] = field(default_factory=dict)
    submitted_at: int | None = None
