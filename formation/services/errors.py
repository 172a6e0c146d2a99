"""Domain errors raised by the progression engine.

Routers translate these into HTTP statuses; the engine itself never
knows about HTTP.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from formation.models.progress import QuizResult


class ProgressionError(Exception):
    pass


class NotFoundError(ProgressionError):
    """Referenced catalog record is absent or inactive."""

    def __init__(self, entity: str, entity_id: UUID | str) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class LockedError(ProgressionError):
    """A prerequisite has not been completed by this user yet."""


class AlreadyPassedError(ProgressionError):
    """The quiz was already passed; the stored result is attached."""

    def __init__(self, result: QuizResult) -> None:
        super().__init__(f"quiz {result.quiz_id} already passed")
        self.result = result


class InvalidInputError(ProgressionError, ValueError):
    pass


class StoreError(ProgressionError):
    """Persistence failed; the unit of work was rolled back."""


class NotEligibleError(LockedError):
    """Not enough completed modules for the requested certificate tier."""


class AlreadyIssuedError(ProgressionError):
    def __init__(self, tier: str) -> None:
        super().__init__(f"{tier} certificate already issued")
        self.tier = tier
