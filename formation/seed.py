"""Demo catalog for local development without a database.

Two modules; the first chapter has no quiz so the content → chapter →
module cascade can be exercised end to end from the HTTP API.
"""

from __future__ import annotations

import logging

from formation.models.hierarchy import Chapter, Content, Module, Question, Quiz
from formation.repos.hierarchy_repo import InMemoryHierarchyRepo

logger = logging.getLogger(__name__)


def _true_false(qid: str, text: str, answer: bool, explanation: str) -> Question:
    return Question(
        id=qid,
        type="true_false",
        correct_answer=answer,
        text=text,
        explanation=explanation,
    )


def seed_demo_catalog(repo: InMemoryHierarchyRepo) -> bool:
    """Populate an empty repo. Returns False when it already has modules."""
    if repo._modules:
        return False

    foundations = repo.add_module(Module.new(order=1, title="Foundations"))
    welcome = repo.add_chapter(
        Chapter.new(module_id=foundations.id, order=1, title="Welcome")
    )
    repo.add_content(
        Content.new(chapter_id=welcome.id, order=1, duration=180, title="Introduction")
    )
    prayer = repo.add_chapter(
        Chapter.new(module_id=foundations.id, order=2, title="Prayer")
    )
    repo.add_content(
        Content.new(
            chapter_id=prayer.id,
            order=1,
            duration=900,
            title="Learning to pray",
            type="audio",
        )
    )
    repo.add_quiz(
        Quiz.new(
            chapter_id=prayer.id,
            passing_score=70,
            title="Prayer check-in",
            questions=(
                Question(
                    id="q1",
                    type="multiple_choice",
                    correct_answer=1,
                    text="Which posture does the session recommend?",
                    options=("Hurried", "Attentive", "Distracted"),
                    explanation="The session insists on attentiveness.",
                ),
                _true_false(
                    "q2",
                    "Prayer can be silent.",
                    True,
                    "Silent prayer is covered in the second half.",
                ),
            ),
        )
    )

    community = repo.add_module(Module.new(order=2, title="Community"))
    together = repo.add_chapter(
        Chapter.new(module_id=community.id, order=1, title="Walking together")
    )
    repo.add_content(
        Content.new(chapter_id=together.id, order=1, duration=600, title="Fellowship")
    )
    repo.add_quiz(
        Quiz.new(
            chapter_id=together.id,
            passing_score=50,
            title="Fellowship check-in",
            questions=(
                _true_false(
                    "q1",
                    "The module is meant to be followed alone.",
                    False,
                    "Community is the point of this module.",
                ),
            ),
        )
    )

    logger.info("Seeded demo catalog  modules=%d", len(repo._modules))
    return True
