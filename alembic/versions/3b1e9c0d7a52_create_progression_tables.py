"""create progression tables

Revision ID: 3b1e9c0d7a52
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b1e9c0d7a52"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _progress_keys(entity_column: str, entity_table: str) -> list[sa.SchemaItem]:
    return [
        sa.Column("user_id", sa.String(length=255), primary_key=True),
        sa.Column(
            entity_column,
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey(f"{entity_table}.id"),
            primary_key=True,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "modules",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("order", sa.Integer(), nullable=False, unique=True),
        sa.Column("title", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "chapters",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "module_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("modules.id"),
            nullable=False,
        ),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("module_id", "order"),
    )
    op.create_table(
        "contents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "chapter_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("chapters.id"),
            nullable=False,
        ),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("type", sa.String(length=16), nullable=False, server_default="video"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.CheckConstraint("duration > 0", name="ck_contents_duration_positive"),
    )
    op.create_index("ix_contents_chapter_id", "contents", ["chapter_id"])
    op.create_table(
        "quizzes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "chapter_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("chapters.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("title", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("passing_score", sa.Integer(), nullable=False, server_default="70"),
        sa.Column(
            "questions",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
    )

    op.create_table(
        "content_progress",
        *_progress_keys("content_id", "contents"),
        sa.Column("watch_time", sa.Float(), nullable=False, server_default="0"),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.Integer(), nullable=True),
    )
    op.create_table(
        "chapter_progress",
        *_progress_keys("chapter_id", "chapters"),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.Integer(), nullable=True),
    )
    op.create_table(
        "module_progress",
        *_progress_keys("module_id", "modules"),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.Integer(), nullable=True),
    )
    op.create_table(
        "quiz_results",
        *_progress_keys("quiz_id", "quizzes"),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("passed", sa.Boolean(), nullable=False),
        sa.Column(
            "answers",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("submitted_at", sa.Integer(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("quiz_results")
    op.drop_table("module_progress")
    op.drop_table("chapter_progress")
    op.drop_table("content_progress")
    op.drop_table("quizzes")
    op.drop_index("ix_contents_chapter_id", table_name="contents")
    op.drop_table("contents")
    op.drop_table("chapters")
    op.drop_table("modules")
