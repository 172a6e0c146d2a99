"""create certificates

Revision ID: 8d4f2a6c1e90
Revises: 3b1e9c0d7a52
Create Date: 2026-10-19 12:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8d4f2a6c1e90"
down_revision: str | Sequence[str] | None = "3b1e9c0d7a52"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "certificates",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("tier", sa.String(length=16), nullable=False),
        sa.Column(
            "module_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("modules.id"),
            nullable=False,
        ),
        sa.Column("number", sa.String(length=64), nullable=False, unique=True),
        sa.Column("issued_at", sa.Integer(), nullable=False),
        sa.UniqueConstraint("user_id", "tier"),
    )


def downgrade() -> None:
    op.drop_table("certificates")
