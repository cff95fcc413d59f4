"""Initial schema — reflections table.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── reflections (insert-only analysis log) ──────────────────────
    op.create_table(
        "reflections",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "identity",
            sa.String,
            nullable=False,
            comment="Auth-provider identity (e.g. email)",
        ),
        sa.Column("question_id", sa.String, nullable=False),
        sa.Column("user_text", sa.Text, nullable=False),
        sa.Column("sync_score", sa.Integer, nullable=False, comment="0-100"),
        sa.Column("identity_score", sa.Integer, nullable=False, comment="0-100"),
        sa.Column("feedback_text", sa.Text, nullable=False),
        sa.Column("training_tip", sa.Text, nullable=False),
        sa.Column("mode", sa.String, nullable=False),
        sa.Column("language", sa.String(8), nullable=False),
        sa.Column("duration_ms", sa.Float, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "sync_score BETWEEN 0 AND 100", name="ck_reflections_sync_range"
        ),
        sa.CheckConstraint(
            "identity_score = 100 - sync_score",
            name="ck_reflections_complementary",
        ),
    )
    op.create_index(
        "ix_reflections_identity_created",
        "reflections",
        ["identity", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_reflections_identity_created", table_name="reflections")
    op.drop_table("reflections")
