"""
Double Mirror — Reflection model (one row per accepted analysis).
"""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID as PgUUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class Reflection(Base):
    __tablename__ = "reflections"
    __table_args__ = (
        Index("ix_reflections_identity_created", "identity", "created_at"),
        CheckConstraint("sync_score BETWEEN 0 AND 100", name="ck_reflections_sync_range"),
        CheckConstraint(
            "identity_score = 100 - sync_score", name="ck_reflections_complementary"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        PgUUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    identity: Mapped[str] = mapped_column(
        String, nullable=False, comment="Auth-provider identity (e.g. email)"
    )
    question_id: Mapped[str] = mapped_column(String, nullable=False)
    user_text: Mapped[str] = mapped_column(Text, nullable=False)
    sync_score: Mapped[int] = mapped_column(Integer, nullable=False, comment="0-100")
    identity_score: Mapped[int] = mapped_column(Integer, nullable=False, comment="0-100")
    feedback_text: Mapped[str] = mapped_column(Text, nullable=False)
    training_tip: Mapped[str] = mapped_column(Text, nullable=False)
    mode: Mapped[str] = mapped_column(String, nullable=False)
    language: Mapped[str] = mapped_column(String(8), nullable=False)
    duration_ms: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<Reflection identity={self.identity!r} q={self.question_id!r} "
            f"sync={self.sync_score} identity_score={self.identity_score}>"
        )
