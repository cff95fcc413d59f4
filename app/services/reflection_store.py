"""
Double Mirror — ReflectionStore: fire-and-forget reflection inserts.

Writes are a side effect of a successful analysis, never a dependency of
it.  ``record`` swallows and logs every failure and never retries.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import get_session_factory
from app.models.reflection import Reflection
from app.schemas.analysis import AnalysisResult, Language, Mode

logger = structlog.get_logger(__name__)

_UNSET: Any = object()


@dataclass(frozen=True)
class ReflectionRecord:
    identity: str
    question_id: str
    user_text: str
    sync_score: int
    identity_score: int
    feedback_text: str
    training_tip: str
    mode: str
    language: str
    duration_ms: Optional[float] = None

    @classmethod
    def from_result(
        cls,
        identity: str,
        question_id: str,
        user_text: str,
        mode: Mode,
        language: Language,
        result: AnalysisResult,
        duration_ms: float | None = None,
    ) -> "ReflectionRecord":
        return cls(
            identity=identity,
            question_id=question_id,
            user_text=user_text,
            sync_score=result.sync_score,
            identity_score=result.identity_score,
            feedback_text=result.feedback_text,
            training_tip=result.training_tip,
            mode=mode.value,
            language=language.value,
            duration_ms=duration_ms,
        )


class ReflectionStore:
    """Insert-only store for accepted analyses.

    Parameters
    ----------
    session_factory:
        Async session factory.  Defaults to the application factory,
        which is ``None`` (store disabled) when no database is configured.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = _UNSET,
    ) -> None:
        if session_factory is _UNSET:
            session_factory = get_session_factory()
        self._session_factory = session_factory

    @property
    def enabled(self) -> bool:
        return self._session_factory is not None

    async def record(self, record: ReflectionRecord) -> bool:
        """Insert one reflection row.  Returns ``True`` when committed.

        Never raises: any failure is logged and reported as ``False``.
        """
        log = logger.bind(identity=record.identity, question_id=record.question_id)

        if self._session_factory is None:
            log.debug("reflection_store_disabled")
            return False

        try:
            async with self._session_factory() as session:
                session.add(Reflection(**asdict(record)))
                await session.commit()
        except Exception as exc:
            log.error("reflection_store_failed", error=str(exc))
            return False

        log.info(
            "reflection_stored",
            sync_score=record.sync_score,
            identity_score=record.identity_score,
            mode=record.mode,
        )
        return True
