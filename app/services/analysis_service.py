"""
Double Mirror — AnalysisService: the dual-score aggregate.

Composes scoring and feedback into the single externally visible
``analyze`` operation.  Scoring always completes before feedback starts
because the feedback persona depends on the measured score.

Failure policy:
- unknown question id / empty text  -> ``InputError`` (FATAL, no model call)
- scoring gateway exhausted         -> ``ModelGatewayExhaustedError`` (RETRY_NEEDED)
- anything inside feedback          -> canned feedback, result still returned
"""

from __future__ import annotations

import time

import structlog

from app.schemas.analysis import AnalysisResult, Language, Mode, ScoreResult
from app.services.errors import InputError
from app.services.feedback_service import FeedbackService
from app.services.model_gateway import ModelInvocationAttempt
from app.services.question_bank import get_question
from app.services.scoring_service import ScoringService

logger = structlog.get_logger(__name__)


def _coerce_enum(enum_cls, value, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InputError(
            f"Unsupported {field_name} {value!r} (expected one of: {allowed})"
        ) from None


class AnalysisService:
    def __init__(
        self,
        scoring_service: ScoringService | None = None,
        feedback_service: FeedbackService | None = None,
    ) -> None:
        self._scoring = scoring_service or ScoringService()
        self._feedback = feedback_service or FeedbackService()

    async def analyze(
        self,
        question_id: str,
        user_text: str,
        language: Language | str,
        mode: Mode | str,
        attempts: list[ModelInvocationAttempt] | None = None,
    ) -> AnalysisResult:
        """Score an answer and generate persona feedback for it.

        Parameters
        ----------
        question_id:
            Id of a catalog question.
        user_text:
            The user's free-text answer.  Any length is accepted except
            empty or whitespace-only.
        language, mode:
            Enum members or their string values.
        attempts:
            Optional list that collects every model invocation made for
            this analysis (scoring first, then feedback).

        Returns
        -------
        AnalysisResult
            Complementary scores, the standard answer, feedback and tip.
        """
        language = _coerce_enum(Language, language, "language")
        mode = _coerce_enum(Mode, mode, "mode")
        question = get_question(question_id)

        if not user_text or not user_text.strip():
            raise InputError("Answer text is empty")

        log = logger.bind(
            question_id=question.id,
            language=language.value,
            mode=mode.value,
            answer_length=len(user_text),
        )
        start_time = time.monotonic()
        log.info("analysis_start")

        standard_answer = question.standard_answer_for(language)

        sync_score = await self._scoring.score(
            user_text,
            standard_answer,
            question.rubric_for(language),
            language,
            attempts=attempts,
        )
        scores = ScoreResult.from_sync(sync_score)

        mode_score = scores.sync_score if mode is Mode.SYNC else scores.identity_score
        feedback = await self._feedback.feedback(
            user_text,
            standard_answer,
            question.text_for(language),
            language,
            mode,
            mode_score,
            attempts=attempts,
        )

        elapsed_ms = round((time.monotonic() - start_time) * 1000, 2)
        log.info(
            "analysis_complete",
            sync_score=scores.sync_score,
            identity_score=scores.identity_score,
            elapsed_ms=elapsed_ms,
        )

        return AnalysisResult(
            sync_score=scores.sync_score,
            identity_score=scores.identity_score,
            standard_answer=standard_answer,
            feedback_text=feedback.feedback_text,
            training_tip=feedback.training_tip,
        )
