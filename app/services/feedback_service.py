"""
Double Mirror — FeedbackService: persona-conditioned feedback and tip.

The persona is chosen from the mode and the *measured* score, so this
call always runs after scoring.  The service never raises: unusable
replies fall back to a canned pair for the mode and language, and an
unreachable model chain falls back to a second canned pair.
"""

from __future__ import annotations

import structlog

from app.config import get_settings
from app.schemas.analysis import FeedbackResult, Language, Mode
from app.services.json_extractor import extract_json
from app.services.model_gateway import ModelGateway, ModelInvocationAttempt
from app.services.personas import (
    DEFAULT_TRAINING_TIPS,
    PARSE_FALLBACKS,
    UNAVAILABLE_FALLBACKS,
    CannedFeedback,
    select_persona,
)

logger = structlog.get_logger(__name__)

_SCORE_LABELS = {Mode.SYNC: "Sync", Mode.IDENTITY: "Identity"}
_LANGUAGE_NAMES = {Language.KO: "Korean", Language.EN: "English"}


def _as_result(canned: CannedFeedback) -> FeedbackResult:
    return FeedbackResult(
        feedback_text=canned.feedback_text,
        training_tip=canned.training_tip,
    )


def _clean(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


class FeedbackService:
    def __init__(self, gateway: ModelGateway | None = None) -> None:
        if gateway is None:
            gateway = ModelGateway(
                model_chain=get_settings().feedback_model_chain,
                name="feedback",
            )
        self._gateway = gateway

    async def feedback(
        self,
        user_text: str,
        standard_answer_text: str,
        question_text: str,
        language: Language,
        mode: Mode,
        score: int,
        attempts: list[ModelInvocationAttempt] | None = None,
    ) -> FeedbackResult:
        """Generate feedback for a scored answer.  Never raises."""
        log = logger.bind(mode=mode.value, language=language.value, score=score)
        prompt = self._build_feedback_prompt(
            user_text, standard_answer_text, question_text, language, mode, score
        )

        try:
            response_text = await self._gateway.generate(prompt, attempts=attempts)
        except Exception as exc:
            log.warning("feedback_generation_unavailable", error=str(exc))
            return _as_result(UNAVAILABLE_FALLBACKS[mode][language])

        data = extract_json(response_text)
        feedback_text = _clean(data.get("feedback")) if data else ""
        if not feedback_text:
            log.warning("feedback_unparseable", preview=response_text[:120])
            return _as_result(PARSE_FALLBACKS[mode][language])

        training_tip = _clean(data.get("trainingTip")) or DEFAULT_TRAINING_TIPS[language]
        log.debug("feedback_generated")
        return FeedbackResult(feedback_text=feedback_text, training_tip=training_tip)

    def _build_feedback_prompt(
        self,
        user_text: str,
        standard_answer_text: str,
        question_text: str,
        language: Language,
        mode: Mode,
        score: int,
    ) -> str:
        persona = select_persona(mode, score)

        return f"""[Persona]: {persona.title[language]}. [Current {_SCORE_LABELS[mode]} Score: {score}%].
- {persona.directive[language]}

[Context]:
- User Input: "{user_text}"
- Standard Logic: "{standard_answer_text}"
- Core Question: "{question_text}"

[Output Constraints]:
- Write in {_LANGUAGE_NAMES[language]}.
- Output strictly in JSON format: {{"feedback": "...", "trainingTip": "..."}}
- Feedback: 2-3 sentences max.
- TrainingTip: A short advice to align or deepen reasoning."""
