"""Unit tests for FeedbackService and the persona table."""
import pytest

from app.schemas.analysis import Language, Mode
from app.services.errors import ConfigurationError, ModelGatewayExhaustedError
from app.services.feedback_service import FeedbackService
from app.services.personas import (
    DEFAULT_TRAINING_TIPS,
    PARSE_FALLBACKS,
    PERSONA_TABLE,
    UNAVAILABLE_FALLBACKS,
    ScoreBand,
    score_band,
    select_persona,
)


async def _feedback(service, mode=Mode.SYNC, language=Language.EN, score=50):
    return await service.feedback(
        "user text",
        "standard answer",
        "question text",
        language,
        mode,
        score,
    )


class TestScoreBand:

    @pytest.mark.parametrize("score,band", [
        (0, ScoreBand.NORMAL),
        (74, ScoreBand.NORMAL),
        (75, ScoreBand.HIGH),
        (99, ScoreBand.HIGH),
        (100, ScoreBand.PERFECT),
    ])
    def test_band_boundaries(self, score, band):
        assert score_band(score) is band


class TestPersonaTable:

    def test_every_mode_band_pair_has_a_persona(self):
        for mode in Mode:
            for band in ScoreBand:
                persona = PERSONA_TABLE[(mode, band)]
                assert persona.mode is mode
                assert persona.band is band
                for language in Language:
                    assert persona.title[language].strip()
                    assert persona.directive[language].strip()

    def test_personas_are_distinct(self):
        titles = {persona.title[Language.EN] for persona in PERSONA_TABLE.values()}
        assert len(titles) == len(PERSONA_TABLE)

    def test_perfect_sync_is_worshipper(self):
        assert select_persona(Mode.SYNC, 100).title[Language.EN] == "Cold Machine Worshipper"

    def test_perfect_identity_is_primordial_observer(self):
        persona = select_persona(Mode.IDENTITY, 100)
        assert persona.title[Language.EN] == "Observer of the Primordial Soul"

    def test_fallback_tables_cover_every_mode_and_language(self):
        for table in (PARSE_FALLBACKS, UNAVAILABLE_FALLBACKS):
            for mode in Mode:
                for language in Language:
                    canned = table[mode][language]
                    assert canned.feedback_text.strip()
                    assert canned.training_tip.strip()
        for language in Language:
            assert DEFAULT_TRAINING_TIPS[language].strip()


class TestFeedbackPrompt:

    @pytest.mark.parametrize("mode", list(Mode))
    @pytest.mark.parametrize("score", [10, 80, 100])
    @pytest.mark.parametrize("language", list(Language))
    def test_prompt_uses_selected_persona(self, make_gateway, mode, score, language):
        service = FeedbackService(gateway=make_gateway())
        prompt = service._build_feedback_prompt(
            "user text", "standard answer", "question text", language, mode, score
        )
        persona = select_persona(mode, score)
        assert persona.title[language] in prompt
        assert persona.directive[language] in prompt
        assert f"Score: {score}%" in prompt
        assert '{"feedback": "...", "trainingTip": "..."}' in prompt

    def test_score_label_follows_mode(self, make_gateway):
        service = FeedbackService(gateway=make_gateway())
        sync_prompt = service._build_feedback_prompt("u", "s", "q", Language.EN, Mode.SYNC, 40)
        identity_prompt = service._build_feedback_prompt("u", "s", "q", Language.EN, Mode.IDENTITY, 40)
        assert "Current Sync Score" in sync_prompt
        assert "Current Identity Score" in identity_prompt


class TestFeedback:

    @pytest.mark.asyncio
    async def test_parsed_feedback(self, make_gateway):
        service = FeedbackService(gateway=make_gateway(
            '{"feedback": "Logic deviates at step two.", "trainingTip": "State the leverage."}'
        ))
        result = await _feedback(service)
        assert result.feedback_text == "Logic deviates at step two."
        assert result.training_tip == "State the leverage."

    @pytest.mark.asyncio
    async def test_missing_tip_uses_default(self, make_gateway):
        service = FeedbackService(gateway=make_gateway('{"feedback": "Resonance detected."}'))
        result = await _feedback(service, mode=Mode.IDENTITY, language=Language.KO)
        assert result.feedback_text == "Resonance detected."
        assert result.training_tip == DEFAULT_TRAINING_TIPS[Language.KO]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mode", list(Mode))
    @pytest.mark.parametrize("language", list(Language))
    async def test_unparseable_reply_uses_parse_fallback(self, make_gateway, mode, language):
        service = FeedbackService(gateway=make_gateway("not json at all"))
        result = await _feedback(service, mode=mode, language=language)
        assert result.feedback_text == PARSE_FALLBACKS[mode][language].feedback_text
        assert result.training_tip == PARSE_FALLBACKS[mode][language].training_tip

    @pytest.mark.asyncio
    async def test_blank_feedback_uses_parse_fallback(self, make_gateway):
        service = FeedbackService(gateway=make_gateway('{"feedback": "  ", "trainingTip": "x"}'))
        result = await _feedback(service)
        assert result.feedback_text == PARSE_FALLBACKS[Mode.SYNC][Language.EN].feedback_text

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        ModelGatewayExhaustedError("All models failed"),
        ConfigurationError("GEMINI_API_KEY is not configured"),
        RuntimeError("unexpected"),
    ])
    async def test_gateway_failure_never_raises(self, make_gateway, error):
        service = FeedbackService(gateway=make_gateway(error))
        result = await _feedback(service, mode=Mode.IDENTITY)
        assert result.feedback_text == UNAVAILABLE_FALLBACKS[Mode.IDENTITY][Language.EN].feedback_text
