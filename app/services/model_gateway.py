"""
Double Mirror — ModelGateway: ordered Gemini model chain with substitution.

The gateway owns model *selection on failure*: each model in the chain is
tried exactly once, in order, and the first non-empty completion wins.
Temporal retry (sleeping and trying again later) lives in
the RetryOrchestrator, not here.

Model chain (defaults):
    models/gemini-2.0-flash -> models/gemini-2.0-flash-lite

The chain length is capped by ``GEMINI_MODEL_CHAIN_CEILING`` so extra
configured models never stretch a single generation beyond the ceiling.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

import google.generativeai as genai
import structlog
from google.generativeai.types import HarmBlockThreshold, HarmCategory

from app.config import get_settings
from app.services.errors import ConfigurationError, ModelGatewayExhaustedError

logger = structlog.get_logger(__name__)

SUCCESS = "success"
FAILURE = "failure"


def _classify_failure(exc: BaseException) -> str:
    """Map a Gemini SDK exception to a coarse failure kind for diagnostics.

    The google-generativeai SDK wraps HTTP failures as various exception
    types, so we inspect both the type name and string representation.
    """
    exc_str = str(exc).lower()
    exc_type = type(exc).__name__.lower()

    if "429" in exc_str or "resource_exhausted" in exc_str or "resourceexhausted" in exc_type:
        return "rate_limited"
    if "quota" in exc_str or "usagelimit" in exc_str:
        return "rate_limited"
    if "404" in exc_str or "notfound" in exc_type or "not found" in exc_str:
        return "model_not_found"
    if "500" in exc_str or "503" in exc_str or "serviceunavailable" in exc_type:
        return "unavailable"
    if "overloaded" in exc_str or "internal" in exc_str:
        return "unavailable"
    return "error"


@dataclass
class ModelInvocationAttempt:
    """One call to one model tier.  Never persisted."""

    model_tier: int
    model_name: str
    prompt: str
    outcome: str = FAILURE
    raw_text: str | None = None
    error: str | None = None
    elapsed_ms: float = 0.0

    @property
    def tier_label(self) -> str:
        return "primary" if self.model_tier == 0 else "fallback"


class ModelGateway:
    """Two-tier (by default) Gemini text generation with automatic model
    substitution.

    Parameters
    ----------
    model_chain:
        Ordered model identifiers.  Defaults to the scoring chain from
        settings.
    ceiling:
        Maximum number of tiers tried per call.  Defaults to
        ``GEMINI_MODEL_CHAIN_CEILING``.
    name:
        Label used in log events (``"scoring"``, ``"feedback"``).
    """

    def __init__(
        self,
        model_chain: list[str] | None = None,
        ceiling: int | None = None,
        name: str = "scoring",
    ) -> None:
        settings = get_settings()

        chain = model_chain if model_chain is not None else settings.scoring_model_chain
        limit = ceiling if ceiling is not None else settings.GEMINI_MODEL_CHAIN_CEILING

        self._name = name
        self._api_key = settings.GEMINI_API_KEY
        self._model_chain: list[str] = list(chain)[: max(1, limit)]

        if self._api_key:
            genai.configure(api_key=self._api_key)

        self._safety_settings = {
            HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_ONLY_HIGH,
            HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_ONLY_HIGH,
            HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_ONLY_HIGH,
            HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_ONLY_HIGH,
        }

        # JSON mode: the prompts still ask for JSON, this just makes it likelier
        self._generation_config = genai.GenerationConfig(
            max_output_tokens=settings.GEMINI_MAX_OUTPUT_TOKENS,
            response_mime_type="application/json",
        )

        logger.info(
            "model_gateway_initialised",
            gateway=self._name,
            model_chain=self._model_chain,
        )

    @property
    def model_chain(self) -> list[str]:
        return list(self._model_chain)

    async def generate(
        self,
        prompt: str,
        attempts: list[ModelInvocationAttempt] | None = None,
    ) -> str:
        """Return the first non-empty completion from the model chain.

        Each tier is tried once.  When ``attempts`` is given, one
        ``ModelInvocationAttempt`` per tier tried is appended to it.

        Raises
        ------
        ConfigurationError
            No API key or an empty model chain.
        ModelGatewayExhaustedError
            Every tier failed; classified ``RETRY_NEEDED``.
        """
        if not self._api_key:
            raise ConfigurationError("GEMINI_API_KEY is not configured")
        if not self._model_chain:
            raise ConfigurationError(f"No models configured for {self._name} gateway")

        failures: list[tuple[str, str]] = []

        for tier, model_name in enumerate(self._model_chain):
            attempt = ModelInvocationAttempt(
                model_tier=tier,
                model_name=model_name,
                prompt=prompt,
            )
            if attempts is not None:
                attempts.append(attempt)

            start = time.monotonic()
            try:
                text = await self._call_model(model_name, prompt)
            except Exception as exc:
                attempt.elapsed_ms = round((time.monotonic() - start) * 1000, 2)
                attempt.error = str(exc)
                kind = _classify_failure(exc)
                failures.append((model_name, f"{kind}: {exc}"))
                logger.warning(
                    "model_attempt_failed",
                    gateway=self._name,
                    tier=attempt.tier_label,
                    model=model_name,
                    failure_kind=kind,
                    error=str(exc),
                    elapsed_ms=attempt.elapsed_ms,
                )
                continue

            attempt.elapsed_ms = round((time.monotonic() - start) * 1000, 2)
            attempt.outcome = SUCCESS
            attempt.raw_text = text
            logger.debug(
                "model_attempt_succeeded",
                gateway=self._name,
                tier=attempt.tier_label,
                model=model_name,
                elapsed_ms=attempt.elapsed_ms,
            )
            return text

        logger.error(
            "model_chain_exhausted",
            gateway=self._name,
            model_chain=self._model_chain,
            failures=failures,
        )
        summary = "; ".join(f"{model} -> {reason}" for model, reason in failures)
        raise ModelGatewayExhaustedError(
            f"All models failed to respond ({summary})",
            failures=failures,
        )

    async def _call_model(self, model_name: str, prompt: str) -> str:
        """Single Gemini call; raises on transport errors and empty output."""
        model = genai.GenerativeModel(model_name)
        response = await model.generate_content_async(
            prompt,
            safety_settings=self._safety_settings,
            generation_config=self._generation_config,
        )

        if not response.candidates:
            raise ValueError(
                f"Gemini returned no candidates for model {model_name}. "
                f"Prompt feedback: {response.prompt_feedback}"
            )

        text = response.text
        if not text or not text.strip():
            raise ValueError(f"Gemini returned empty text for model {model_name}")

        return text
