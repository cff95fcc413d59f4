"""
Double Mirror — classified analysis errors.

Every error that crosses the analysis boundary renders as
``"<CLASSIFICATION>: <detail>"`` so that callers (and the UI behind the
HTTP layer) can tell "try again later" apart from "this will never work".
"""

from __future__ import annotations

RETRY_NEEDED = "RETRY_NEEDED"
FATAL = "FATAL"


class AnalysisError(Exception):
    """Base class for classified analysis failures."""

    classification: str = FATAL

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    @property
    def retriable(self) -> bool:
        return self.classification == RETRY_NEEDED

    def __str__(self) -> str:
        return f"{self.classification}: {self.detail}"


class RetryNeededError(AnalysisError):
    """Transient upstream failure (rate limit, overload, missing model)."""

    classification = RETRY_NEEDED


class ModelGatewayExhaustedError(RetryNeededError):
    """Every model tier in the chain failed for a single prompt."""

    def __init__(self, detail: str, failures: list[tuple[str, str]] | None = None) -> None:
        super().__init__(detail)
        self.failures = failures or []


class AnalysisTimeoutError(RetryNeededError):
    """A single orchestrated attempt exceeded its wall-clock budget."""


class FatalError(AnalysisError):
    """Unrecoverable failure; never retried."""

    classification = FATAL


class InputError(FatalError):
    """The request itself is invalid (empty text, unsupported value)."""


class UnknownQuestionError(InputError):
    def __init__(self, question_id: str) -> None:
        super().__init__(f"Unknown question id: {question_id!r}")
        self.question_id = question_id


class ConfigurationError(FatalError):
    """Service is misconfigured (missing API key, empty model chain)."""
