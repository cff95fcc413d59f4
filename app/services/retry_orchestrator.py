"""
Double Mirror — RetryOrchestrator: bounded retries around one analysis.

State machine per user action::

    IDLE -> ATTEMPTING(n) -> SUCCESS
                          -> BACKOFF -> ATTEMPTING(n+1)
                          -> EXHAUSTED
    (any point)           -> SUPERSEDED (silent)

Each attempt races the analysis against a wall-clock timeout; a call that
loses the race is left running and its outcome is dropped.  Retriable
failures (``RETRY_NEEDED``) back off exponentially via tenacity; fatal
failures are re-raised immediately.  Every resumption point compares the
session's token with the latest token issued for the same client, and a
superseded session ends without emitting status, result or error.  The
superseded call itself is not cancelled; its outcome is simply dropped.
"""

from __future__ import annotations

import asyncio
import itertools
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from app.config import get_settings
from app.schemas.analysis import AnalysisRequest, AnalysisResult, Language
from app.services.analysis_service import AnalysisService
from app.services.errors import AnalysisError, AnalysisTimeoutError
from app.services.model_gateway import ModelInvocationAttempt

logger = structlog.get_logger(__name__)

StatusCallback = Callable[[str], None]
SleepFunc = Callable[[float], Awaitable[None]]

STATUS_MESSAGES: dict[Language, dict[str, str]] = {
    Language.KO: {
        "initiating": "사유 분석 시작...",
        "retrying": "재시도 중... (Retrying {attempt}/{max_attempts})",
        "final": "마지막 시도 중... (Connecting)",
        "waiting": "AI 서버 응답 대기 중... (Waiting)",
    },
    Language.EN: {
        "initiating": "INITIATING ANALYSIS...",
        "retrying": "Retrying... ({attempt}/{max_attempts})",
        "final": "Final attempt... (Connecting)",
        "waiting": "Waiting for the AI server to respond... (Waiting)",
    },
}

EXHAUSTED_MESSAGES: dict[Language, str] = {
    Language.KO: (
        "심연이 너무 깊어 인양에 실패했습니다. AI 서버의 할당량 초과 또는 일시적인 장애로 "
        "응답하지 못했으며, 답변 내용의 문제가 아닙니다. 잠시 후 다시 시도해 주세요. [{detail}]"
    ),
    Language.EN: (
        "The abyss ran too deep to salvage your reasoning. The AI backend is over quota or "
        "temporarily unavailable; your answer was not rejected. Please try again shortly. [{detail}]"
    ),
}


class SessionState(str, Enum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    BACKOFF = "backoff"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"
    SUPERSEDED = "superseded"


@dataclass(frozen=True)
class RequestToken:
    client_key: str
    sequence: int
    request_id: str


class RequestSequencer:
    """Issues monotonically increasing tokens per client key.

    Only the most recently issued token for a client is current; any
    older token is stale.  Touched only from the event loop, so no lock.
    """

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._latest: dict[str, int] = {}

    def issue(self, client_key: str) -> RequestToken:
        sequence = next(self._counter)
        self._latest[client_key] = sequence
        return RequestToken(
            client_key=client_key,
            sequence=sequence,
            request_id=uuid.uuid4().hex,
        )

    def is_current(self, token: RequestToken) -> bool:
        return self._latest.get(token.client_key) == token.sequence

    def release(self, token: RequestToken) -> None:
        if self.is_current(token):
            del self._latest[token.client_key]


@dataclass
class RetrySession:
    token: RequestToken
    max_attempts: int
    language: Language
    attempt_count: int = 0
    state: SessionState = SessionState.IDLE
    status_messages: list[str] = field(default_factory=list)
    invocations: list[ModelInvocationAttempt] = field(default_factory=list)
    result: Optional[AnalysisResult] = None
    error: Optional[AnalysisError] = None
    error_message: Optional[str] = None
    elapsed_ms: float = 0.0

    @property
    def request_id(self) -> str:
        return self.token.request_id


class _Superseded(Exception):
    """Internal signal: a newer request replaced this session."""


def _is_retriable(exc: BaseException) -> bool:
    return isinstance(exc, AnalysisError) and exc.retriable


class RetryOrchestrator:
    """Wraps ``AnalysisService.analyze`` with timeout, backoff and
    stale-response suppression.

    Parameters
    ----------
    analysis_service:
        The dual-score aggregator to call once per attempt.
    sequencer:
        Token issuer shared by every orchestrated call of the process.
    sleep:
        Awaitable sleep used between attempts (injectable for tests).

    Remaining keyword arguments override the ``ANALYSIS_*`` settings.
    """

    def __init__(
        self,
        analysis_service: AnalysisService | None = None,
        sequencer: RequestSequencer | None = None,
        *,
        max_attempts: int | None = None,
        attempt_timeout: float | None = None,
        backoff_base: float | None = None,
        backoff_multiplier: float | None = None,
        backoff_max: float | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        settings = get_settings()

        def _or_default(value, default):
            return value if value is not None else default

        self._analysis = analysis_service or AnalysisService()
        self._sequencer = sequencer or RequestSequencer()
        self._max_attempts = _or_default(max_attempts, settings.ANALYSIS_MAX_ATTEMPTS)
        self._attempt_timeout = _or_default(attempt_timeout, settings.ANALYSIS_ATTEMPT_TIMEOUT_SECONDS)
        self._backoff_base = _or_default(backoff_base, settings.ANALYSIS_BACKOFF_BASE_SECONDS)
        self._backoff_multiplier = _or_default(backoff_multiplier, settings.ANALYSIS_BACKOFF_MULTIPLIER)
        self._backoff_max = _or_default(backoff_max, settings.ANALYSIS_BACKOFF_MAX_SECONDS)
        self._sleep = sleep

        if self._max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self._max_attempts}")
        if self._attempt_timeout <= 0 or self._backoff_multiplier <= 0:
            raise ValueError(
                f"attempt_timeout and backoff_multiplier must be positive "
                f"(got {self._attempt_timeout}, {self._backoff_multiplier})"
            )

    @property
    def sequencer(self) -> RequestSequencer:
        return self._sequencer

    def backoff_delays(self) -> list[float]:
        """Delays slept between consecutive attempts when every attempt fails."""
        return [
            min(self._backoff_base * self._backoff_multiplier ** n, self._backoff_max)
            for n in range(self._max_attempts - 1)
        ]

    async def submit(
        self,
        client_key: str,
        request: AnalysisRequest,
        on_status: StatusCallback | None = None,
    ) -> RetrySession:
        """Issue a fresh token for ``client_key`` (superseding any
        in-flight session of that client) and run the analysis."""
        token = self._sequencer.issue(client_key)
        return await self.run(token, request, on_status)

    async def run(
        self,
        token: RequestToken,
        request: AnalysisRequest,
        on_status: StatusCallback | None = None,
    ) -> RetrySession:
        """Drive one session to SUCCESS, EXHAUSTED or SUPERSEDED.

        Raises
        ------
        FatalError
            Input or configuration errors, raised on the first attempt
            (unless the session was superseded meanwhile).
        """
        session = RetrySession(
            token=token,
            max_attempts=self._max_attempts,
            language=request.language,
        )
        log = logger.bind(
            request_id=token.request_id,
            client_key=token.client_key,
            question_id=request.question_id,
        )
        start_time = time.monotonic()

        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_retriable),
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(
                multiplier=self._backoff_base,
                exp_base=self._backoff_multiplier,
                max=self._backoff_max,
            ),
            sleep=self._sleep,
            before_sleep=lambda retry_state: self._enter_backoff(
                session, retry_state, on_status, log
            ),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    session.result = await self._attempt(
                        session,
                        request,
                        attempt.retry_state.attempt_number,
                        on_status,
                        log,
                    )
        except _Superseded:
            self._supersede(session, log)
        except AnalysisError as exc:
            if not self._sequencer.is_current(token):
                self._supersede(session, log)
            elif exc.retriable:
                self._exhaust(session, exc, log)
            else:
                log.warning("analysis_fatal", error=str(exc), attempts=session.attempt_count)
                self._sequencer.release(token)
                raise
        except Exception:
            if not self._sequencer.is_current(token):
                self._supersede(session, log)
            else:
                log.exception("analysis_unexpected_error", attempts=session.attempt_count)
                self._sequencer.release(token)
                raise
        else:
            session.state = SessionState.SUCCESS
            log.info("analysis_session_succeeded", attempts=session.attempt_count)
        finally:
            session.elapsed_ms = round((time.monotonic() - start_time) * 1000, 2)

        self._sequencer.release(token)
        return session

    # ── Internals ─────────────────────────────────────────────────────

    async def _attempt(
        self,
        session: RetrySession,
        request: AnalysisRequest,
        attempt_number: int,
        on_status: StatusCallback | None,
        log,
    ) -> AnalysisResult:
        self._ensure_current(session)

        session.attempt_count = attempt_number
        session.state = SessionState.ATTEMPTING
        self._emit(session, self._attempt_message(session, attempt_number), on_status)
        log.info(
            "analysis_attempt_start",
            attempt=attempt_number,
            max_attempts=self._max_attempts,
        )

        call = asyncio.ensure_future(
            self._analysis.analyze(
                request.question_id,
                request.user_text,
                request.language,
                request.mode,
                attempts=session.invocations,
            )
        )
        # One-shot race: a late call keeps running and its outcome is dropped.
        done, _ = await asyncio.wait({call}, timeout=self._attempt_timeout)

        if not done:
            call.add_done_callback(self._drop_late_outcome)
            self._ensure_current(session)
            log.warning("analysis_attempt_timeout", attempt=attempt_number, timeout=self._attempt_timeout)
            raise AnalysisTimeoutError(
                f"TIMEOUT: no response within {self._attempt_timeout:g}s"
            )

        try:
            result = call.result()
        except Exception as exc:
            self._ensure_current(session)
            log.warning("analysis_attempt_failed", attempt=attempt_number, error=str(exc))
            raise

        self._ensure_current(session)
        return result

    @staticmethod
    def _drop_late_outcome(call: asyncio.Future) -> None:
        if call.cancelled():
            return
        exc = call.exception()
        logger.info(
            "analysis_late_outcome_dropped",
            outcome="error" if exc is not None else "result",
            error=str(exc) if exc is not None else None,
        )

    def _enter_backoff(
        self,
        session: RetrySession,
        retry_state: RetryCallState,
        on_status: StatusCallback | None,
        log,
    ) -> None:
        if not self._sequencer.is_current(session.token):
            return
        session.state = SessionState.BACKOFF
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        log.info(
            "analysis_backoff",
            attempt=retry_state.attempt_number,
            delay_seconds=delay,
        )
        self._emit(session, STATUS_MESSAGES[session.language]["waiting"], on_status)

    def _attempt_message(self, session: RetrySession, attempt_number: int) -> str:
        messages = STATUS_MESSAGES[session.language]
        if attempt_number == 1:
            return messages["initiating"]
        if attempt_number == self._max_attempts:
            return messages["final"]
        return messages["retrying"].format(
            attempt=attempt_number, max_attempts=self._max_attempts
        )

    def _emit(self, session: RetrySession, message: str, on_status: StatusCallback | None) -> None:
        session.status_messages.append(message)
        if on_status is not None:
            on_status(message)

    def _ensure_current(self, session: RetrySession) -> None:
        if not self._sequencer.is_current(session.token):
            raise _Superseded()

    def _supersede(self, session: RetrySession, log) -> None:
        session.state = SessionState.SUPERSEDED
        session.result = None
        log.info("analysis_session_superseded", attempts=session.attempt_count)

    def _exhaust(self, session: RetrySession, exc: AnalysisError, log) -> None:
        session.state = SessionState.EXHAUSTED
        session.result = None
        session.error = exc
        session.error_message = EXHAUSTED_MESSAGES[session.language].format(detail=str(exc))
        log.error(
            "analysis_session_exhausted",
            attempts=session.attempt_count,
            error=str(exc),
        )
