"""Tests for RetryOrchestrator — timeout, backoff and stale-response suppression.

Backoff sleeps go through an injected recorder, so no test waits for real
delays; only the timeout tests use a (very short) real wall clock.
"""
import asyncio

import pytest
from unittest.mock import MagicMock, AsyncMock

from app.schemas.analysis import AnalysisRequest, Language, Mode
from app.services.errors import (
    RETRY_NEEDED,
    AnalysisTimeoutError,
    InputError,
    ModelGatewayExhaustedError,
)
from app.services.retry_orchestrator import (
    EXHAUSTED_MESSAGES,
    STATUS_MESSAGES,
    RequestSequencer,
    RetryOrchestrator,
    SessionState,
)

EN = STATUS_MESSAGES[Language.EN]


def _request(language=Language.EN):
    return AnalysisRequest(
        question_id="routine",
        user_text="Water, stretch, top 3 tasks.",
        language=language,
        mode=Mode.SYNC,
    )


def _orchestrator(analyze, sleep, sequencer=None, **overrides):
    analysis = MagicMock()
    analysis.analyze = analyze if isinstance(analyze, AsyncMock) else AsyncMock(side_effect=analyze)
    options = dict(
        max_attempts=3,
        attempt_timeout=1.0,
        backoff_base=3.0,
        backoff_multiplier=1.5,
        backoff_max=20.0,
    )
    options.update(overrides)
    return RetryOrchestrator(analysis, sequencer or RequestSequencer(), sleep=sleep, **options), analysis


def _exhausted():
    return ModelGatewayExhaustedError("All models failed to respond (429)")


class TestRequestSequencer:

    def test_latest_token_is_current(self):
        sequencer = RequestSequencer()
        first = sequencer.issue("client")
        second = sequencer.issue("client")
        assert not sequencer.is_current(first)
        assert sequencer.is_current(second)
        assert second.sequence > first.sequence
        assert first.request_id != second.request_id

    def test_clients_are_independent(self):
        sequencer = RequestSequencer()
        a = sequencer.issue("a")
        b = sequencer.issue("b")
        assert sequencer.is_current(a)
        assert sequencer.is_current(b)

    def test_release_ignores_stale_tokens(self):
        sequencer = RequestSequencer()
        stale = sequencer.issue("client")
        fresh = sequencer.issue("client")
        sequencer.release(stale)
        assert sequencer.is_current(fresh)
        sequencer.release(fresh)
        assert not sequencer.is_current(fresh)


class TestBackoffSchedule:

    def test_default_delays(self, recording_sleep):
        orchestrator, _ = _orchestrator([], recording_sleep)
        assert orchestrator.backoff_delays() == [3.0, 4.5]

    def test_delays_are_capped(self, recording_sleep):
        orchestrator, _ = _orchestrator([], recording_sleep, max_attempts=6, backoff_max=8.0)
        assert orchestrator.backoff_delays() == [3.0, 4.5, 6.75, 8.0, 8.0]

    def test_zero_backoff_base_is_kept(self, recording_sleep):
        orchestrator, _ = _orchestrator([], recording_sleep, backoff_base=0.0)
        assert orchestrator.backoff_delays() == [0.0, 0.0]

    def test_zero_max_attempts_is_rejected(self, recording_sleep):
        with pytest.raises(ValueError, match="max_attempts"):
            _orchestrator([], recording_sleep, max_attempts=0)

    def test_zero_backoff_multiplier_is_rejected(self, recording_sleep):
        with pytest.raises(ValueError, match="backoff_multiplier"):
            _orchestrator([], recording_sleep, backoff_multiplier=0)


class TestRetries:

    @pytest.mark.asyncio
    async def test_two_failures_then_success(self, recording_sleep, make_result):
        result = make_result(88)
        orchestrator, analysis = _orchestrator([_exhausted(), _exhausted(), result], recording_sleep)
        seen = []

        session = await orchestrator.submit("client", _request(), on_status=seen.append)

        assert session.state is SessionState.SUCCESS
        assert session.result == result
        assert session.attempt_count == 3
        assert analysis.analyze.await_count == 3
        assert recording_sleep.delays == [3.0, 4.5]
        assert session.status_messages == [
            EN["initiating"],
            EN["waiting"],
            EN["retrying"].format(attempt=2, max_attempts=3),
            EN["waiting"],
            EN["final"],
        ]
        assert seen == session.status_messages

    @pytest.mark.asyncio
    async def test_first_attempt_success_does_not_sleep(self, recording_sleep, make_result):
        orchestrator, analysis = _orchestrator([make_result(40)], recording_sleep)
        session = await orchestrator.submit("client", _request())

        assert session.state is SessionState.SUCCESS
        assert session.attempt_count == 1
        assert recording_sleep.delays == []
        assert session.status_messages == [EN["initiating"]]
        assert analysis.analyze.await_args.kwargs["attempts"] is session.invocations

    @pytest.mark.asyncio
    async def test_always_failing_exhausts(self, recording_sleep):
        orchestrator, analysis = _orchestrator(
            [_exhausted(), _exhausted(), _exhausted()], recording_sleep
        )
        session = await orchestrator.submit("client", _request())

        assert session.state is SessionState.EXHAUSTED
        assert session.result is None
        assert analysis.analyze.await_count == 3
        assert sum(recording_sleep.delays) == pytest.approx(7.5)
        assert str(session.error).startswith(f"{RETRY_NEEDED}:")
        assert session.error_message == EXHAUSTED_MESSAGES[Language.EN].format(detail=str(session.error))
        assert session.status_messages[-1] == EN["final"]

    @pytest.mark.asyncio
    async def test_exhausted_message_is_localized(self, recording_sleep):
        orchestrator, _ = _orchestrator([_exhausted()] * 3, recording_sleep)
        session = await orchestrator.submit("client", _request(Language.KO))

        assert session.error_message.startswith("심연이 너무 깊어")
        assert session.status_messages[0] == STATUS_MESSAGES[Language.KO]["initiating"]

    @pytest.mark.asyncio
    async def test_attempt_timeout_is_retriable(self, recording_sleep):
        gate = asyncio.Event()

        async def hang(*args, **kwargs):
            await gate.wait()

        orchestrator, analysis = _orchestrator(
            hang, recording_sleep, max_attempts=2, attempt_timeout=0.01
        )
        session = await orchestrator.submit("client", _request())
        gate.set()
        for _ in range(3):
            await asyncio.sleep(0)

        assert session.state is SessionState.EXHAUSTED
        assert isinstance(session.error, AnalysisTimeoutError)
        assert "TIMEOUT" in str(session.error)
        assert analysis.analyze.await_count == 2
        assert recording_sleep.delays == [3.0]

    @pytest.mark.asyncio
    async def test_timed_out_call_is_not_cancelled(self, recording_sleep, make_result):
        gate = asyncio.Event()
        outcome = []

        async def slow(*args, **kwargs):
            try:
                await gate.wait()
            except asyncio.CancelledError:
                outcome.append("cancelled")
                raise
            outcome.append("finished")
            return make_result(99)

        orchestrator, _ = _orchestrator(slow, recording_sleep, max_attempts=1, attempt_timeout=0.01)
        session = await orchestrator.submit("client", _request())

        assert session.state is SessionState.EXHAUSTED
        assert outcome == []

        gate.set()
        for _ in range(3):
            await asyncio.sleep(0)

        # the late result arrives but never reaches the finished session
        assert outcome == ["finished"]
        assert session.result is None
        assert session.state is SessionState.EXHAUSTED

    @pytest.mark.asyncio
    async def test_fatal_error_is_raised_immediately(self, recording_sleep):
        orchestrator, analysis = _orchestrator([InputError("Answer text is empty")], recording_sleep)

        with pytest.raises(InputError):
            await orchestrator.submit("client", _request())

        assert analysis.analyze.await_count == 1
        assert recording_sleep.delays == []


class TestSupersession:

    @pytest.mark.asyncio
    async def test_newer_request_during_backoff(self, sleep_factory):
        sequencer = RequestSequencer()
        sleep = sleep_factory(hook=lambda n: sequencer.issue("client"))
        orchestrator, analysis = _orchestrator([_exhausted(), _exhausted()], sleep, sequencer=sequencer)
        seen = []

        session = await orchestrator.submit("client", _request(), on_status=seen.append)

        assert session.state is SessionState.SUPERSEDED
        assert session.result is None
        assert session.error is None
        assert session.error_message is None
        assert analysis.analyze.await_count == 1
        # nothing is emitted after the newer request took over
        assert seen == [EN["initiating"], EN["waiting"]]

    @pytest.mark.asyncio
    async def test_newer_request_during_model_call(self, recording_sleep, make_result):
        sequencer = RequestSequencer()

        async def analyze(*args, **kwargs):
            sequencer.issue("client")
            return make_result(70)

        orchestrator, _ = _orchestrator(analyze, recording_sleep, sequencer=sequencer)
        session = await orchestrator.submit("client", _request())

        assert session.state is SessionState.SUPERSEDED
        assert session.result is None

    @pytest.mark.asyncio
    async def test_stale_failure_does_not_retry(self, recording_sleep):
        sequencer = RequestSequencer()

        async def analyze(*args, **kwargs):
            sequencer.issue("client")
            raise _exhausted()

        orchestrator, analysis = _orchestrator(analyze, recording_sleep, sequencer=sequencer)
        session = await orchestrator.submit("client", _request())

        assert session.state is SessionState.SUPERSEDED
        assert session.error is None
        assert analysis.analyze.await_count == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_stale_fatal_error_is_suppressed(self, recording_sleep):
        sequencer = RequestSequencer()

        async def analyze(*args, **kwargs):
            sequencer.issue("client")
            raise InputError("Answer text is empty")

        orchestrator, _ = _orchestrator(analyze, recording_sleep, sequencer=sequencer)
        session = await orchestrator.submit("client", _request())
        assert session.state is SessionState.SUPERSEDED

    @pytest.mark.asyncio
    async def test_concurrent_submissions_latest_wins(self, recording_sleep, make_result):
        release = asyncio.Event()
        calls = []

        async def analyze(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                await release.wait()
                return make_result(10)
            release.set()
            return make_result(90)

        orchestrator, _ = _orchestrator(analyze, recording_sleep)
        older, newer = await asyncio.gather(
            orchestrator.submit("client", _request()),
            orchestrator.submit("client", _request()),
        )

        assert older.state is SessionState.SUPERSEDED
        assert older.result is None
        assert newer.state is SessionState.SUCCESS
        assert newer.result.sync_score == 90

    @pytest.mark.asyncio
    async def test_other_clients_are_unaffected(self, recording_sleep, make_result):
        orchestrator, _ = _orchestrator([make_result(10), make_result(20)], recording_sleep)
        a, b = await asyncio.gather(
            orchestrator.submit("client-a", _request()),
            orchestrator.submit("client-b", _request()),
        )
        assert a.state is SessionState.SUCCESS
        assert b.state is SessionState.SUCCESS
