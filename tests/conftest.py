"""Shared pytest fixtures for Double Mirror tests."""
import os

os.environ.setdefault("GEMINI_API_KEY", "test-key")
os.environ.setdefault("DATABASE_URL", "")

import pytest
from unittest.mock import AsyncMock, MagicMock

from app.schemas.analysis import AnalysisResult


def make_gateway(*responses):
    """A fake ModelGateway whose ``generate`` returns (or raises) each
    response in turn."""
    gateway = MagicMock()
    gateway.generate = AsyncMock(side_effect=list(responses))
    return gateway


def make_result(sync_score=80, feedback_text="Deviation detected.", training_tip="Cite the rubric."):
    return AnalysisResult(
        sync_score=sync_score,
        identity_score=100 - sync_score,
        standard_answer="Standard logic.",
        feedback_text=feedback_text,
        training_tip=training_tip,
    )


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records requested delays and
    runs an optional hook instead of waiting."""

    def __init__(self, hook=None):
        self.delays = []
        self._hook = hook

    async def __call__(self, delay):
        self.delays.append(delay)
        if self._hook is not None:
            self._hook(len(self.delays))


@pytest.fixture
def routine_answer():
    return (
        "Right after waking I drink a glass of water to rehydrate, then stretch for ten minutes. "
        "Before opening messages I list my tasks and pick the top 3 to do first."
    )


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture(name="make_gateway")
def make_gateway_fixture():
    return make_gateway


@pytest.fixture(name="make_result")
def make_result_fixture():
    return make_result


@pytest.fixture(name="sleep_factory")
def sleep_factory_fixture():
    return RecordingSleep
