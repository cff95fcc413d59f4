from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class Language(str, Enum):
    KO = "ko"
    EN = "en"


class Mode(str, Enum):
    SYNC = "sync"
    IDENTITY = "identity"


class AnalysisRequest(BaseModel):
    question_id: str
    user_text: str
    language: Language = Language.KO
    mode: Mode = Mode.SYNC


class ScoreResult(BaseModel):
    sync_score: int = Field(ge=0, le=100)
    identity_score: int = Field(ge=0, le=100)

    @model_validator(mode="after")
    def _scores_are_complementary(self) -> "ScoreResult":
        if self.identity_score != 100 - self.sync_score:
            raise ValueError(
                f"identity_score must equal 100 - sync_score "
                f"(got sync={self.sync_score}, identity={self.identity_score})"
            )
        return self

    @classmethod
    def from_sync(cls, sync_score: int) -> "ScoreResult":
        return cls(sync_score=sync_score, identity_score=100 - sync_score)


class FeedbackResult(BaseModel):
    feedback_text: str = Field(min_length=1)
    training_tip: str = Field(min_length=1)


class AnalysisResult(ScoreResult):
    standard_answer: str
    feedback_text: str
    training_tip: str


class AnalysisResponse(AnalysisResult):
    request_id: str
    attempts: int
    status_messages: list[str] = []


class AnalysisFailure(BaseModel):
    error: str
    message: str
    request_id: Optional[str] = None
    attempts: int = 0


class QuestionSummary(BaseModel):
    id: str
    text: str
