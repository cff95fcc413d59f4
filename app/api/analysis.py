"""
Double Mirror — Analysis API

Endpoints for listing protocol questions and submitting a reflection for
scoring.  Submissions run through the RetryOrchestrator; accepted results
from identified users are persisted in the background after the response
has been sent.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Response, status
from fastapi.responses import JSONResponse

from app.schemas.analysis import (
    AnalysisFailure,
    AnalysisRequest,
    AnalysisResponse,
    Language,
    QuestionSummary,
)
from app.services.errors import FatalError, InputError, UnknownQuestionError
from app.services.question_bank import list_questions
from app.services.reflection_store import ReflectionRecord, ReflectionStore
from app.services.retry_orchestrator import RetryOrchestrator, SessionState

logger = structlog.get_logger("doublemirror.api.analysis")

router = APIRouter()

# ── Service singletons (lazy, constructed on first use) ───────────────────────

_orchestrator: RetryOrchestrator | None = None
_reflection_store: ReflectionStore | None = None


def get_orchestrator() -> RetryOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = RetryOrchestrator()
    return _orchestrator


def get_reflection_store() -> ReflectionStore:
    global _reflection_store
    if _reflection_store is None:
        _reflection_store = ReflectionStore()
    return _reflection_store


# ──────────────────────────────────────────────────────────────────────────────
# GET /questions: Protocol questions (without standard answers)
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/questions",
    response_model=list[QuestionSummary],
    summary="List protocol questions",
)
async def get_questions(language: Language = Language.KO) -> list[QuestionSummary]:
    return [
        QuestionSummary(id=q.id, text=q.text_for(language))
        for q in list_questions()
    ]


# ──────────────────────────────────────────────────────────────────────────────
# POST /: Analyze a reflection
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "",
    response_model=AnalysisResponse,
    responses={
        204: {"description": "Superseded by a newer submission from the same client"},
        503: {"model": AnalysisFailure, "description": "Retries exhausted"},
    },
    summary="Score a reflection and generate persona feedback",
)
async def analyze_reflection(
    payload: AnalysisRequest,
    background_tasks: BackgroundTasks,
    x_user_identity: Optional[str] = Header(default=None),
    x_client_id: Optional[str] = Header(default=None),
    orchestrator: RetryOrchestrator = Depends(get_orchestrator),
    reflection_store: ReflectionStore = Depends(get_reflection_store),
):
    """Score ``payload.user_text`` against the question's rubric.

    ``X-Client-Id`` (falling back to ``X-User-Identity``) scopes
    supersession: a newer submission with the same key makes any older
    in-flight submission return 204.  Without either header every
    submission stands alone.
    """
    client_key = x_client_id or x_user_identity or f"anonymous:{uuid.uuid4().hex}"
    log = logger.bind(
        question_id=payload.question_id,
        mode=payload.mode.value,
        language=payload.language.value,
        identified=x_user_identity is not None,
    )
    log.info("analyze_reflection_start")

    try:
        session = await orchestrator.submit(client_key, payload)
    except UnknownQuestionError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except InputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except FatalError as exc:
        log.error("analyze_reflection_fatal", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
        )

    if session.state is SessionState.SUPERSEDED:
        log.info("analyze_reflection_superseded", request_id=session.request_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    if session.state is SessionState.EXHAUSTED:
        failure = AnalysisFailure(
            error=str(session.error),
            message=session.error_message or "",
            request_id=session.request_id,
            attempts=session.attempt_count,
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=failure.model_dump(),
        )

    result = session.result

    if x_user_identity:
        background_tasks.add_task(
            reflection_store.record,
            ReflectionRecord.from_result(
                identity=x_user_identity,
                question_id=payload.question_id,
                user_text=payload.user_text,
                mode=payload.mode,
                language=payload.language,
                result=result,
                duration_ms=session.elapsed_ms,
            ),
        )

    log.info(
        "analyze_reflection_complete",
        request_id=session.request_id,
        attempts=session.attempt_count,
        sync_score=result.sync_score,
    )

    return AnalysisResponse(
        **result.model_dump(),
        request_id=session.request_id,
        attempts=session.attempt_count,
        status_messages=session.status_messages,
    )
