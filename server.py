# server.py
"""HTTP adapter for the mindscreen assessment core.

The lifespan builds one AppContext, switches persistence to write-behind
and starts the engine's auto-save on the server's event loop. Endpoints
only translate between JSON and the engine, analyzer and data manager
surfaces.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from mindscreen.bootstrap import AppContext, create_app_context
from mindscreen.config import get_settings
from mindscreen.domain.entities import AssessmentSession, AssessmentType, Question
from mindscreen.domain.enums import SessionErrorCode
from mindscreen.domain.exceptions import SessionError
from mindscreen.infrastructure.logging import get_logger, setup_logging
from mindscreen.services.catalog_codec import encode_question

logger = get_logger(__name__)

_SESSION_ERROR_STATUS = {
    SessionErrorCode.SESSION_NOT_FOUND: 404,
    SessionErrorCode.ASSESSMENT_TYPE_NOT_FOUND: 404,
    SessionErrorCode.SESSION_ALREADY_EXISTS: 409,
    SessionErrorCode.SESSION_ALREADY_COMPLETED: 409,
    SessionErrorCode.ENVIRONMENT_NOT_SUPPORTED: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle resources."""
    settings = get_settings()
    setup_logging(settings.logging)

    context = create_app_context(settings)
    try:
        context.persistence.start_write_behind()
        context.engine.start()
        app.state.context = context
        yield
    finally:
        context.close()
        await context.persistence.stop_write_behind()
        app.state.context = None


app = FastAPI(
    title="mindscreen",
    description="Mental-health self-assessment sessions and results",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().api.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Dependencies ---
def get_context(request: Request) -> AppContext:
    """Dependency to get the application context."""
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=503, detail="Application context not initialized")
    return context


@app.exception_handler(SessionError)
async def session_error_handler(_: Request, exc: SessionError) -> JSONResponse:
    """Map engine errors onto HTTP status codes."""
    return JSONResponse(
        status_code=_SESSION_ERROR_STATUS.get(exc.code, 400),
        content={
            "detail": str(exc),
            "code": exc.code.value,
            "sessionId": exc.session_id,
            "assessmentTypeId": exc.assessment_type_id,
        },
    )


# --- Request Models ---
class StartSessionRequest(BaseModel):
    """Request body for starting an assessment session."""

    model_config = ConfigDict(populate_by_name=True)

    assessment_type_id: str = Field(alias="assessmentTypeId", min_length=1)
    language: str | None = Field(default=None, description="Language code, e.g. 'zh'")
    cultural_context: str | None = Field(default=None, alias="culturalContext")


class SubmitAnswerRequest(BaseModel):
    """Answer to the session's current question."""

    value: Any = Field(
        default=None,
        description="Number, option id, free text, or a list for multiple choice",
    )


# --- Serialization ---
def _question_payload(question: Question | None) -> dict[str, Any] | None:
    return encode_question(question) if question is not None else None


def _assessment_type_payload(assessment_type: AssessmentType) -> dict[str, Any]:
    return {
        "id": assessment_type.id,
        "name": assessment_type.name,
        "description": assessment_type.description,
        "category": assessment_type.category.value,
        "durationMinutes": assessment_type.duration_minutes,
        "instructions": assessment_type.instructions,
        "disclaimer": assessment_type.disclaimer,
        "version": assessment_type.version,
        "questionCount": len(assessment_type.questions),
    }


def _session_payload(context: AppContext, session: AssessmentSession) -> dict[str, Any]:
    payload = session.to_record()
    payload["currentQuestion"] = _question_payload(
        context.engine.get_current_question(session.id)
    )
    return payload


def _require_session(context: AppContext, session_id: str) -> AssessmentSession:
    session = context.engine.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return session


# --- Endpoints ---
@app.get("/health")
async def health_check(
    context: Annotated[AppContext, Depends(get_context)],
) -> dict[str, Any]:
    """Health check endpoint."""
    report = context.engine.perform_health_check()
    payload = report.to_dict()
    payload["catalogVersion"] = context.question_bank.catalog_version
    return payload


@app.get("/assessments")
async def list_assessments(
    context: Annotated[AppContext, Depends(get_context)],
    language: str | None = None,
) -> list[dict[str, Any]]:
    """List the catalog, localized when a language is given."""
    bank = context.question_bank
    payloads = []
    for assessment_type in bank.get_assessment_types():
        presented = bank.get_localized_assessment_type(assessment_type.id, language)
        payload = _assessment_type_payload(presented or assessment_type)
        payload["languages"] = bank.supported_languages(assessment_type.id)
        payloads.append(payload)
    return payloads


@app.get("/assessments/{type_id}")
async def get_assessment(
    type_id: str,
    context: Annotated[AppContext, Depends(get_context)],
    language: str | None = None,
    cultural_context: Annotated[str | None, Query(alias="culturalContext")] = None,
) -> dict[str, Any]:
    """Presented assessment type with its questions."""
    bank = context.question_bank
    presented = bank.get_presented_assessment_type(type_id, language, cultural_context)
    if presented is None:
        raise HTTPException(status_code=404, detail=f"Assessment type '{type_id}' not found")
    payload = _assessment_type_payload(presented)
    payload["questions"] = [encode_question(q) for q in presented.questions]
    payload["languages"] = bank.supported_languages(type_id)
    payload["culturalContexts"] = bank.supported_cultural_contexts(type_id)
    return payload


@app.post("/sessions", status_code=201)
async def start_session(
    body: StartSessionRequest,
    context: Annotated[AppContext, Depends(get_context)],
) -> dict[str, Any]:
    """Start an assessment session."""
    session = context.engine.start_assessment(
        body.assessment_type_id, body.language, body.cultural_context
    )
    return _session_payload(context, session)


@app.get("/sessions/{session_id}")
async def get_session(
    session_id: str,
    context: Annotated[AppContext, Depends(get_context)],
) -> dict[str, Any]:
    return _session_payload(context, _require_session(context, session_id))


@app.get("/sessions/{session_id}/question")
async def get_current_question(
    session_id: str,
    context: Annotated[AppContext, Depends(get_context)],
) -> dict[str, Any]:
    """Current question, null once every question is answered."""
    _require_session(context, session_id)
    return {"question": _question_payload(context.engine.get_current_question(session_id))}


@app.post("/sessions/{session_id}/answers")
async def submit_answer(
    session_id: str,
    body: SubmitAnswerRequest,
    context: Annotated[AppContext, Depends(get_context)],
) -> dict[str, Any]:
    """Answer the current question.

    Rejected answers return 422 with the validation payload; answers to
    paused or finished sessions return 409.
    """
    outcome = context.engine.submit_answer(session_id, body.value)
    if not outcome.success:
        if outcome.validation is not None:
            raise HTTPException(status_code=422, detail=outcome.validation.to_dict())
        raise HTTPException(status_code=409, detail="Session is not accepting answers")
    return {
        "success": True,
        "completed": outcome.completed,
        "nextQuestion": _question_payload(outcome.next_question),
        "result": outcome.result.to_record() if outcome.result else None,
    }


@app.post("/sessions/{session_id}/pause")
async def pause_session(
    session_id: str,
    context: Annotated[AppContext, Depends(get_context)],
) -> dict[str, Any]:
    session = _require_session(context, session_id)
    if not context.engine.pause_assessment(session_id):
        raise HTTPException(status_code=409, detail=f"Session is {session.status.value}")
    return _session_payload(context, session)


@app.post("/sessions/{session_id}/resume")
async def resume_session(
    session_id: str,
    context: Annotated[AppContext, Depends(get_context)],
) -> dict[str, Any]:
    session = context.engine.resume_assessment(session_id)
    return _session_payload(context, session)


@app.post("/sessions/{session_id}/abandon")
async def abandon_session(
    session_id: str,
    context: Annotated[AppContext, Depends(get_context)],
) -> dict[str, Any]:
    session = _require_session(context, session_id)
    if not context.engine.abandon_session(session_id):
        raise HTTPException(status_code=409, detail=f"Session is {session.status.value}")
    return _session_payload(context, session)


@app.delete("/sessions/{session_id}", status_code=204)
async def delete_session(
    session_id: str,
    context: Annotated[AppContext, Depends(get_context)],
) -> Response:
    if not context.engine.delete_session(session_id):
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return Response(status_code=204)


@app.get("/sessions/{session_id}/progress")
async def get_progress(
    session_id: str,
    context: Annotated[AppContext, Depends(get_context)],
) -> dict[str, Any]:
    progress = context.engine.get_progress(session_id)
    if progress is None:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return {
        "current": progress.current,
        "total": progress.total,
        "percentage": progress.percentage,
        "timeSpent": progress.time_spent,
        "estimatedTimeRemaining": progress.estimated_time_remaining,
    }


@app.get("/results/{result_id}")
async def get_result(
    result_id: str,
    context: Annotated[AppContext, Depends(get_context)],
) -> dict[str, Any]:
    result = context.analyzer.get_result(result_id)
    if result is None:
        raise HTTPException(status_code=404, detail=f"Result '{result_id}' not found")
    return result.to_record()


@app.get("/results/{result_id}/report")
async def get_report(
    result_id: str,
    context: Annotated[AppContext, Depends(get_context)],
) -> dict[str, Any]:
    report = context.analyzer.generate_report(result_id)
    if report is None:
        raise HTTPException(status_code=404, detail=f"Result '{result_id}' not found")
    return report.to_record()


@app.get("/data/export")
async def export_data(
    context: Annotated[AppContext, Depends(get_context)],
) -> Response:
    """Every session and result as one JSON document."""
    return Response(
        content=context.data_manager.export_all_data(), media_type="application/json"
    )


@app.post("/data/import")
async def import_data(
    request: Request,
    context: Annotated[AppContext, Depends(get_context)],
) -> dict[str, Any]:
    """Import a document from ``/data/export``; nothing is stored on any error."""
    payload = (await request.body()).decode("utf-8", errors="replace")
    report = context.data_manager.import_data(payload)
    if not report.success:
        raise HTTPException(status_code=400, detail=report.to_dict())
    return report.to_dict()


@app.post("/data/cleanup")
async def cleanup_data(
    context: Annotated[AppContext, Depends(get_context)],
    retention_days: Annotated[int | None, Query(alias="retentionDays", ge=1)] = None,
) -> dict[str, Any]:
    return context.data_manager.cleanup_old_data(retention_days).to_dict()


@app.get("/data/integrity")
async def check_integrity(
    context: Annotated[AppContext, Depends(get_context)],
) -> dict[str, Any]:
    return context.data_manager.validate_integrity().to_dict()


@app.post("/data/integrity/repair")
async def repair_integrity(
    context: Annotated[AppContext, Depends(get_context)],
    drop_orphaned_results: Annotated[bool, Query(alias="dropOrphanedResults")] = False,
) -> dict[str, Any]:
    return context.data_manager.repair_integrity(
        drop_orphaned_results=drop_orphaned_results
    ).to_dict()


if __name__ == "__main__":
    import uvicorn

    api_settings = get_settings().api
    uvicorn.run(
        "server:app",
        host=api_settings.host,
        port=api_settings.port,
        reload=api_settings.reload,
    )
