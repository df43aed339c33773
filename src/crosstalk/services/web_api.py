"""FastAPI application exposing the negotiation exercise to facilitator and participant screens."""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse

import structlog

from ..config import ExerciseConfig
from ..core.errors import (
    ConditionsChangedError,
    ExerciseError,
    InvalidInputError,
    PreconditionError,
    SessionNotFoundError,
    StoreError,
)
from ..core.roles import role_catalog
from ..core.schemas import AnswersSubmit, JoinRequest, MessageCreate, SessionCreate
from .exercise import ExerciseService

LOGGER = structlog.get_logger(__name__)


def _status_for(exc: ExerciseError) -> int:
    if isinstance(exc, SessionNotFoundError):
        return 404
    if isinstance(exc, InvalidInputError):
        return 400
    if isinstance(exc, (PreconditionError, ConditionsChangedError)):
        return 409
    if isinstance(exc, StoreError):
        return 503
    return 500


def _error_body(exc: ExerciseError) -> Dict[str, Any]:
    body: Dict[str, Any] = {"detail": str(exc), "error": type(exc).__name__, "retry": exc.retryable}
    count = getattr(exc, "count", None)
    if count is not None:
        body["count"] = count
    return body


def create_app(service: Optional[ExerciseService] = None, config: Optional[ExerciseConfig] = None) -> FastAPI:
    """Build the API around ``service`` (a fresh in-memory service by default)."""

    config = config or (service.config if service is not None else ExerciseConfig())
    service = service or ExerciseService(config=config)

    app = FastAPI(title="Crosstalk Web API", version="0.1.0")
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ExerciseError)
    async def _exercise_error(request: Request, exc: ExerciseError) -> JSONResponse:
        status = _status_for(exc)
        log = LOGGER.warning if status < 500 else LOGGER.error
        log("request.rejected", path=request.url.path, status=status, error=type(exc).__name__, detail=str(exc))
        return JSONResponse(status_code=status, content=_error_body(exc))

    # ------------------------------------------------------------------
    # Facilitator endpoints
    # ------------------------------------------------------------------

    @app.get("/api/roles")
    async def get_roles() -> Dict[str, Any]:
        return {"roles": role_catalog()}

    @app.post("/api/sessions", status_code=201)
    async def create_session(payload: SessionCreate) -> Dict[str, Any]:
        session = await service.create_session(timer_duration=payload.timer_duration)
        return {"sessionId": session.id, "gamePin": session.game_pin, "session": session.model_dump(mode="json")}

    @app.get("/api/sessions/{session_id}")
    async def get_session(session_id: str) -> Dict[str, Any]:
        view = await service.facilitator_view(session_id)
        return view.to_dict()

    @app.post("/api/sessions/{session_id}/assign-roles")
    async def assign_roles(session_id: str) -> Dict[str, Any]:
        rosters = await service.assign_roles(session_id)
        return {"teams": [roster.to_dict() for roster in rosters]}

    @app.post("/api/sessions/{session_id}/start")
    async def start_session(session_id: str) -> Dict[str, Any]:
        session = await service.start_session(session_id)
        return {"session": session.model_dump(mode="json")}

    @app.post("/api/sessions/{session_id}/end")
    async def end_session(session_id: str) -> Dict[str, Any]:
        session = await service.end_session(session_id)
        return {"session": session.model_dump(mode="json")}

    @app.get("/api/sessions/{session_id}/monitor")
    async def monitor(session_id: str) -> Dict[str, Any]:
        feeds = await service.monitor(session_id)
        return {"teams": [feed.to_dict() for feed in feeds]}

    @app.get("/api/sessions/{session_id}/debrief")
    async def debrief(session_id: str) -> Dict[str, Any]:
        return await service.debrief(session_id)

    @app.get("/api/sessions/{session_id}/debrief/export")
    async def export_debrief(session_id: str) -> Response:
        body = await service.export_debrief(session_id)
        return Response(
            content=body,
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="debrief-{session_id}.json"'},
        )

    @app.get("/api/sessions/{session_id}/teams/{team_id}/transcript")
    async def team_transcript(session_id: str, team_id: str, perspective: Optional[str] = None) -> Dict[str, Any]:
        feed = await service.team_transcript(session_id, team_id, perspective)
        return feed.to_dict()

    @app.get("/api/sessions/{session_id}/events")
    async def session_events(session_id: str) -> StreamingResponse:
        """Server-sent change notifications for one session."""

        await service.facilitator_view(session_id)
        subscription = service.store.subscribe(session_id)

        async def _stream() -> AsyncIterator[bytes]:
            try:
                async for event in subscription:
                    yield f"event: {event.kind.value}\ndata: {event.model_dump_json()}\n\n".encode("utf-8")
            finally:
                await subscription.close()

        return StreamingResponse(_stream(), media_type="text/event-stream")

    # ------------------------------------------------------------------
    # Participant endpoints
    # ------------------------------------------------------------------

    @app.post("/api/join", status_code=201)
    async def join(payload: JoinRequest) -> Dict[str, Any]:
        participant = await service.join_session(payload.pin, payload.name)
        return {
            "participantId": participant.id,
            "sessionId": participant.session_id,
            "participant": participant.model_dump(mode="json"),
        }

    @app.get("/api/participants/{participant_id}")
    async def participant_view(participant_id: str) -> Dict[str, Any]:
        view = await service.participant_view(participant_id)
        return view.to_dict()

    @app.post("/api/participants/{participant_id}/messages", status_code=201)
    async def send_message(participant_id: str, payload: MessageCreate) -> Dict[str, Any]:
        message = await service.send_message(participant_id, payload.content, payload.is_code_switched)
        return {"message": message.model_dump(mode="json")}

    @app.put("/api/participants/{participant_id}/answers")
    async def submit_answers(participant_id: str, payload: AnswersSubmit) -> Dict[str, Any]:
        answers = await service.submit_answers(participant_id, payload.answers)
        return {"answers": [answer.model_dump(mode="json") for answer in answers]}

    return app


app = create_app()
