"""
FastAPI server: submit studies, poll their status, manage sessions.

Run:
    chorus-server
Or:
    python -m uvicorn chorus.backend.server:app --port 8000
"""
import logging
import os
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chorus.config import Config
from chorus.errors import (
    CorruptSessionError,
    DuplicateInFlightError,
    SessionExistsError,
    SessionNotFoundError,
    StageError,
    ValidationError,
)
from chorus.jobs.gateway import validate_request
from chorus.jobs.services import Services
from chorus.jobs.status import get_study_status
from chorus.jobs.types import JobRequest
from chorus.jobs.worker import WorkerPool
from chorus.logging_config import setup_logging
from chorus.orchestrator import format_json, run_turn
from chorus.sessions.context import build_session_context
from chorus.sessions.schema import CamelModel

logger = logging.getLogger(__name__)

router = APIRouter()


class RenameRequest(CamelModel):
    new_name: str


def _services(request: Request) -> Services:
    return request.app.state.services


def _holder() -> str:
    return f"api-{os.getpid()}-{uuid.uuid4().hex[:8]}"


# ─────────────────────────────────────────────────────────────
# Studies (asynchronous)
# ─────────────────────────────────────────────────────────────

@router.post("/studies", status_code=202)
def submit_study(body: JobRequest, request: Request):
    """
    Queue a study and return immediately.

    Poll the returned checkUrl for the result.
    """
    ack = _services(request).gateway.submit(body)
    return ack.to_dict()


@router.get("/studies/status")
def study_status(
    request: Request,
    session_name: str = Query(..., alias="sessionName"),
    turn_number: int = Query(..., alias="turnNumber", ge=1),
):
    """Status of one turn, derived from the session file alone."""
    view = get_study_status(_services(request).store, session_name, turn_number)
    return view.to_dict()


# ─────────────────────────────────────────────────────────────
# Ask (synchronous, nothing persisted)
# ─────────────────────────────────────────────────────────────

@router.post("/ask")
def ask(body: JobRequest, request: Request):
    """
    Run the pipeline inline and return the structured result.

    With sessionName, that session's history is used as context but the
    new turn is not saved.
    """
    validate_request(body)
    context = None
    if body.session_name:
        session = _services(request).store.load(body.session_name)
        context = build_session_context(session) if session.turns else None
    outcome = run_turn(body.to_options(), context)
    return format_json(outcome)


# ─────────────────────────────────────────────────────────────
# Sessions
# ─────────────────────────────────────────────────────────────

@router.get("/sessions")
def list_sessions(request: Request):
    sessions = _services(request).store.list_sessions()
    return {"sessions": [s.to_dict() for s in sessions], "total": len(sessions)}


@router.get("/sessions/{name}")
def get_session(name: str, request: Request):
    return _services(request).store.load(name).to_dict()


@router.post("/sessions/{name}/rename")
def rename_session(name: str, body: RenameRequest, request: Request):
    services = _services(request)
    holder = _holder()
    with services.registry.hold(name, holder), services.registry.hold(body.new_name, holder):
        session = services.store.rename(name, body.new_name)
    return {"oldName": name, "newName": session.session_name}


@router.delete("/sessions/{name}")
def delete_session(name: str, request: Request):
    services = _services(request)
    with services.registry.hold(name, _holder()):
        services.store.delete(name)
    return {"deleted": name}


# ─────────────────────────────────────────────────────────────
# Health Check
# ─────────────────────────────────────────────────────────────

@router.get("/health")
def health(request: Request):
    """Health check endpoint."""
    services = _services(request)
    pool = request.app.state.pool
    return {
        "status": "ok",
        "service": "chorus",
        "workers": pool.size if pool else 0,
        "pendingJobs": services.queue.pending_count(),
    }


@router.get("/")
def root():
    """Root endpoint."""
    return {
        "service": "Chorus Research Server",
        "version": "1.0.0",
        "endpoints": {
            "submit": "POST /studies - Queue a study (returns 202 + checkUrl)",
            "status": "GET /studies/status?sessionName=&turnNumber= - Poll a turn",
            "ask": "POST /ask - Run synchronously, nothing saved",
            "sessions": "GET /sessions - List sessions",
            "session": "GET /sessions/{name} - Full session record",
            "rename": "POST /sessions/{name}/rename - Rename a session",
            "delete": "DELETE /sessions/{name} - Delete a session",
            "health": "GET /health - Health check",
        },
    }


# ─────────────────────────────────────────────────────────────
# Error mapping
# ─────────────────────────────────────────────────────────────

ERROR_STATUS = [
    (ValidationError, 400),
    (SessionNotFoundError, 404),
    (DuplicateInFlightError, 409),
    (SessionExistsError, 409),
    (StageError, 502),
    (CorruptSessionError, 500),
]


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    return handler


# ─────────────────────────────────────────────────────────────
# App factory
# ─────────────────────────────────────────────────────────────

def create_app(services: Optional[Services] = None, start_workers: Optional[bool] = None) -> FastAPI:
    """
    Build the API app.

    Args:
        services: Storage wiring (defaults to Config.DATA_DIR)
        start_workers: Run the worker pool inside the server process
            (defaults to Config.START_WORKERS)
    """
    services = services or Services.from_config()
    start_workers = Config.START_WORKERS if start_workers is None else start_workers

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        pool = None
        if start_workers:
            pool = WorkerPool(services)
            services.gateway.notify = pool.notify
            pool.start()
        app.state.pool = pool
        yield
        if pool:
            pool.stop(timeout=5)

    app = FastAPI(
        title="Chorus Research Server",
        description="Multi-perspective research studies with submit/poll execution",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.pool = None

    # CORS for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for exc_type, status_code in ERROR_STATUS:
        app.add_exception_handler(exc_type, _error_handler(status_code))

    app.include_router(router)
    return app


app = create_app()


def main():
    import uvicorn

    setup_logging(Config.DEBUG)
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
