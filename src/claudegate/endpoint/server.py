"""FastAPI HTTP server for claudegate.

Routes::

    POST   /chat/stream                 <- ChatRequest, -> text/event-stream
    GET    /status/concurrency          -> {"active", "max", "available", "queued"}
    GET    /status/queue                -> {"count", "tasks": [{"timestamp", "waitingMs"}]}
    GET    /session/list                -> sessions of the working directory
    GET    /session/check/{sessionid}   -> {"exists", "session"}
    DELETE /session/delete/{sessionid}  -> {"success", "message", "sessionId"}
    GET    /health                      -> {"status": "ok", "service": "claudegate", ...}
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from claudegate import __version__
from claudegate.claude.process import ProcessLaunchError
from claudegate.concurrency.limiter import ConcurrencyError, ConcurrencyLimiter
from claudegate.config.settings import Settings, env_summary
from claudegate.domain.models import ChatRequest, ConcurrencyStatus, QueueInfo
from claudegate.endpoint.chat import ChatHandler, Launcher
from claudegate.sessions.models import (
    SessionCheckResponse,
    SessionDeleteResponse,
    SessionListResponse,
)
from claudegate.sessions.store import SessionStore, SessionStoreError
from claudegate.utils.git import GitError

logger = logging.getLogger(__name__)

SERVICE_NAME = "claudegate"


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str = SERVICE_NAME
    version: str = __version__
    timestamp: str
    uptime: float


def _error(status_code: int, error: str, message: str, **extra: object) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, **extra},
    )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Settings | None = None,
    limiter: ConcurrencyLimiter | None = None,
    launcher: Launcher | None = None,
    session_store: SessionStore | None = None,
) -> FastAPI:
    """Create the claudegate application.

    Args:
        settings: Configuration; defaults to ``Settings()``.
        limiter: Limiter shared by all chat requests (for testing or
            embedding); built from ``settings.concurrency`` if omitted.
        launcher: Replacement for :func:`spawn_claude_process` (for testing).
        session_store: Replacement session store (for testing).
    """
    settings = settings or Settings()
    if limiter is None:
        limiter = ConcurrencyLimiter(
            max_concurrent=settings.concurrency.max_concurrent,
            default_timeout=settings.concurrency.queue_timeout,
        )
    handler = (
        ChatHandler(limiter, settings, launcher)
        if launcher is not None
        else ChatHandler(limiter, settings)
    )
    store = session_store or SessionStore(settings.claude.claude_home)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.started_at = time.monotonic()
        logger.info("claudegate %s started", __version__)
        for key, value in env_summary(settings).items():
            logger.info("  %s: %s", key, value)
        yield
        app.state.limiter.clear()
        logger.info("claudegate stopped")

    app = FastAPI(
        title="claudegate",
        description="HTTP/SSE gateway for the claude CLI with concurrency control",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.limiter = limiter
    app.state.chat_handler = handler
    app.state.session_store = store
    app.state.started_at = time.monotonic()

    # -- error handlers ----------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={
                "error": "Request validation failed",
                "details": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(ConcurrencyError)
    async def admission_error(request: Request, exc: ConcurrencyError) -> JSONResponse:
        logger.warning("Request not admitted: %s", exc)
        return _error(503, "Service unavailable", str(exc))

    @app.exception_handler(ProcessLaunchError)
    async def launch_error(request: Request, exc: ProcessLaunchError) -> JSONResponse:
        logger.error("Failed to launch claude: %s", exc)
        return _error(500, "Failed to start claude CLI", str(exc))

    @app.exception_handler(GitError)
    async def git_error(request: Request, exc: GitError) -> JSONResponse:
        logger.error("Git operation failed: %s %s", exc, exc.stderr)
        return _error(500, "Git operation failed", str(exc), stderr=exc.stderr)

    @app.exception_handler(SessionStoreError)
    async def session_error(request: Request, exc: SessionStoreError) -> JSONResponse:
        logger.error("Session store error: %s", exc)
        return _error(500, "Session store error", str(exc))

    @app.exception_handler(404)
    async def not_found(request: Request, exc: Exception) -> JSONResponse:
        return _error(404, "Not found", f"Route {request.method} {request.url.path} does not exist")

    # -- chat --------------------------------------------------------------

    @app.post("/chat/stream")
    async def chat_stream(body: ChatRequest, request: Request) -> StreamingResponse:
        return await app.state.chat_handler.open_stream(body, request)

    # -- status ------------------------------------------------------------

    @app.get("/health")
    async def health_check() -> HealthResponse:
        return HealthResponse(
            timestamp=datetime.now(timezone.utc).isoformat(),
            uptime=round(time.monotonic() - app.state.started_at, 3),
        )

    @app.get("/status/concurrency")
    async def concurrency_status() -> ConcurrencyStatus:
        return app.state.limiter.get_status()

    @app.get("/status/queue")
    async def queue_status() -> QueueInfo:
        tasks = app.state.limiter.get_queue_info()
        return QueueInfo(count=len(tasks), tasks=tasks)

    # -- sessions ----------------------------------------------------------
    # Blocking file I/O: plain functions run in the threadpool

    @app.get("/session/list")
    def list_sessions() -> SessionListResponse:
        s: SessionStore = app.state.session_store
        return s.list_sessions(settings.claude.resolve_working_dir())

    @app.get("/session/check/{sessionid}")
    def check_session(sessionid: str) -> SessionCheckResponse:
        s: SessionStore = app.state.session_store
        return s.check_session(settings.claude.resolve_working_dir(), sessionid)

    @app.delete("/session/delete/{sessionid}")
    def delete_session(sessionid: str) -> SessionDeleteResponse:
        s: SessionStore = app.state.session_store
        return s.delete_session(settings.claude.resolve_working_dir(), sessionid)

    return app


def main() -> None:
    """Entry point for running the server standalone."""
    settings = Settings()
    app = create_app(settings)
    uvicorn.run(app, host=settings.server.host, port=settings.server.port)


if __name__ == "__main__":
    main()
