"""
Main FastAPI application.
"""

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from urllib.parse import quote

from fastapi import FastAPI, Header, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from sqlalchemy.orm import sessionmaker

from deckexport import __version__
from deckexport.errors import DeckExportError, InternalError, NotFoundError, NotReadyError
from deckexport.renderers import RENDERERS
from exportserver.config import Settings, get_settings
from exportserver.db import ExportJobStatus, create_db_engine, create_session_factory, init_db
from exportserver.decks import DeckRecord, DeckRepository
from exportserver.export_queue import ExportQueue, build_export_message
from exportserver.jobs import ExportJob, ExportJobStore
from exportserver.logging_config import configure_logging
from exportserver.storage import ArtifactStorage, LocalArtifactStorage, artifact_key

logger = logging.getLogger(__name__)


# --- Request/Response Models ---

class ExportRequest(BaseModel):
    """Request to export a deck."""
    format: Literal["pdf", "pptx"]


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat()


def job_to_dict(job: ExportJob) -> Dict[str, Any]:
    """Status payload; result and error fields only appear when they apply."""
    body: Dict[str, Any] = {
        "exportJobId": job.id,
        "deckId": job.deck_id,
        "status": job.status.value,
        "format": job.format,
        "createdAt": _iso(job.created_at),
        "updatedAt": _iso(job.updated_at),
    }
    if job.status == ExportJobStatus.COMPLETED:
        body["fileUrl"] = job.result_url
        body["completedAt"] = _iso(job.completed_at)
    if job.status == ExportJobStatus.FAILED:
        body["error"] = {"code": job.error_code, "message": job.error_message}
    if job.deck_version is not None:
        body["deckVersion"] = _iso(job.deck_version)
    return body


def _validation_details(exc: RequestValidationError) -> Dict[str, List[str]]:
    details: Dict[str, List[str]] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        field = ".".join(loc) or "body"
        details.setdefault(field, []).append(error.get("msg", "Invalid value"))
    return details


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    storage: Optional[ArtifactStorage] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Configuration (default: from the environment)
        session_factory: Database sessions (default: from ``settings.database_url``)
        storage: Artifact store (default: local files under ``settings.storage_dir``)
    """
    settings = settings or get_settings()
    engine = None
    if session_factory is None:
        engine = create_db_engine(settings.database_url)
        session_factory = create_session_factory(engine)
    storage = storage or LocalArtifactStorage(settings.storage_dir, settings.public_base_url)

    # Lifespan context manager
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        configure_logging(settings.log_level)
        init_db(session_factory.kw["bind"])
        if isinstance(storage, LocalArtifactStorage):
            storage.root.mkdir(parents=True, exist_ok=True)
        yield
        # Shutdown
        if engine is not None:
            engine.dispose()

    app = FastAPI(
        title="DeckExport API",
        description="Export slide decks to PPTX and PDF",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.jobs = ExportJobStore(session_factory)
    app.state.queue = ExportQueue(session_factory, visibility_timeout=settings.visibility_timeout_seconds)
    app.state.decks = DeckRepository(session_factory)
    app.state.storage = storage

    if isinstance(storage, LocalArtifactStorage) and settings.public_base_url.startswith("/"):
        app.mount(
            settings.public_base_url,
            StaticFiles(directory=str(storage.root), check_dir=False),
            name="files",
        )

    # --- Error handlers ---

    @app.exception_handler(DeckExportError)
    async def deck_export_error_handler(request: Request, exc: DeckExportError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        error = {
            "code": "VALIDATION_ERROR",
            "message": "Invalid request",
            "details": _validation_details(exc),
        }
        return JSONResponse(status_code=400, content={"error": error})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=InternalError().to_dict())

    def _require_deck(deck_id: str, workspace_id: Optional[str]) -> DeckRecord:
        record = app.state.decks.get_deck_by_id(deck_id, workspace_id or settings.default_workspace_id)
        if record is None:
            raise NotFoundError("Deck not found")
        return record

    def _require_job(deck_id: str, job_id: str) -> ExportJob:
        job = app.state.jobs.get(job_id)
        if job is None or job.deck_id != deck_id:
            raise NotFoundError("Export job not found")
        return job

    # --- API Endpoints ---

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"status": "ok", "message": "DeckExport API is running"}

    @app.post("/decks/{deck_id}/export")
    def request_export(
        deck_id: str,
        body: ExportRequest,
        x_workspace_id: Optional[str] = Header(default=None),
    ):
        """
        Queue an export of a deck.

        Returns the new job id immediately; rendering happens in a worker.
        """
        try:
            record = _require_deck(deck_id, x_workspace_id)
            # Build the message before writing anything, so a bad deck row
            # cannot leave a job behind without its message
            job_id = str(uuid.uuid4())
            message = build_export_message(record, job_id, body.format, settings.default_theme_id)
            job = app.state.jobs.create(deck_id, body.format, job_id=job_id)
            app.state.queue.add_export_job(message)
        except DeckExportError:
            raise
        except Exception as e:
            logger.exception("Failed to queue export for deck %s", deck_id)
            raise InternalError() from e

        return {"exportJobId": job.id, "status": job.status.value}

    @app.get("/decks/{deck_id}/export/{job_id}")
    def get_export_status(
        deck_id: str,
        job_id: str,
        x_workspace_id: Optional[str] = Header(default=None),
    ):
        """Get export job status."""
        _require_deck(deck_id, x_workspace_id)
        return job_to_dict(_require_job(deck_id, job_id))

    @app.get("/decks/{deck_id}/exports")
    def list_exports(
        deck_id: str,
        format: Optional[Literal["pdf", "pptx"]] = Query(default=None),
        limit: int = Query(default=50, ge=1, le=200),
        x_workspace_id: Optional[str] = Header(default=None),
    ):
        """List a deck's exports, newest first."""
        _require_deck(deck_id, x_workspace_id)
        jobs = app.state.jobs.list_for_deck(deck_id, format=format, limit=limit)
        return {"exports": [job_to_dict(job) for job in jobs]}

    @app.get("/decks/{deck_id}/export/{job_id}/download")
    def download_export(
        deck_id: str,
        job_id: str,
        x_workspace_id: Optional[str] = Header(default=None),
    ):
        """Download the exported file."""
        record = _require_deck(deck_id, x_workspace_id)
        job = _require_job(deck_id, job_id)

        if job.status != ExportJobStatus.COMPLETED:
            raise NotReadyError(f"Export is {job.status.value}")

        renderer = RENDERERS[job.format]
        try:
            data = app.state.storage.get(artifact_key(deck_id, job.id, renderer.extension))
        except FileNotFoundError:
            raise NotFoundError("Export file not found") from None

        filename = f"{record.title or 'deck'}.{renderer.extension}"
        return Response(
            content=data,
            media_type=renderer.content_type,
            headers={"Content-Disposition": f"attachment; filename*=utf-8''{quote(filename)}"},
        )

    # --- WebSocket for real-time status ---

    @app.websocket("/ws/exports/{job_id}")
    async def export_status_websocket(
        websocket: WebSocket,
        job_id: str,
        x_workspace_id: Optional[str] = Header(default=None),
    ):
        """
        Push the job's status whenever it changes; close once it is final.

        Only jobs of decks in the caller's workspace can be followed.
        Answers ``ping`` with ``pong``.
        """
        await websocket.accept()
        jobs: ExportJobStore = app.state.jobs
        last_sent = None

        job = await asyncio.to_thread(jobs.get, job_id)
        if job is not None:
            try:
                await asyncio.to_thread(_require_deck, job.deck_id, x_workspace_id)
            except NotFoundError:
                job = None
        if job is None:
            await websocket.send_text(json.dumps(NotFoundError("Export job not found").to_dict()))
            await websocket.close(code=4404)
            return

        async def answer_pings():
            while True:
                data = await websocket.receive_text()
                if data == "ping":
                    await websocket.send_text("pong")

        receiver = asyncio.create_task(answer_pings())
        try:
            while True:
                job = await asyncio.to_thread(jobs.get, job_id)
                if job is None:
                    await websocket.send_text(json.dumps(NotFoundError("Export job not found").to_dict()))
                    await websocket.close(code=4404)
                    return

                frame = job_to_dict(job)
                if frame != last_sent:
                    await websocket.send_text(json.dumps(frame))
                    last_sent = frame
                if job.is_terminal:
                    await websocket.close()
                    return

                done, _ = await asyncio.wait({receiver}, timeout=settings.poll_interval_seconds)
                if receiver in done:
                    # Raises WebSocketDisconnect once the client goes away
                    receiver.result()

        except WebSocketDisconnect:
            logger.debug("Status subscriber for %s disconnected", job_id)
        finally:
            receiver.cancel()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    configure_logging(_settings.log_level)
    uvicorn.run(app, host="0.0.0.0", port=8000)
