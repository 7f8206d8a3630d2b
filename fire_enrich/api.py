"""FastAPI application wiring for fire-enrich."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse

from fire_enrich import __version__
from fire_enrich.api_models import CancelResponse, EnrichRequest, HealthResponse
from fire_enrich.core.config import Settings, get_settings
from fire_enrich.services.enrichment_service import EnrichmentService
from fire_enrich.services.session import EnrichmentSession

logger = structlog.get_logger(__name__)

MAX_BODY_BYTES = 5 * 1024 * 1024


def sse_frame(payload: dict) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


async def stream_session(session: EnrichmentSession) -> AsyncIterator[str]:
    async for event in session.events():
        yield sse_frame(event.to_wire())


def build_app(
    settings: Optional[Settings] = None, service: Optional[EnrichmentService] = None
) -> FastAPI:
    """Create a configured FastAPI instance."""
    settings = settings or get_settings()
    service = service or EnrichmentService(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await service.aclose()

    app = FastAPI(title="fire-enrich", version=__version__, lifespan=lifespan)

    @app.middleware("http")
    async def limit_body_size(request: Request, call_next):
        length = request.headers.get("content-length")
        if length and length.isdigit() and int(length) > MAX_BODY_BYTES:
            logger.warning("Request body too large", path=request.url.path, content_length=int(length))
            return JSONResponse(status_code=413, content={"detail": "Request body too large"})
        return await call_next(request)

    # Dependency factories
    def get_service() -> EnrichmentService:
        return service

    @app.get("/health", response_model=HealthResponse, response_model_by_alias=True)
    def health(svc: EnrichmentService = Depends(get_service)) -> HealthResponse:
        status = svc.status()
        return HealthResponse(
            status="ok",
            version=__version__,
            providers=status["providers"],
            active_sessions=status["active_sessions"],
        )

    @app.post("/api/enrich")
    async def enrich(
        request: EnrichRequest, svc: EnrichmentService = Depends(get_service)
    ) -> StreamingResponse:
        max_fields = settings.enrichment.max_fields
        if not request.rows:
            raise HTTPException(status_code=400, detail="No rows provided")
        if not request.fields or len(request.fields) > max_fields:
            raise HTTPException(
                status_code=400, detail=f"Between 1 and {max_fields} fields are required"
            )
        if not request.email_column:
            raise HTTPException(status_code=400, detail="Email column is required")

        session = svc.start_session(
            request.rows,
            request.fields,
            request.email_column,
            name_column=request.name_column,
        )
        logger.info("Enrichment stream opened", session_id=session.session_id, rows=len(request.rows))
        return StreamingResponse(
            stream_session(session),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.delete("/api/enrich", response_model=CancelResponse, response_model_by_alias=True)
    def cancel(
        session_id: Optional[str] = Query(default=None, alias="sessionId"),
        svc: EnrichmentService = Depends(get_service),
    ) -> CancelResponse:
        if not session_id:
            raise HTTPException(status_code=400, detail="Session ID is required")
        if not svc.cancel(session_id):
            raise HTTPException(status_code=404, detail="Session not found")
        return CancelResponse(success=True, session_id=session_id)

    return app
