from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

import linkgraph.models  # noqa: F401 — register SQLModel tables

from linkgraph.config import get_settings
from linkgraph.db import create_db_and_tables
from linkgraph.errors import ErrorCode, LinkGraphError
from linkgraph.models.connection import ConnectionState
from linkgraph.routers import connections, health, suggestions
from linkgraph.services.cache import QueryCache
from linkgraph.services.connections import ConnectionService
from linkgraph.services.events import EventPublisher
from linkgraph.services.profiles import ProfileService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    create_db_and_tables()

    app.state.profile_service = ProfileService(settings)
    app.state.event_publisher = EventPublisher(settings)
    app.state.query_cache = QueryCache(ttl_seconds=settings.query_cache_ttl_seconds)
    if not app.state.event_publisher.enabled:
        logger.info("EVENT_WEBHOOK_URL not set; connection events will only be logged")

    # Periodically purge old rejected requests so the pair may connect again
    async def _purge_loop() -> None:
        from linkgraph.db import engine as db_engine

        while True:
            await asyncio.sleep(settings.purge_interval_hours * 3600)
            try:
                service = ConnectionService(
                    profile_service=app.state.profile_service,
                    event_publisher=app.state.event_publisher,
                    cache=app.state.query_cache,
                )
                with Session(db_engine) as session:
                    service.purge_stale(
                        [ConnectionState.REJECTED],
                        timedelta(days=settings.rejected_retention_days),
                        session,
                    )
            except Exception:
                logger.exception("Error purging stale connections")

    purge_task = None
    if settings.rejected_retention_days > 0:
        purge_task = asyncio.create_task(_purge_loop())

    yield

    if purge_task is not None:
        purge_task.cancel()
        try:
            await purge_task
        except asyncio.CancelledError:
            pass
    app.state.query_cache.clear()


def _error_response(status_code: int, code: ErrorCode | str, message: str) -> JSONResponse:
    code_value = code.value if isinstance(code, ErrorCode) else code
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code_value, "message": message}},
    )


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(LinkGraphError)
    async def linkgraph_error_handler(request: Request, exc: LinkGraphError) -> JSONResponse:
        logger.info(
            "%s on %s %s: %s",
            exc.error_code.value, request.method, request.url.path, exc.message,
        )
        return _error_response(exc.status_code, exc.error_code, exc.message)

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error(
            "Database error on %s %s", request.method, request.url.path, exc_info=exc
        )
        return _error_response(500, ErrorCode.INTERNAL_ERROR, "An internal error occurred")


app = FastAPI(
    title="LinkGraph",
    description="Connection lifecycle and people-you-may-know suggestions",
    version="0.1.0",
    lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        f"https://{settings.domain}",
        "http://localhost:3000",
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_register_exception_handlers(app)

app.include_router(health.router)
app.include_router(connections.router)
app.include_router(suggestions.router)
