from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from sqlmodel import Session, text

from linkgraph.db import get_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health(request: Request, session: Session = Depends(get_session)):
    db_status = "ok"
    try:
        session.exec(text("SELECT 1"))
    except Exception:
        logger.exception("Health check database query failed")
        db_status = "error"

    profile_status = "not_configured"
    profile_service = getattr(request.app.state, "profile_service", None)
    if profile_service is not None:
        profile_ok = await profile_service.check_health()
        profile_status = "ok" if profile_ok else "unreachable"

    events_status = "log_only"
    event_publisher = getattr(request.app.state, "event_publisher", None)
    if event_publisher is not None and event_publisher.enabled:
        events_status = "webhook"

    cache = getattr(request.app.state, "query_cache", None)
    cache_status = {"entries": len(cache), "hits": cache.hits, "misses": cache.misses} if cache is not None else "unavailable"

    return {
        "status": "ok" if db_status == "ok" else "degraded",
        "database": db_status,
        "profile_service": profile_status,
        "events": events_status,
        "query_cache": cache_status,
    }
