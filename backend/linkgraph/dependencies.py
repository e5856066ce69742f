"""FastAPI dependency injection for caller identity and services."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.engine import Engine

from linkgraph.auth import decode_access_token
from linkgraph.config import get_settings
from linkgraph.db import get_engine
from linkgraph.services.cache import QueryCache
from linkgraph.services.connections import ConnectionService
from linkgraph.services.events import EventPublisher
from linkgraph.services.profiles import ProfileService
from linkgraph.services.strategies import (
    MutualConnectionStrategy,
    SameIndustryStrategy,
    SameLocationStrategy,
)
from linkgraph.services.suggestions import SuggestionEngine

_bearer_scheme = HTTPBearer(auto_error=True)


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
) -> str:
    """Extract and validate the JWT access token from the Authorization header.

    Returns the caller's user id (sub claim).
    Raises HTTPException 401 if the token is missing, expired, or invalid.
    """
    payload = decode_access_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    return str(user_id)


def get_profile_service(request: Request) -> ProfileService:
    """Inject the ProfileService initialized at startup."""
    svc = getattr(request.app.state, "profile_service", None)
    if svc is None:
        raise HTTPException(status_code=503, detail="Profile service unavailable")
    return svc


def get_event_publisher(request: Request) -> EventPublisher:
    """Inject the EventPublisher initialized at startup."""
    svc = getattr(request.app.state, "event_publisher", None)
    if svc is None:
        raise HTTPException(status_code=503, detail="Event publisher unavailable")
    return svc


def get_query_cache(request: Request) -> QueryCache:
    """Inject the process-wide QueryCache."""
    cache = getattr(request.app.state, "query_cache", None)
    if cache is None:
        raise HTTPException(status_code=503, detail="Query cache unavailable")
    return cache


def get_connection_service(
    profile_service: ProfileService = Depends(get_profile_service),
    event_publisher: EventPublisher = Depends(get_event_publisher),
    cache: QueryCache = Depends(get_query_cache),
) -> ConnectionService:
    """Construct ConnectionService from its dependencies."""
    return ConnectionService(
        profile_service=profile_service,
        event_publisher=event_publisher,
        cache=cache,
    )


def get_suggestion_engine(
    db_engine: Engine = Depends(get_engine),
    profile_service: ProfileService = Depends(get_profile_service),
) -> SuggestionEngine:
    """Construct SuggestionEngine with the configured strategy order and weights."""
    settings = get_settings()
    strategies = [
        MutualConnectionStrategy(db_engine, weight=settings.mutual_strategy_weight),
        SameIndustryStrategy(db_engine, profile_service, weight=settings.industry_strategy_weight),
        SameLocationStrategy(db_engine, profile_service, weight=settings.location_strategy_weight),
    ]
    return SuggestionEngine(
        strategies,
        strategy_timeout=settings.strategy_timeout_seconds,
        profile_service=profile_service,
    )
