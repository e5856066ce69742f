from __future__ import annotations

import os
from unittest.mock import AsyncMock, MagicMock

# Set test environment BEFORE importing linkgraph modules.
# linkgraph.db creates the engine at module level using get_settings().db_url,
# so we must override the env vars before any linkgraph imports.
os.environ.setdefault("DB_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-for-integration-tests-only")
os.environ.setdefault("EVENT_WEBHOOK_URL", "")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from linkgraph.db import get_engine, get_session
from linkgraph.dependencies import (
    get_current_user_id,
    get_event_publisher,
    get_profile_service,
)
from linkgraph.main import app as fastapi_app
from linkgraph.models.connection import Connection, ConnectionState
from linkgraph.models.profile import UserProfile
from linkgraph.services.cache import QueryCache
from linkgraph.services.connections import ConnectionService
from linkgraph.services.events import EventPublisher
from linkgraph.services.profiles import ProfileService


# ── Database fixtures ─────────────────────────────────────────────────


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite engine for testing.

    Uses StaticPool so every connection shares the same in-memory database.
    Recreates tables per test for full isolation.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine):
    """Provide a fresh session per test."""
    with Session(engine) as session:
        yield session


# ── Collaborator fixtures ─────────────────────────────────────────────


@pytest.fixture(name="profiles")
def profiles_fixture() -> dict[str, UserProfile]:
    """Profile store contents, keyed by user id. Tests may add or edit entries."""
    return {
        "alice": UserProfile(
            id="alice", name="Alice", industry="Software", location="Berlin",
            skills=["python", "sql", "kubernetes"],
        ),
        "bob": UserProfile(
            id="bob", name="Bob", industry="Software", location="Paris",
            skills=["python", "go"],
        ),
        "carol": UserProfile(
            id="carol", name="Carol", industry="Finance", location="Berlin",
            skills=["excel"],
        ),
        "dave": UserProfile(
            id="dave", name="Dave", industry="Software", location="Berlin",
            skills=["python", "sql", "kubernetes"],
        ),
        "erin": UserProfile(id="erin", name="Erin", industry="Finance", location="London"),
        "frank": UserProfile(id="frank", name="Frank", active=False),
    }


@pytest.fixture(name="mock_profile_service")
def mock_profile_service_fixture(profiles) -> MagicMock:
    """Mock ProfileService backed by the ``profiles`` dict."""
    mock = MagicMock(spec=ProfileService)

    async def _get_profile(user_id):
        return profiles.get(user_id)

    async def _exists_and_active(user_id):
        profile = profiles.get(user_id)
        return profile is not None and profile.active

    async def _search_users(*, industry=None, location=None, limit=50):
        matches = [
            p for p in profiles.values()
            if p.active
            and (industry is None or (p.industry or "").lower() == industry.lower())
            and (location is None or (p.location or "").lower() == location.lower())
        ]
        return matches[:limit]

    mock.get_profile = AsyncMock(side_effect=_get_profile)
    mock.user_exists_and_active = AsyncMock(side_effect=_exists_and_active)
    mock.search_users = AsyncMock(side_effect=_search_users)
    mock.check_health = AsyncMock(return_value=True)
    return mock


@pytest.fixture(name="mock_event_publisher")
def mock_event_publisher_fixture() -> MagicMock:
    """Mock EventPublisher that records published events."""
    mock = MagicMock(spec=EventPublisher)
    mock.publish = AsyncMock(return_value=True)
    mock.enabled = False
    return mock


@pytest.fixture(name="query_cache")
def query_cache_fixture() -> QueryCache:
    return QueryCache(ttl_seconds=60)


@pytest.fixture(name="connection_service")
def connection_service_fixture(
    mock_profile_service, mock_event_publisher, query_cache
) -> ConnectionService:
    return ConnectionService(
        profile_service=mock_profile_service,
        event_publisher=mock_event_publisher,
        cache=query_cache,
    )


def add_connection(
    session: Session,
    requester_id: str,
    addressee_id: str,
    state: ConnectionState = ConnectionState.ACCEPTED,
    message: str | None = None,
) -> Connection:
    """Insert a Connection record directly into the DB."""
    connection = Connection.create_request(requester_id, addressee_id, message)
    connection.state = state.value
    if state is not ConnectionState.PENDING:
        connection.responded_at = connection.requested_at
    session.add(connection)
    session.commit()
    session.refresh(connection)
    return connection


@pytest.fixture(name="add_connection")
def add_connection_fixture(session):
    def _add(requester_id, addressee_id, state=ConnectionState.ACCEPTED, message=None):
        return add_connection(session, requester_id, addressee_id, state, message)
    return _add


# ── HTTP client fixtures ──────────────────────────────────────────────


class _Caller:
    """Mutable caller identity used by the ``client`` fixture."""

    def __init__(self, user_id: str = "alice") -> None:
        self.user_id = user_id


@pytest.fixture(name="caller")
def caller_fixture() -> _Caller:
    return _Caller()


@pytest.fixture(name="client")
def client_fixture(engine, session, caller, mock_profile_service, mock_event_publisher, query_cache):
    """FastAPI TestClient with DB, identity and collaborators overridden.

    Set ``caller.user_id`` to switch the authenticated user between requests.
    """

    def _get_session_override():
        yield session

    fastapi_app.dependency_overrides[get_session] = _get_session_override
    fastapi_app.dependency_overrides[get_engine] = lambda: engine
    fastapi_app.dependency_overrides[get_current_user_id] = lambda: caller.user_id
    fastapi_app.dependency_overrides[get_profile_service] = lambda: mock_profile_service
    fastapi_app.dependency_overrides[get_event_publisher] = lambda: mock_event_publisher
    with TestClient(fastapi_app) as client:
        client.app.state.query_cache = query_cache
        yield client
    fastapi_app.dependency_overrides.clear()


@pytest.fixture(name="client_no_auth")
def client_no_auth_fixture(engine, session, mock_profile_service, mock_event_publisher):
    """TestClient with DB override but NO identity override — for testing 401s."""

    def _get_session_override():
        yield session

    fastapi_app.dependency_overrides[get_session] = _get_session_override
    fastapi_app.dependency_overrides[get_engine] = lambda: engine
    fastapi_app.dependency_overrides[get_profile_service] = lambda: mock_profile_service
    fastapi_app.dependency_overrides[get_event_publisher] = lambda: mock_event_publisher
    with TestClient(fastapi_app) as tc:
        yield tc
    fastapi_app.dependency_overrides.clear()
