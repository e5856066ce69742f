"""Connections router — request lifecycle and relationship queries."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response
from sqlmodel import Session

from linkgraph.db import get_session
from linkgraph.dependencies import get_connection_service, get_current_user_id
from linkgraph.models.connection import (
    ConnectionCheckRead,
    ConnectionCountRead,
    ConnectionRead,
    ConnectionRequestCreate,
    MutualConnectionsRead,
    PendingRequestRead,
)
from linkgraph.services.connections import ConnectionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/connections", tags=["connections"])


# --- Lifecycle ---


@router.post("/requests", response_model=ConnectionRead, status_code=201)
async def send_connection_request(
    body: ConnectionRequestCreate,
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
    session: Session = Depends(get_session),
) -> ConnectionRead:
    connection = await service.send_request(user_id, body.addressee_id, body.message, session)
    return ConnectionRead.model_validate(connection)


@router.put("/{connection_id}/accept", response_model=ConnectionRead)
async def accept_connection_request(
    connection_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
    session: Session = Depends(get_session),
) -> ConnectionRead:
    connection = await service.accept(connection_id, user_id, session)
    return ConnectionRead.model_validate(connection)


@router.put("/{connection_id}/reject", response_model=ConnectionRead)
async def reject_connection_request(
    connection_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
    session: Session = Depends(get_session),
) -> ConnectionRead:
    connection = await service.reject(connection_id, user_id, session)
    return ConnectionRead.model_validate(connection)


@router.put("/{connection_id}/block", response_model=ConnectionRead)
async def block_requester(
    connection_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
    session: Session = Depends(get_session),
) -> ConnectionRead:
    connection = await service.block(connection_id, user_id, session)
    return ConnectionRead.model_validate(connection)


@router.delete("/{connection_id}/cancel", status_code=204)
async def cancel_connection_request(
    connection_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
    session: Session = Depends(get_session),
) -> Response:
    await service.cancel(connection_id, user_id, session)
    return Response(status_code=204)


# --- Queries (fixed paths before /{connection_id}) ---


@router.get("/list", response_model=list[ConnectionRead])
async def list_my_connections(
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
    session: Session = Depends(get_session),
) -> list[ConnectionRead]:
    return service.list_accepted(user_id, session)


@router.get("/requests/pending", response_model=list[PendingRequestRead])
async def list_pending_requests(
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
    session: Session = Depends(get_session),
) -> list[PendingRequestRead]:
    """Pending requests in both directions."""
    return service.list_pending(user_id, session)


@router.get("/requests/sent", response_model=list[PendingRequestRead])
async def list_sent_requests(
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
    session: Session = Depends(get_session),
) -> list[PendingRequestRead]:
    return service.list_pending_sent(user_id, session)


@router.get("/requests/received", response_model=list[PendingRequestRead])
async def list_received_requests(
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
    session: Session = Depends(get_session),
) -> list[PendingRequestRead]:
    return service.list_pending_received(user_id, session)


@router.get("/count", response_model=ConnectionCountRead)
async def count_my_connections(
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
    session: Session = Depends(get_session),
) -> ConnectionCountRead:
    return ConnectionCountRead(user_id=user_id, count=service.connection_count(user_id, session))


@router.get("/check/{other_user_id}", response_model=ConnectionCheckRead)
async def check_connected(
    other_user_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
    session: Session = Depends(get_session),
) -> ConnectionCheckRead:
    return ConnectionCheckRead(
        user_id=other_user_id,
        connected=service.is_connected(user_id, other_user_id, session),
    )


@router.get("/mutual/{other_user_id}", response_model=MutualConnectionsRead)
async def get_mutual_connections(
    other_user_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
    session: Session = Depends(get_session),
) -> MutualConnectionsRead:
    mutual = service.mutual_connections(user_id, other_user_id, session)
    return MutualConnectionsRead(
        user_id=user_id,
        other_user_id=other_user_id,
        count=len(mutual),
        user_ids=mutual,
    )


@router.get("/{connection_id}", response_model=ConnectionRead)
async def get_connection(
    connection_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
    session: Session = Depends(get_session),
) -> ConnectionRead:
    return ConnectionRead.model_validate(service.get_by_id(connection_id, user_id, session))


@router.delete("/{connection_id}", status_code=204)
async def remove_connection(
    connection_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
    session: Session = Depends(get_session),
) -> Response:
    await service.remove(connection_id, user_id, session)
    return Response(status_code=204)
