from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field

from linkgraph.models.connection import Connection


class ConnectionEventType(str, Enum):
    REQUESTED = "connection.requested"
    ACCEPTED = "connection.accepted"
    REJECTED = "connection.rejected"
    BLOCKED = "connection.blocked"
    CANCELLED = "connection.cancelled"
    REMOVED = "connection.removed"


class ConnectionEvent(BaseModel):
    """Relationship-change notification delivered to the event sink."""

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    event_type: ConnectionEventType
    connection_id: str
    requester_id: str
    addressee_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    actor_id: str | None = None
    message: str | None = None

    @classmethod
    def for_connection(
        cls,
        event_type: ConnectionEventType,
        connection: Connection,
        actor_id: str | None = None,
        timestamp: datetime | None = None,
    ) -> ConnectionEvent:
        return cls(
            event_type=event_type,
            connection_id=connection.id,
            requester_id=connection.requester_id,
            addressee_id=connection.addressee_id,
            timestamp=timestamp or datetime.now(timezone.utc),
            actor_id=actor_id,
            message=connection.message if event_type is ConnectionEventType.REQUESTED else None,
        )
