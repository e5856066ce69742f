"""Connection model — a request/relationship between two users."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field as PydanticField
from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel


MESSAGE_MAX_LENGTH = 300


class ConnectionState(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    BLOCKED = "blocked"


def pair_key(user_a: str, user_b: str) -> str:
    """Order-independent key for the pair {user_a, user_b}."""
    low, high = sorted((user_a, user_b))
    return f"{low}:{high}"


class Connection(SQLModel, table=True):
    __tablename__ = "connections"
    __table_args__ = (
        CheckConstraint(
            "requester_id <> addressee_id",
            name="ck_connections_different_users",
        ),
        CheckConstraint(
            "state IN ('pending', 'accepted', 'rejected', 'blocked')",
            name="ck_connections_state",
        ),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    requester_id: str = Field(index=True)
    addressee_id: str = Field(index=True)
    # At most one record per unordered pair, whichever side sent it
    pair_key: str = Field(unique=True)
    state: str = Field(default=ConnectionState.PENDING.value, index=True)
    message: str | None = Field(default=None, max_length=MESSAGE_MAX_LENGTH)
    requested_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    responded_at: datetime | None = Field(default=None)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def create_request(
        cls, requester_id: str, addressee_id: str, message: str | None = None
    ) -> Connection:
        if requester_id == addressee_id:
            raise ValueError("requester_id and addressee_id must differ")
        return cls(
            requester_id=requester_id,
            addressee_id=addressee_id,
            pair_key=pair_key(requester_id, addressee_id),
            message=message,
        )

    @property
    def current_state(self) -> ConnectionState:
        return ConnectionState(self.state)

    def is_requester(self, user_id: str) -> bool:
        return self.requester_id == user_id

    def is_addressee(self, user_id: str) -> bool:
        return self.addressee_id == user_id

    def involves(self, user_id: str) -> bool:
        return self.is_requester(user_id) or self.is_addressee(user_id)

    def other_user_id(self, user_id: str) -> str | None:
        """The counterpart of user_id, or None if user_id is not a party."""
        if self.is_requester(user_id):
            return self.addressee_id
        if self.is_addressee(user_id):
            return self.requester_id
        return None


# Pydantic schemas

class ConnectionRequestCreate(BaseModel):
    addressee_id: str = PydanticField(min_length=1)
    message: str | None = PydanticField(default=None, max_length=MESSAGE_MAX_LENGTH)


class ConnectionRead(BaseModel):
    id: str
    requester_id: str
    addressee_id: str
    state: ConnectionState
    message: str | None
    requested_at: datetime
    responded_at: datetime | None

    model_config = {"from_attributes": True}


class PendingRequestRead(BaseModel):
    """A pending request as seen by one of its two parties."""
    id: str
    requester_id: str
    addressee_id: str
    other_user_id: str
    direction: str  # "sent" or "received"
    message: str | None
    requested_at: datetime
    mutual_connections: int = 0


class ConnectionCheckRead(BaseModel):
    user_id: str
    connected: bool


class ConnectionCountRead(BaseModel):
    user_id: str
    count: int


class MutualConnectionsRead(BaseModel):
    user_id: str
    other_user_id: str
    count: int
    user_ids: list[str]
