"""Connection service — request lifecycle and relationship queries."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, func, or_, select

from linkgraph.errors import (
    AddresseeUnavailableError,
    ConnectionNotFoundError,
    DuplicateRequestError,
    InvalidStateTransitionError,
    SelfConnectionError,
    UnauthorizedAccessError,
    UnauthorizedActionError,
)
from linkgraph.models.connection import (
    Connection,
    ConnectionRead,
    ConnectionState,
    PendingRequestRead,
)
from linkgraph.models.event import ConnectionEvent, ConnectionEventType
from linkgraph.services.cache import QueryCache
from linkgraph.services.events import EventPublisher
from linkgraph.services.profiles import ProfileService
from linkgraph.services.state_handlers import ConnectionAction, get_handler

logger = logging.getLogger(__name__)

_ACCEPTED_CACHE = "accepted"
_COUNT_CACHE = "count"

_ACTION_EVENTS = {
    ConnectionAction.ACCEPT: ConnectionEventType.ACCEPTED,
    ConnectionAction.REJECT: ConnectionEventType.REJECTED,
    ConnectionAction.BLOCK: ConnectionEventType.BLOCKED,
    ConnectionAction.CANCEL: ConnectionEventType.CANCELLED,
    ConnectionAction.REMOVE: ConnectionEventType.REMOVED,
}


# --- Graph reads shared with the suggestion strategies ---


def find_between(session: Session, user_a: str, user_b: str) -> Connection | None:
    """The record between two users in either direction, any state."""
    return session.exec(
        select(Connection).where(
            or_(
                (Connection.requester_id == user_a) & (Connection.addressee_id == user_b),
                (Connection.requester_id == user_b) & (Connection.addressee_id == user_a),
            )
        )
    ).first()


def connections_for_user(
    session: Session, user_id: str, state: ConnectionState | None = None
) -> list[Connection]:
    statement = select(Connection).where(
        or_(Connection.requester_id == user_id, Connection.addressee_id == user_id)
    )
    if state is not None:
        statement = statement.where(Connection.state == state.value)
    return list(session.exec(statement.order_by(Connection.requested_at)).all())


def accepted_peer_ids(session: Session, user_id: str) -> set[str]:
    """Users connected (ACCEPTED) to ``user_id``."""
    return {
        c.other_user_id(user_id)
        for c in connections_for_user(session, user_id, ConnectionState.ACCEPTED)
    }


def related_user_ids(session: Session, user_id: str) -> set[str]:
    """Users sharing a record of any state with ``user_id``."""
    return {c.other_user_id(user_id) for c in connections_for_user(session, user_id)}


def count_accepted(session: Session, user_id: str) -> int:
    return session.exec(
        select(func.count())
        .select_from(Connection)
        .where(or_(Connection.requester_id == user_id, Connection.addressee_id == user_id))
        .where(Connection.state == ConnectionState.ACCEPTED.value)
    ).one()


class ConnectionService:
    """Authorizes callers, applies state transitions, persists and notifies.

    Authorization is always checked before transition legality so that an
    unauthorized caller learns nothing about the record's state.
    """

    __slots__ = ("profile_service", "event_publisher", "cache")

    def __init__(
        self,
        profile_service: ProfileService,
        event_publisher: EventPublisher,
        cache: QueryCache,
    ) -> None:
        self.profile_service = profile_service
        self.event_publisher = event_publisher
        self.cache = cache

    # --- Send request ---

    async def send_request(
        self,
        requester_id: str,
        addressee_id: str,
        message: str | None,
        session: Session,
    ) -> Connection:
        logger.info("User %s sending connection request to %s", requester_id, addressee_id)

        if requester_id == addressee_id:
            logger.warning("User %s attempted to connect to themselves", requester_id)
            raise SelfConnectionError("Cannot send a connection request to yourself")

        if find_between(session, requester_id, addressee_id) is not None:
            logger.warning(
                "Connection already exists between %s and %s", requester_id, addressee_id
            )
            raise DuplicateRequestError(
                "A connection request already exists between you and this user"
            )

        if not await self.profile_service.user_exists_and_active(addressee_id):
            logger.warning(
                "User %s attempted to connect to unavailable user %s",
                requester_id, addressee_id,
            )
            raise AddresseeUnavailableError("Cannot send a connection request to this user")

        message = (message or "").strip() or None
        connection = Connection.create_request(requester_id, addressee_id, message)
        session.add(connection)
        try:
            session.commit()
        except IntegrityError:
            # A concurrent request for the same pair won the unique pair_key
            session.rollback()
            logger.warning(
                "Concurrent duplicate request between %s and %s", requester_id, addressee_id
            )
            raise DuplicateRequestError(
                "A connection request already exists between you and this user"
            )
        session.refresh(connection)
        self.cache.invalidate_users(requester_id, addressee_id)
        logger.info(
            "Connection request created: id=%s requester=%s addressee=%s",
            connection.id, requester_id, addressee_id,
        )

        await self.event_publisher.publish(
            ConnectionEvent.for_connection(
                ConnectionEventType.REQUESTED, connection,
                actor_id=requester_id, timestamp=connection.requested_at,
            )
        )
        return connection

    # --- Addressee responses ---

    async def accept(self, connection_id: str, caller_id: str, session: Session) -> Connection:
        return await self._respond(connection_id, caller_id, ConnectionAction.ACCEPT, session)

    async def reject(self, connection_id: str, caller_id: str, session: Session) -> Connection:
        return await self._respond(connection_id, caller_id, ConnectionAction.REJECT, session)

    async def block(self, connection_id: str, caller_id: str, session: Session) -> Connection:
        return await self._respond(connection_id, caller_id, ConnectionAction.BLOCK, session)

    async def _respond(
        self,
        connection_id: str,
        caller_id: str,
        action: ConnectionAction,
        session: Session,
    ) -> Connection:
        logger.info("User %s attempting to %s connection %s", caller_id, action.value, connection_id)
        connection = self._load(connection_id, session)

        if not connection.is_addressee(caller_id):
            logger.warning(
                "User %s is not authorized to %s connection %s",
                caller_id, action.value, connection_id,
            )
            raise UnauthorizedActionError(
                f"Only the recipient of a connection request can {action.value} it"
            )

        expected_state = connection.state
        get_handler(expected_state).apply(connection, action)
        self._persist_transition(connection, expected_state, action, session)
        self.cache.invalidate_users(connection.requester_id, connection.addressee_id)
        logger.info("Connection %s %s by user %s", connection_id, connection.state, caller_id)

        await self.event_publisher.publish(
            ConnectionEvent.for_connection(
                _ACTION_EVENTS[action], connection,
                actor_id=caller_id, timestamp=connection.responded_at,
            )
        )
        return connection

    # --- Deletions ---

    async def cancel(self, connection_id: str, caller_id: str, session: Session) -> None:
        """Withdraw a pending request. Only the requester may cancel."""
        logger.info("User %s attempting to cancel connection %s", caller_id, connection_id)
        connection = self._load(connection_id, session)
        if not connection.is_requester(caller_id):
            logger.warning("User %s is not the requester of connection %s", caller_id, connection_id)
            raise UnauthorizedActionError("Only the sender of a connection request can cancel it")
        await self._delete(connection, caller_id, ConnectionAction.CANCEL, session)

    async def remove(self, connection_id: str, caller_id: str, session: Session) -> None:
        """Unlink an accepted connection. Either party may remove it."""
        logger.info("User %s attempting to remove connection %s", caller_id, connection_id)
        connection = self._load(connection_id, session)
        if not connection.involves(caller_id):
            logger.warning("User %s is not a party to connection %s", caller_id, connection_id)
            raise UnauthorizedActionError("You are not authorized to remove this connection")
        await self._delete(connection, caller_id, ConnectionAction.REMOVE, session)

    async def _delete(
        self,
        connection: Connection,
        caller_id: str,
        action: ConnectionAction,
        session: Session,
    ) -> None:
        expected_state = connection.state
        get_handler(expected_state).apply(connection, action)

        event = ConnectionEvent.for_connection(_ACTION_EVENTS[action], connection, actor_id=caller_id)
        result = session.connection().execute(
            delete(Connection).where(
                Connection.id == connection.id,
                Connection.state == expected_state,
            )
        )
        if result.rowcount != 1:
            session.rollback()
            raise self._lost_race(connection.id, action)
        session.expunge(connection)
        session.commit()

        self.cache.invalidate_users(event.requester_id, event.addressee_id)
        logger.info("Connection %s deleted (%s) by user %s", event.connection_id, action.value, caller_id)
        await self.event_publisher.publish(event)

    # --- Persistence helpers ---

    @staticmethod
    def _load(connection_id: str, session: Session) -> Connection:
        connection = session.get(Connection, connection_id)
        if connection is None:
            logger.warning("Connection %s not found", connection_id)
            raise ConnectionNotFoundError(connection_id)
        return connection

    def _persist_transition(
        self,
        connection: Connection,
        expected_state: str,
        action: ConnectionAction,
        session: Session,
    ) -> None:
        """Write the new state only if the row is still in ``expected_state``.

        Two concurrent accepts read the same PENDING row; the conditional
        UPDATE lets exactly one of them commit.
        """
        connection_id = connection.id
        values = {
            "state": connection.state,
            "responded_at": connection.responded_at,
            "updated_at": connection.updated_at,
        }
        # Discard the in-memory change; the conditional UPDATE is the write
        session.expire(connection)
        result = session.connection().execute(
            update(Connection)
            .where(Connection.id == connection_id, Connection.state == expected_state)
            .values(**values)
        )
        if result.rowcount != 1:
            session.rollback()
            raise self._lost_race(connection_id, action)
        session.commit()
        session.refresh(connection)

    @staticmethod
    def _lost_race(connection_id: str, action: ConnectionAction) -> InvalidStateTransitionError:
        logger.warning(
            "Connection %s changed concurrently; %s not applied", connection_id, action.value
        )
        return InvalidStateTransitionError(
            f"Cannot {action.value} this connection: it was modified by another request"
        )

    # --- Queries ---

    def get_by_id(self, connection_id: str, caller_id: str, session: Session) -> Connection:
        connection = self._load(connection_id, session)
        if not connection.involves(caller_id):
            raise UnauthorizedAccessError("You are not authorized to view this connection")
        return connection

    def list_accepted(self, user_id: str, session: Session) -> list[ConnectionRead]:
        return self.cache.get_or_load(
            _ACCEPTED_CACHE,
            user_id,
            lambda: [
                ConnectionRead.model_validate(c)
                for c in connections_for_user(session, user_id, ConnectionState.ACCEPTED)
            ],
        )

    def list_pending(self, user_id: str, session: Session) -> list[PendingRequestRead]:
        """Pending requests the user sent or received."""
        pending = connections_for_user(session, user_id, ConnectionState.PENDING)
        return self._pending_views(user_id, pending, session)

    def list_pending_sent(self, user_id: str, session: Session) -> list[PendingRequestRead]:
        sent = session.exec(
            select(Connection)
            .where(Connection.requester_id == user_id)
            .where(Connection.state == ConnectionState.PENDING.value)
            .order_by(Connection.requested_at)
        ).all()
        return self._pending_views(user_id, sent, session)

    def list_pending_received(self, user_id: str, session: Session) -> list[PendingRequestRead]:
        received = session.exec(
            select(Connection)
            .where(Connection.addressee_id == user_id)
            .where(Connection.state == ConnectionState.PENDING.value)
            .order_by(Connection.requested_at)
        ).all()
        return self._pending_views(user_id, received, session)

    def _pending_views(
        self, user_id: str, connections: Iterable[Connection], session: Session
    ) -> list[PendingRequestRead]:
        connections = list(connections)
        if not connections:
            return []
        my_peers = accepted_peer_ids(session, user_id)
        views = []
        for c in connections:
            other = c.other_user_id(user_id)
            mutual = my_peers & accepted_peer_ids(session, other)
            views.append(
                PendingRequestRead(
                    id=c.id,
                    requester_id=c.requester_id,
                    addressee_id=c.addressee_id,
                    other_user_id=other,
                    direction="sent" if c.is_requester(user_id) else "received",
                    message=c.message,
                    requested_at=c.requested_at,
                    mutual_connections=len(mutual - {user_id, other}),
                )
            )
        return views

    def connection_count(self, user_id: str, session: Session) -> int:
        return self.cache.get_or_load(
            _COUNT_CACHE, user_id, lambda: count_accepted(session, user_id)
        )

    def mutual_connections(self, user_a: str, user_b: str, session: Session) -> list[str]:
        """Users connected to both ``user_a`` and ``user_b``, sorted."""
        mutual = accepted_peer_ids(session, user_a) & accepted_peer_ids(session, user_b)
        return sorted(mutual - {user_a, user_b})

    def mutual_count(self, user_a: str, user_b: str, session: Session) -> int:
        return len(self.mutual_connections(user_a, user_b, session))

    def is_connected(self, user_a: str, user_b: str, session: Session) -> bool:
        connection = find_between(session, user_a, user_b)
        return connection is not None and connection.current_state is ConnectionState.ACCEPTED

    # --- Maintenance ---

    def purge_stale(
        self,
        states: Iterable[ConnectionState],
        older_than: timedelta,
        session: Session,
    ) -> int:
        """Delete records in ``states`` requested more than ``older_than`` ago."""
        state_values = [s.value for s in states]
        cutoff = datetime.now(timezone.utc) - older_than
        stale = session.exec(
            select(Connection)
            .where(Connection.state.in_(state_values))  # type: ignore[union-attr]
            .where(Connection.requested_at < cutoff)
        ).all()
        if not stale:
            return 0

        affected: set[str] = set()
        for connection in stale:
            affected.update((connection.requester_id, connection.addressee_id))
            session.delete(connection)
        session.commit()
        self.cache.invalidate_users(*affected)
        logger.info("Purged %d stale connection(s) in states %s", len(stale), state_values)
        return len(stale)
