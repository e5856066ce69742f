"""Connection lifecycle state machine.

One handler per stored state. A handler declares which actions are legal
from its state and what each action leads to: a new stored state, or
``None`` when the outcome is deleting the record (cancel, remove).

    PENDING  --accept-->  ACCEPTED  --remove-->  (deleted)
    PENDING  --reject-->  REJECTED
    PENDING  --block--->  BLOCKED
    PENDING  --cancel-->  (deleted)

REJECTED and BLOCKED are terminal. Nothing re-enters PENDING.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum

from linkgraph.errors import InvalidStateTransitionError
from linkgraph.models.connection import Connection, ConnectionState

logger = logging.getLogger(__name__)


class ConnectionAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    BLOCK = "block"
    CANCEL = "cancel"
    REMOVE = "remove"


class ConnectionStateHandler:
    """Legal transitions out of a single state.

    Subclasses set ``handled_state`` and ``transitions``; an action missing
    from ``transitions`` is illegal in that state.
    """

    handled_state: ConnectionState
    transitions: dict[ConnectionAction, ConnectionState | None] = {}
    description: str = ""

    # --- Predicates ---

    def can(self, action: ConnectionAction) -> bool:
        return action in self.transitions

    def can_accept(self) -> bool:
        return self.can(ConnectionAction.ACCEPT)

    def can_reject(self) -> bool:
        return self.can(ConnectionAction.REJECT)

    def can_block(self) -> bool:
        return self.can(ConnectionAction.BLOCK)

    def can_cancel(self) -> bool:
        return self.can(ConnectionAction.CANCEL)

    def can_remove(self) -> bool:
        return self.can(ConnectionAction.REMOVE)

    @property
    def is_terminal(self) -> bool:
        """True when no action leads to another stored state."""
        return all(target is None for target in self.transitions.values())

    def allowed_actions_description(self) -> str:
        if not self.transitions:
            return "No actions are allowed."
        names = ", ".join(action.value for action in self.transitions)
        return f"Allowed actions: {names}."

    # --- Mutating operations ---

    def apply(
        self,
        connection: Connection,
        action: ConnectionAction,
        now: datetime | None = None,
    ) -> ConnectionState | None:
        """Apply ``action`` to ``connection`` and return the outcome.

        Stored outcomes update ``state``, ``responded_at`` and ``updated_at``
        in place. A ``None`` outcome means the caller must delete the record;
        the record itself is left untouched. Illegal actions raise
        InvalidStateTransitionError without modifying anything.
        """
        if connection.current_state is not self.handled_state:
            raise ValueError(
                f"{type(self).__name__} cannot handle a connection in state {connection.state}"
            )
        if not self.can(action):
            logger.warning(
                "Rejected %s on connection %s in state %s",
                action.value, connection.id, connection.state,
            )
            raise InvalidStateTransitionError(
                f"Cannot {action.value} a connection in {self.handled_state.value} state. "
                f"{self.allowed_actions_description()}"
            )

        target = self.transitions[action]
        if target is None:
            logger.debug("Connection %s will be deleted (%s)", connection.id, action.value)
            return None

        now = now or datetime.now(timezone.utc)
        connection.state = target.value
        if connection.responded_at is None:
            connection.responded_at = now
        connection.updated_at = now
        logger.debug(
            "Connection %s transitioned %s -> %s",
            connection.id, self.handled_state.value, target.value,
        )
        return target

    def accept(self, connection: Connection) -> ConnectionState | None:
        return self.apply(connection, ConnectionAction.ACCEPT)

    def reject(self, connection: Connection) -> ConnectionState | None:
        return self.apply(connection, ConnectionAction.REJECT)

    def block(self, connection: Connection) -> ConnectionState | None:
        return self.apply(connection, ConnectionAction.BLOCK)

    def cancel(self, connection: Connection) -> ConnectionState | None:
        return self.apply(connection, ConnectionAction.CANCEL)

    def remove(self, connection: Connection) -> ConnectionState | None:
        return self.apply(connection, ConnectionAction.REMOVE)


class PendingStateHandler(ConnectionStateHandler):
    handled_state = ConnectionState.PENDING
    transitions = {
        ConnectionAction.ACCEPT: ConnectionState.ACCEPTED,
        ConnectionAction.REJECT: ConnectionState.REJECTED,
        ConnectionAction.BLOCK: ConnectionState.BLOCKED,
        ConnectionAction.CANCEL: None,
    }
    description = "Request sent, awaiting the addressee's response."


class AcceptedStateHandler(ConnectionStateHandler):
    handled_state = ConnectionState.ACCEPTED
    transitions = {
        ConnectionAction.REMOVE: None,
    }
    description = "Users are connected. Either user may remove the connection."


class RejectedStateHandler(ConnectionStateHandler):
    handled_state = ConnectionState.REJECTED
    description = "Request was declined."


class BlockedStateHandler(ConnectionStateHandler):
    handled_state = ConnectionState.BLOCKED
    description = "Requester was blocked; no further requests between the pair."


_HANDLERS: dict[ConnectionState, ConnectionStateHandler] = {
    handler.handled_state: handler
    for handler in (
        PendingStateHandler(),
        AcceptedStateHandler(),
        RejectedStateHandler(),
        BlockedStateHandler(),
    )
}

_missing = set(ConnectionState) - set(_HANDLERS)
if _missing:  # pragma: no cover - import-time configuration check
    raise RuntimeError(f"No state handler for: {sorted(s.value for s in _missing)}")


def get_handler(state: ConnectionState | str) -> ConnectionStateHandler:
    return _HANDLERS[ConnectionState(state)]


def transition(state: ConnectionState | str, action: ConnectionAction) -> ConnectionState | None:
    """Outcome of ``action`` from ``state`` without touching any record.

    Returns the target state, or None for deletion. Raises
    InvalidStateTransitionError when the action is illegal.
    """
    handler = get_handler(state)
    if not handler.can(action):
        raise InvalidStateTransitionError(
            f"Cannot {action.value} a connection in {handler.handled_state.value} state. "
            f"{handler.allowed_actions_description()}"
        )
    return handler.transitions[action]
