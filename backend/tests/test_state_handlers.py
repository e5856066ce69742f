"""State machine tests — legal transitions, terminal states, handler lookup."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from linkgraph.errors import InvalidStateTransitionError
from linkgraph.models.connection import Connection, ConnectionState
from linkgraph.services.state_handlers import (
    AcceptedStateHandler,
    BlockedStateHandler,
    ConnectionAction,
    PendingStateHandler,
    RejectedStateHandler,
    get_handler,
    transition,
)


def _connection(state: ConnectionState = ConnectionState.PENDING) -> Connection:
    connection = Connection.create_request("alice", "bob", "hi")
    connection.state = state.value
    return connection


# ── Lookup ────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "state,handler_cls",
    [
        (ConnectionState.PENDING, PendingStateHandler),
        (ConnectionState.ACCEPTED, AcceptedStateHandler),
        (ConnectionState.REJECTED, RejectedStateHandler),
        (ConnectionState.BLOCKED, BlockedStateHandler),
    ],
)
def test_get_handler_returns_handler_for_every_state(state, handler_cls):
    handler = get_handler(state)
    assert isinstance(handler, handler_cls)
    assert handler.handled_state is state


def test_get_handler_accepts_stored_string():
    assert isinstance(get_handler("accepted"), AcceptedStateHandler)


def test_get_handler_unknown_state_raises():
    with pytest.raises(ValueError):
        get_handler("archived")


# ── Transition table ──────────────────────────────────────────────────


@pytest.mark.parametrize(
    "state,action,expected",
    [
        (ConnectionState.PENDING, ConnectionAction.ACCEPT, ConnectionState.ACCEPTED),
        (ConnectionState.PENDING, ConnectionAction.REJECT, ConnectionState.REJECTED),
        (ConnectionState.PENDING, ConnectionAction.BLOCK, ConnectionState.BLOCKED),
        (ConnectionState.PENDING, ConnectionAction.CANCEL, None),
        (ConnectionState.ACCEPTED, ConnectionAction.REMOVE, None),
    ],
)
def test_legal_transitions(state, action, expected):
    assert transition(state, action) is expected


@pytest.mark.parametrize(
    "state,action",
    [
        (ConnectionState.PENDING, ConnectionAction.REMOVE),
        (ConnectionState.ACCEPTED, ConnectionAction.ACCEPT),
        (ConnectionState.ACCEPTED, ConnectionAction.REJECT),
        (ConnectionState.ACCEPTED, ConnectionAction.BLOCK),
        (ConnectionState.ACCEPTED, ConnectionAction.CANCEL),
        (ConnectionState.REJECTED, ConnectionAction.ACCEPT),
        (ConnectionState.REJECTED, ConnectionAction.REMOVE),
        (ConnectionState.BLOCKED, ConnectionAction.ACCEPT),
        (ConnectionState.BLOCKED, ConnectionAction.CANCEL),
    ],
)
def test_illegal_transitions_raise(state, action):
    with pytest.raises(InvalidStateTransitionError):
        transition(state, action)


def test_no_action_reenters_pending():
    for state in ConnectionState:
        handler = get_handler(state)
        assert ConnectionState.PENDING not in handler.transitions.values()


class TestPredicates:
    def test_pending_allows_responses_and_cancel(self):
        handler = get_handler(ConnectionState.PENDING)
        assert handler.can_accept()
        assert handler.can_reject()
        assert handler.can_block()
        assert handler.can_cancel()
        assert not handler.can_remove()
        assert not handler.is_terminal

    def test_accepted_only_allows_remove(self):
        handler = get_handler(ConnectionState.ACCEPTED)
        assert handler.can_remove()
        assert not handler.can_accept()
        assert not handler.can_cancel()

    @pytest.mark.parametrize("state", [ConnectionState.REJECTED, ConnectionState.BLOCKED])
    def test_rejected_and_blocked_are_terminal(self, state):
        handler = get_handler(state)
        assert handler.is_terminal
        assert not any(handler.can(action) for action in ConnectionAction)
        assert handler.allowed_actions_description() == "No actions are allowed."

    def test_allowed_actions_description_lists_actions(self):
        description = get_handler(ConnectionState.ACCEPTED).allowed_actions_description()
        assert description == "Allowed actions: remove."


# ── apply() ───────────────────────────────────────────────────────────


class TestApply:
    def test_accept_sets_state_and_timestamps(self):
        connection = _connection()
        now = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

        outcome = get_handler(ConnectionState.PENDING).apply(
            connection, ConnectionAction.ACCEPT, now=now
        )

        assert outcome is ConnectionState.ACCEPTED
        assert connection.state == "accepted"
        assert connection.responded_at == now
        assert connection.updated_at == now

    def test_first_response_time_is_kept(self):
        connection = _connection()
        first = datetime(2025, 1, 1, tzinfo=timezone.utc)
        connection.responded_at = first

        get_handler(ConnectionState.PENDING).apply(
            connection, ConnectionAction.REJECT,
            now=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )

        assert connection.responded_at == first

    def test_cancel_leaves_record_untouched(self):
        connection = _connection()
        before = connection.updated_at

        outcome = get_handler(ConnectionState.PENDING).cancel(connection)

        assert outcome is None
        assert connection.state == "pending"
        assert connection.responded_at is None
        assert connection.updated_at == before

    def test_remove_from_accepted_means_delete(self):
        connection = _connection(ConnectionState.ACCEPTED)
        assert get_handler(ConnectionState.ACCEPTED).remove(connection) is None
        assert connection.state == "accepted"

    def test_illegal_action_does_not_modify(self):
        connection = _connection(ConnectionState.REJECTED)
        with pytest.raises(InvalidStateTransitionError, match="Cannot accept"):
            get_handler(ConnectionState.REJECTED).accept(connection)
        assert connection.state == "rejected"
        assert connection.responded_at is None

    def test_wrong_handler_for_state_raises_value_error(self):
        connection = _connection(ConnectionState.ACCEPTED)
        with pytest.raises(ValueError):
            get_handler(ConnectionState.PENDING).accept(connection)

    def test_block_from_pending(self):
        connection = _connection()
        assert get_handler(ConnectionState.PENDING).block(connection) is ConnectionState.BLOCKED
        assert connection.current_state is ConnectionState.BLOCKED
