"""Business-rule exceptions for the connection and suggestion services.

Every exception carries the HTTP status and a stable error code; the global
handlers in ``linkgraph.main`` turn them into ``{"error": {...}}`` responses.
None of them is fatal to the process.
"""
from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    SELF_CONNECTION = "SELF_CONNECTION"
    DUPLICATE_REQUEST = "DUPLICATE_REQUEST"
    ADDRESSEE_UNAVAILABLE = "ADDRESSEE_UNAVAILABLE"
    UNAUTHORIZED_ACTION = "UNAUTHORIZED_ACTION"
    UNAUTHORIZED_ACCESS = "UNAUTHORIZED_ACCESS"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    PROFILE_SERVICE_UNAVAILABLE = "PROFILE_SERVICE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class LinkGraphError(Exception):
    """Base exception for all recoverable, caller-facing errors."""

    status_code: int = 500
    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConnectionNotFoundError(LinkGraphError):
    status_code = 404
    error_code = ErrorCode.NOT_FOUND

    def __init__(self, connection_id: str) -> None:
        super().__init__(f"Connection {connection_id} not found")
        self.connection_id = connection_id


class StrategyNotFoundError(LinkGraphError):
    status_code = 404
    error_code = ErrorCode.NOT_FOUND

    def __init__(self, strategy_name: str) -> None:
        super().__init__(f"Suggestion strategy '{strategy_name}' not found")
        self.strategy_name = strategy_name


class SelfConnectionError(LinkGraphError):
    status_code = 400
    error_code = ErrorCode.SELF_CONNECTION


class DuplicateRequestError(LinkGraphError):
    status_code = 409
    error_code = ErrorCode.DUPLICATE_REQUEST


class AddresseeUnavailableError(LinkGraphError):
    status_code = 422
    error_code = ErrorCode.ADDRESSEE_UNAVAILABLE


class UnauthorizedActionError(LinkGraphError):
    status_code = 403
    error_code = ErrorCode.UNAUTHORIZED_ACTION


class UnauthorizedAccessError(LinkGraphError):
    status_code = 403
    error_code = ErrorCode.UNAUTHORIZED_ACCESS


class InvalidStateTransitionError(LinkGraphError):
    status_code = 409
    error_code = ErrorCode.INVALID_STATE_TRANSITION


class ProfileServiceError(LinkGraphError):
    """The profile store could not be reached or answered with an error."""

    status_code = 503
    error_code = ErrorCode.PROFILE_SERVICE_UNAVAILABLE
