"""Typed API failures shared by the ordering engine and the routes."""

from __future__ import annotations

from typing import Any, Optional


class ApiError(Exception):
    status_code = 500
    code = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class BadRequest(ApiError):
    """Raised for malformed input, e.g. a neighbour outside the destination scope."""

    status_code = 400
    code = "BAD_REQUEST"


class Unauthorized(ApiError):
    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication required.", details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, details)


class Forbidden(ApiError):
    status_code = 403
    code = "FORBIDDEN"

    def __init__(
        self,
        message: str = "You do not have permission to perform this action.",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)


class NotFound(ApiError):
    status_code = 404
    code = "NOT_FOUND"


class Conflict(ApiError):
    """Raised when a position cannot be allocated or the transaction keeps losing races.

    Positions may have been rewritten underneath the client, so the response
    tells it to refetch before retrying the drag.
    """

    status_code = 409
    code = "CONFLICT"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message,
            details or {"hint": "Refetch the board and retry the move."},
        )
