"""Custom exceptions for querystream.

Every error carries a human-readable message plus a context dict, so callers
(and the CLI in JSON mode) can report what failed and for which session.
"""

from __future__ import annotations

from typing import Any


class QueryStreamError(Exception):
    """Base exception for all querystream errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as JSON-serializable dict."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class ConnectionError(QueryStreamError):
    """Failed to connect to the database or to load the type catalog."""

    pass


class CursorOpenError(QueryStreamError):
    """The statement could not be started on the server."""

    def __init__(self, session_id: str, message: str) -> None:
        super().__init__(message, {"session_id": session_id})
        self.session_id = session_id


class FetchError(QueryStreamError):
    """Fetching a batch from an open cursor failed."""

    def __init__(self, session_id: str, batch_number: int, message: str) -> None:
        super().__init__(message, {"session_id": session_id, "batch_number": batch_number})
        self.session_id = session_id
        self.batch_number = batch_number


class SessionNotFoundError(QueryStreamError):
    """Session is not (or no longer) registered."""

    def __init__(self, session_id: str) -> None:
        message = f"Session '{session_id}' not found. The query must be re-run to see its results."
        super().__init__(message, {"session_id": session_id})
        self.session_id = session_id


class InvalidTransitionError(QueryStreamError):
    """A session was asked to move to a state it cannot reach."""

    def __init__(self, session_id: str, current: str, target: str) -> None:
        message = f"Session '{session_id}' cannot move from {current} to {target}."
        super().__init__(message, {"session_id": session_id, "current": current, "target": target})
        self.current = current
        self.target = target


class ProtocolError(QueryStreamError):
    """Internal invariant violated while merging batches."""

    pass
