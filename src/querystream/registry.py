"""Registry of live sessions, keyed by generated identifiers."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Iterator

from querystream.exceptions import SessionNotFoundError
from querystream.session import Session

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Maps session ids to sessions until their display surface is disposed.

    Mutated only from the event loop thread, so no locking is needed.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def new_id(self) -> str:
        """Generate an id that no registered session is using."""
        while True:
            session_id = secrets.token_hex(16)
            if session_id not in self._sessions:
                return session_id

    def register(self, session: Session) -> None:
        if session.id in self._sessions:
            raise ValueError(f"Session id '{session.id}' is already registered")
        self._sessions[session.id] = session
        logger.info(f"Registered session {session.id}")

    def get(self, session_id: str) -> Session:
        """Look up a session.

        Raises:
            SessionNotFoundError: If no session is registered under ``session_id``
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def remove(self, session_id: str) -> Session:
        """Unregister and return a session.

        Raises:
            SessionNotFoundError: If no session is registered under ``session_id``
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._sessions))

    def sessions(self) -> list[Session]:
        return list(self._sessions.values())
