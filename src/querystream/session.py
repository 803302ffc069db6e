"""Per-execution session state and lifecycle."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from querystream.core.types import (
    DataMessage,
    ErrorMessage,
    FullResults,
    ResultBatch,
    ResultsPayload,
    SessionState,
)
from querystream.exceptions import InvalidTransitionError, QueryStreamError
from querystream.formatting import summary_text

if TYPE_CHECKING:
    from querystream.catalog import TypeCatalog
    from querystream.cursor import Cursor
    from querystream.sinks import DisplaySink

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.INITIALIZING: {SessionState.STREAMING, SessionState.ERRORED, SessionState.DISPOSED},
    SessionState.STREAMING: {SessionState.COMPLETED, SessionState.ERRORED, SessionState.DISPOSED},
    SessionState.COMPLETED: {SessionState.DISPOSED},
    SessionState.ERRORED: {SessionState.DISPOSED},
    SessionState.DISPOSED: set(),
}


class Session:
    """State for one query execution, from cursor open to disposal.

    The session owns its cursor and therefore exactly one pooled connection,
    which ``release()`` gives back at most once whichever path gets there
    first. Completed and errored sessions keep their results so a display
    surface can replay them until the session is disposed.
    """

    def __init__(
        self,
        session_id: str,
        cursor: Cursor,
        catalog: TypeCatalog,
        sink: DisplaySink,
        title: str | None = None,
    ) -> None:
        self.id = session_id
        self.cursor = cursor
        self.catalog = catalog
        self.sink = sink
        self.title = title
        self.state = SessionState.INITIALIZING
        self.full_results = FullResults()
        self.last_error: QueryStreamError | None = None
        self.disposed = False
        # True while a cursor open or fetch is running off the event loop
        self.busy = False
        self.batches_fetched = 0
        self.finished = asyncio.Event()
        self._released = False

    def __repr__(self) -> str:
        return f"Session(id={self.id!r}, state={self.state}, rows={len(self.full_results)})"

    @property
    def display_title(self) -> str:
        return f"Results: {self.title}" if self.title else "Results"

    @property
    def released(self) -> bool:
        return self._released

    def _transition(self, target: SessionState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(self.id, str(self.state), str(target))
        logger.debug(f"Session {self.id}: {self.state} -> {target}")
        self.state = target

    def start_streaming(self) -> None:
        self._transition(SessionState.STREAMING)

    def release(self) -> bool:
        """Roll back, close the cursor and give the connection back, once.

        Returns:
            True if this call released the connection
        """
        if self._released:
            return False
        self._released = True
        try:
            self.cursor.close()
        finally:
            self.finished.set()
        return True

    async def complete(self) -> None:
        """Cursor exhausted: commit and release off the loop, then mark completed.

        A dispose that arrives while the commit runs finds the session already
        released and only marks it disposed.
        """
        if self._released:
            return
        self._released = True
        try:
            await asyncio.to_thread(self.cursor.close, True)
        finally:
            self.finished.set()

        if self.disposed:
            return
        self._transition(SessionState.COMPLETED)
        logger.info(f"Session {self.id} completed with {len(self.full_results)} rows")

    def fail(self, error: QueryStreamError) -> None:
        """Record a terminal error, release, and report it to the sink."""
        if self.last_error is not None:
            return
        self.last_error = error
        self.release()
        if self.disposed:
            return
        self._transition(SessionState.ERRORED)
        self.post(self.error_message())

    def dispose(self) -> None:
        """Mark the session disposed.

        If a fetch is in flight, the fetcher notices on completion and cleans
        up; otherwise the connection is released here.
        """
        if self.disposed:
            return
        self.disposed = True
        self._transition(SessionState.DISPOSED)
        if not self.busy:
            self.release()
        logger.info(f"Session {self.id} disposed")

    def post(self, message: DataMessage | ErrorMessage) -> bool:
        """Push a message to the sink unless the session is disposed.

        Data messages are dropped once an error has been recorded.
        """
        if self.disposed:
            return False
        if self.last_error is not None and isinstance(message, DataMessage):
            return False
        self.sink.post(message)
        return True

    def data_message(self, batch: ResultBatch, offset: int) -> DataMessage:
        results = self.full_results
        return DataMessage(
            command=results.command_name,
            summary=summary_text(results),
            results=ResultsPayload.from_parts(results.fields, batch.rows),
            offset=offset,
        )

    def error_message(self) -> ErrorMessage:
        message = self.last_error.message if self.last_error is not None else ""
        return ErrorMessage(summary=message)

    def replay_messages(self) -> list[DataMessage | ErrorMessage]:
        """Everything accumulated so far, as one data message from offset 0.

        An errored session replays the rows it received before failing (if
        any), followed by its error.
        """
        results = self.full_results
        messages: list[DataMessage | ErrorMessage] = []
        if self.last_error is None or results.rows:
            messages.append(
                DataMessage(
                    command=results.command_name,
                    summary=summary_text(results),
                    results=results.to_payload(),
                    offset=0,
                )
            )
        if self.last_error is not None:
            messages.append(self.error_message())
        return messages
