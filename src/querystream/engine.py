"""Query execution engine: runs SQL and streams results to display sinks."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from querystream.accumulator import ResultAccumulator
from querystream.catalog import TypeCatalog
from querystream.core.connection import DatabaseConnection
from querystream.core.types import DataMessage, ErrorMessage, FullResults, StreamSettings
from querystream.cursor import Cursor
from querystream.exceptions import ConnectionError, CursorOpenError
from querystream.fetcher import BatchFetcher
from querystream.registry import SessionRegistry
from querystream.scheduler import Scheduler
from querystream.session import Session

if TYPE_CHECKING:
    from sqlalchemy import Connection

    from querystream.sinks import DisplaySink

logger = logging.getLogger(__name__)

CursorFactory = Callable[["Connection", str], Cursor]


class QueryStreamEngine:
    """Executes queries as sessions and streams their rows in batches.

    Example:
        engine = QueryStreamEngine("postgresql://localhost/mydb")
        sink = RecordingSink()
        session_id = await engine.execute("SELECT * FROM big_table", sink)
        await engine.wait(session_id)

        # A recreated display surface replays without re-running the query
        engine.restore(session_id, new_sink)

        engine.dispose(session_id)
        await engine.aclose()
    """

    def __init__(
        self,
        database: str | DatabaseConnection,
        settings: StreamSettings | None = None,
        *,
        registry: SessionRegistry | None = None,
        scheduler: Scheduler | None = None,
        cursor_factory: CursorFactory = Cursor,
        echo: bool = False,
    ) -> None:
        """Initialize the engine.

        Args:
            database: Database URL or an existing DatabaseConnection
            settings: Streaming settings (defaults: 5000-row batches, 500 ms cooldown)
            registry: Session registry (a fresh one if not provided)
            scheduler: Scheduler for fetch jobs (a fresh one if not provided)
            cursor_factory: Builds the cursor for a checked-out connection and SQL text
            echo: Whether to echo SQL statements (only when ``database`` is a URL)
        """
        if isinstance(database, DatabaseConnection):
            self._connection = database
            self._owns_connection = False
        else:
            self._connection = DatabaseConnection(database, echo=echo)
            self._owns_connection = True

        self._settings = settings or StreamSettings()
        self._registry = registry or SessionRegistry()
        self._scheduler = scheduler or Scheduler()
        self._cursor_factory = cursor_factory
        self._fetcher = BatchFetcher(
            self._scheduler,
            ResultAccumulator(strict=self._settings.strict_invariants),
            self._settings,
        )

    @property
    def settings(self) -> StreamSettings:
        return self._settings

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def connection(self) -> DatabaseConnection:
        return self._connection

    async def execute(self, sql: str, sink: DisplaySink, title: str | None = None) -> str:
        """Start executing ``sql`` and stream its results to ``sink``.

        Returns once the cursor is open (or failed to open); batches follow
        asynchronously. A cursor-open failure is reported to the sink as an
        error message, and the session stays registered.

        Returns:
            The new session's id

        Raises:
            ConnectionError: If no connection could be checked out or the type
                catalog could not be loaded. No session is created.
        """
        connection = await asyncio.to_thread(self._connection.checkout)
        try:
            catalog = await asyncio.to_thread(TypeCatalog.load, connection)
        except ConnectionError:
            await asyncio.to_thread(connection.close)
            raise

        session = Session(
            self._registry.new_id(),
            self._cursor_factory(connection, sql),
            catalog,
            sink,
            title=title,
        )
        self._registry.register(session)

        session.busy = True
        try:
            await asyncio.to_thread(session.cursor.open)
        except Exception as e:
            logger.error(f"Failed to open cursor for session {session.id}: {e}")
            session.fail(CursorOpenError(session.id, str(e)))
            return session.id
        finally:
            session.busy = False

        if session.disposed:
            session.release()
            return session.id

        session.start_streaming()
        self._fetcher.start(session)
        return session.id

    def get_session(self, session_id: str) -> Session:
        """Raises SessionNotFoundError if the session is not registered."""
        return self._registry.get(session_id)

    def get_results(self, session_id: str) -> FullResults:
        return self._registry.get(session_id).full_results

    def restore(
        self, session_id: str, sink: DisplaySink | None = None
    ) -> list[DataMessage | ErrorMessage]:
        """Resend everything accumulated for a session, from offset 0.

        Args:
            session_id: Session to replay
            sink: Recreated display surface. It replaces the session's sink,
                so batches still to come are delivered to it.

        Returns:
            The messages that were sent

        Raises:
            SessionNotFoundError: If the session is gone; the query must be re-run
        """
        session = self._registry.get(session_id)
        if sink is not None:
            session.sink = sink

        messages = session.replay_messages()
        for message in messages:
            session.sink.post(message)
        logger.debug(f"Restored session {session_id} with {len(session.full_results)} rows")
        return messages

    def dispose(self, session_id: str) -> None:
        """Tear down a session: unregister it and release its connection.

        Raises:
            SessionNotFoundError: If the session is not registered
        """
        session = self._registry.remove(session_id)
        session.dispose()

    async def wait(self, session_id: str) -> Session:
        """Wait until the session has released its connection."""
        session = self._registry.get(session_id)
        await session.finished.wait()
        return session

    async def drain(self) -> None:
        """Wait for every scheduled fetch to finish."""
        await self._scheduler.drain()

    async def aclose(self) -> None:
        """Dispose every session, let in-flight fetches clean up, close the pool."""
        for session_id in self._registry:
            self.dispose(session_id)
        await self._scheduler.drain()
        if self._owns_connection:
            self._connection.close()
