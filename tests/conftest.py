"""Shared test fixtures for querystream."""

import os
import threading
from collections.abc import Callable, Generator
from typing import Any

import pytest
from sqlalchemy import text

from querystream.core.connection import DatabaseConnection
from querystream.core.types import CommandKind, StreamSettings


def _psycopg_available() -> bool:
    """Check if psycopg is installed."""
    try:
        import psycopg  # noqa: F401

        return True
    except ImportError:
        return False


def _postgresql_connectable(url: str) -> bool:
    """Check if we can connect to PostgreSQL."""
    if not _psycopg_available():
        return False
    try:
        conn = DatabaseConnection(url)
        result = conn.test_connection()
        conn.close()
        return result
    except Exception:
        return False


@pytest.fixture
def postgresql_url() -> str:
    """Get PostgreSQL URL from environment or use default.

    Skips the test when psycopg is missing or the server is unreachable.
    """
    url = os.environ.get("TEST_DATABASE_URL")
    if not url:
        url = "postgresql://localhost/querystream_test"

    if not _psycopg_available():
        pytest.skip("psycopg not installed")

    if not _postgresql_connectable(url):
        pytest.skip(f"Cannot connect to PostgreSQL at {url}")

    return url


@pytest.fixture
def sqlite_url(tmp_path) -> str:
    """SQLite database file URL (file-backed so pooled connections share data)."""
    return f"sqlite:///{tmp_path / 'querystream.db'}"


@pytest.fixture
def numbers_url(sqlite_url: str) -> str:
    """SQLite database with a ``numbers`` table holding 1..25."""
    conn = DatabaseConnection(sqlite_url)
    with conn.engine.begin() as c:
        c.execute(text("CREATE TABLE numbers (n INTEGER, label TEXT, flag BOOLEAN)"))
        for n in range(1, 26):
            c.execute(
                text("INSERT INTO numbers VALUES (:n, :label, :flag)"),
                {"n": n, "label": f"row {n}", "flag": n % 2 == 0},
            )
    conn.close()
    return sqlite_url


@pytest.fixture
def db_connection(sqlite_url: str) -> Generator[DatabaseConnection, None, None]:
    """DatabaseConnection over an empty SQLite file."""
    conn = DatabaseConnection(sqlite_url)
    yield conn
    conn.close()


@pytest.fixture
def fast_settings() -> StreamSettings:
    """Small batches and no cooldown."""
    return StreamSettings(batch_size=10, cooldown_ms=0)


class ScriptedCursor:
    """Cursor stand-in that serves ``total_rows`` integer rows.

    Wraps a real checked-out connection so pooling behaves normally, and
    counts ``close`` calls so tests can assert the connection is released once.
    """

    def __init__(
        self,
        connection: Any,
        sql: str,
        total_rows: int = 0,
        columns: list[tuple[str, int | None]] | None = None,
        command: CommandKind = CommandKind.SELECT,
        command_tag: str | None = None,
        fail_on_batch: int | None = None,
        open_error: Exception | None = None,
        on_read: Callable[[int], None] | None = None,
    ) -> None:
        self.sql = sql
        self.command = command
        self.command_tag = command_tag
        self.columns: list[tuple[str, int | None]] = []
        self.reads: list[int] = []
        self.close_calls = 0
        self.committed = False
        self.close_thread: int | None = None
        self._connection = connection
        self._total_rows = total_rows
        self._declared_columns = columns if columns is not None else [("n", 23)]
        self._fail_on_batch = fail_on_batch
        self._open_error = open_error
        self._on_read = on_read
        self._position = 0
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    @property
    def row_count(self) -> int:
        return self._position

    def open(self) -> None:
        if self._open_error is not None:
            raise self._open_error
        self.columns = list(self._declared_columns)

    def read(self, size: int) -> list[tuple[Any, ...]]:
        batch_number = len(self.reads) + 1
        self.reads.append(size)
        if self._on_read is not None:
            self._on_read(batch_number)
        if self._fail_on_batch == batch_number:
            raise RuntimeError("server closed the connection unexpectedly")

        end = min(self._position + size, self._total_rows)
        rows = [(n,) + (None,) * (len(self.columns) - 1) for n in range(self._position, end)]
        self._position = end
        return rows

    def close(self, commit: bool = False) -> bool:
        self.close_calls += 1
        self.close_thread = threading.get_ident()
        if self._released:
            return False
        self._released = True
        self.committed = commit
        self._connection.close()
        return True


@pytest.fixture
def scripted_cursors() -> Callable[..., tuple[Callable[[Any, str], ScriptedCursor], list[ScriptedCursor]]]:
    """Build a cursor factory for QueryStreamEngine plus the list of cursors it created."""

    def make(**kwargs: Any) -> tuple[Callable[[Any, str], ScriptedCursor], list[ScriptedCursor]]:
        created: list[ScriptedCursor] = []

        def factory(connection: Any, sql: str) -> ScriptedCursor:
            cursor = ScriptedCursor(connection, sql, **kwargs)
            created.append(cursor)
            return cursor

        return factory, created

    return make
