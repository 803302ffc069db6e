"""Paginated query handle over one checked-out connection."""

from __future__ import annotations

import logging
import re
from typing import Any

from sqlalchemy import Connection, CursorResult

from querystream.core.connection import STATUS_MESSAGE_ATTR
from querystream.core.types import CommandKind

logger = logging.getLogger(__name__)

_LEADING_NOISE = re.compile(r"^(?:\s+|--[^\n]*(?:\n|$)|/\*.*?\*/|\()*", re.DOTALL)

# Leading keywords of statements that return rows like a SELECT
_SELECT_KEYWORDS = {"SELECT", "VALUES", "TABLE"}

# Keywords that can start the main statement after a WITH clause
_MAIN_STATEMENT_KEYWORDS = _SELECT_KEYWORDS | {"INSERT", "UPDATE", "DELETE", "MERGE"}

# Quoted text, comments and words, scanned left to right
_TOKENS = re.compile(
    r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|--[^\n]*|/\*.*?\*/|[A-Za-z_]\w*|[()]",
    re.DOTALL,
)


def _command_from_keyword(keyword: str) -> CommandKind:
    keyword = keyword.upper()
    if keyword in _SELECT_KEYWORDS:
        return CommandKind.SELECT
    if keyword in CommandKind.values():
        return CommandKind(keyword)
    return CommandKind.OTHER


def _main_statement_keyword(sql: str) -> str | None:
    """First keyword after the common table expressions of a WITH statement.

    Only words outside parentheses, quotes and comments count, so the CTE
    bodies are skipped whatever they contain.
    """
    depth = 0
    for token in _TOKENS.findall(sql):
        if token == "(":
            depth += 1
        elif token == ")":
            depth = max(depth - 1, 0)
        elif depth == 0 and token.upper() in _MAIN_STATEMENT_KEYWORDS:
            return token.upper()
    return None


def detect_command(sql: str) -> CommandKind:
    """Detect the SQL command from the statement's leading keyword.

    Leading whitespace, comments and opening parentheses are skipped. For a
    WITH statement the command is that of the main statement after the CTEs,
    so ``WITH ... INSERT`` is an INSERT.
    """
    stripped = _LEADING_NOISE.sub("", sql, count=1)
    match = re.match(r"[A-Za-z]+", stripped)
    if not match:
        return CommandKind.OTHER

    keyword = match.group(0).upper()
    if keyword == "WITH":
        keyword = _main_statement_keyword(stripped[match.end() :]) or "SELECT"
    return _command_from_keyword(keyword)


def command_tag(status_message: str | None) -> str | None:
    """Command word of a server status message.

    >>> command_tag("INSERT 0 3")
    'INSERT'
    >>> command_tag("CREATE TABLE")
    'CREATE'
    """
    if not status_message or not status_message.strip():
        return None
    return status_message.split()[0].upper()


class Cursor:
    """Server-side cursor for one statement.

    Owns ``connection`` from the moment it is constructed: ``close()`` returns
    it to the pool, and does so at most once. Row-returning SELECT statements
    stream through a server-side cursor; anything else executes normally and
    is paged from the client-side buffer.
    """

    def __init__(self, connection: Connection, sql: str) -> None:
        self.sql = sql
        self.command = detect_command(sql)
        # Server status tag, e.g. "INSERT", known once a statement without a
        # server-side cursor has run
        self.command_tag: str | None = None
        self.columns: list[tuple[str, int | None]] = []
        self._connection = connection
        self._result: CursorResult[Any] | None = None
        self._rows_read = 0
        self._released = False
        self._streaming = self.command == CommandKind.SELECT

    @property
    def released(self) -> bool:
        return self._released

    @property
    def streaming(self) -> bool:
        """Whether the statement runs through a server-side cursor."""
        return self._streaming

    @property
    def returns_rows(self) -> bool:
        return self._result is not None and self._result.returns_rows

    @property
    def row_count(self) -> int | None:
        """Rows read so far, or the affected-row count for statements without rows."""
        if self._result is None:
            return None
        if self._result.returns_rows:
            return self._rows_read
        rowcount = self._result.rowcount
        return rowcount if rowcount is not None and rowcount >= 0 else None

    def open(self) -> None:
        """Execute the statement.

        The raw text is passed to the driver untouched, so ``:name`` and ``%``
        are not treated as bind parameters.
        """
        options: dict[str, Any] = {"no_parameters": True}
        if self.streaming:
            options["stream_results"] = True

        self._result = self._connection.execution_options(**options).exec_driver_sql(self.sql)
        if self._result.returns_rows:
            self.columns = self._describe(self._result)
        if not self.streaming:
            tag = command_tag(getattr(self._result.context, STATUS_MESSAGE_ATTR, None))
            if tag is not None:
                self.command_tag = tag
                self.command = _command_from_keyword(tag)
        logger.debug(f"Opened {self.command} cursor with {len(self.columns)} columns")

    def read(self, size: int) -> list[tuple[Any, ...]]:
        """Fetch up to ``size`` rows. An empty list means the cursor is exhausted."""
        if self._result is None:
            raise RuntimeError("Cursor is not open")
        if not self._result.returns_rows:
            return []

        rows = [tuple(row) for row in self._result.fetchmany(size)]
        self._rows_read += len(rows)
        return rows

    def close(self, commit: bool = False) -> bool:
        """Close the cursor and return the connection to the pool.

        With ``commit`` the statement's transaction is committed first and a
        commit failure propagates after the connection is released. Without it
        the transaction is rolled back and close errors are only logged.

        Returns:
            True if this call released the connection, False if already released
        """
        if self._released:
            return False
        self._released = True

        try:
            if self._result is not None:
                self._result.close()
            if commit:
                self._connection.commit()
        except Exception as e:
            if commit:
                self._connection.close()
                raise
            logger.warning(f"Failed to close cursor cleanly: {e}")
        self._connection.close()
        return True

    @staticmethod
    def _describe(result: CursorResult[Any]) -> list[tuple[str, int | None]]:
        names = list(result.keys())
        dbapi_cursor = getattr(result, "cursor", None)
        description = getattr(dbapi_cursor, "description", None) or []

        columns: list[tuple[str, int | None]] = []
        for index, name in enumerate(names):
            type_code = description[index][1] if index < len(description) else None
            columns.append((name, type_code if isinstance(type_code, int) else None))
        return columns
