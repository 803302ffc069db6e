"""Tests for the paginated cursor."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import text

from querystream.core.connection import DatabaseConnection
from querystream.core.types import CommandKind
from querystream.cursor import Cursor, command_tag, detect_command


class TestDetectCommand:
    """Tests for leading-keyword command detection."""

    @pytest.mark.parametrize(
        "sql,expected",
        [
            ("SELECT 1", CommandKind.SELECT),
            ("  select * from t", CommandKind.SELECT),
            ("WITH x AS (SELECT 1) SELECT * FROM x", CommandKind.SELECT),
            ("WITH RECURSIVE r AS (SELECT 1 UNION SELECT 2) SELECT * FROM r", CommandKind.SELECT),
            ("WITH x AS (SELECT 1) INSERT INTO t SELECT * FROM x", CommandKind.INSERT),
            ("with gone as (delete from t returning *) update s set n = 0", CommandKind.UPDATE),
            ("WITH a AS (SELECT 1), b AS (SELECT 2) DELETE FROM t", CommandKind.DELETE),
            ("WITH x AS (SELECT 'insert' AS \"update\") SELECT * FROM x", CommandKind.SELECT),
            ("VALUES (1), (2)", CommandKind.SELECT),
            ("(SELECT 1) UNION (SELECT 2)", CommandKind.SELECT),
            ("insert into t values (1)", CommandKind.INSERT),
            ("UPDATE t SET a = 1", CommandKind.UPDATE),
            ("DELETE FROM t", CommandKind.DELETE),
            ("CREATE TABLE t (a int)", CommandKind.CREATE),
            ("EXPLAIN SELECT 1", CommandKind.EXPLAIN),
            ("DROP TABLE t", CommandKind.OTHER),
            ("", CommandKind.OTHER),
        ],
    )
    def test_detection(self, sql, expected):
        assert detect_command(sql) == expected

    def test_leading_comments_skipped(self):
        sql = "-- monthly report\n/* owner: data */ SELECT 1"
        assert detect_command(sql) == CommandKind.SELECT


class TestCommandTag:
    """Tests for reading the command out of a server status message."""

    @pytest.mark.parametrize(
        "status,expected",
        [
            ("INSERT 0 3", "INSERT"),
            ("CREATE TABLE", "CREATE"),
            ("listen", "LISTEN"),
            ("", None),
            ("   ", None),
            (None, None),
        ],
    )
    def test_tag(self, status, expected):
        assert command_tag(status) == expected


class TestServerStatus:
    """Tests for commands reported by the server after execution."""

    def _open(self, sql: str, status: str | None, rowcount: int = -1) -> Cursor:
        connection = MagicMock()
        result = connection.execution_options.return_value.exec_driver_sql.return_value
        result.returns_rows = False
        result.rowcount = rowcount
        result.context.status_message = status
        cursor = Cursor(connection, sql)
        cursor.open()
        return cursor

    def test_unknown_statement_keeps_server_tag(self):
        cursor = self._open("LISTEN jobs", "LISTEN")
        assert cursor.command == CommandKind.OTHER
        assert cursor.command_tag == "LISTEN"

    def test_server_tag_overrides_detection(self):
        """A prepared statement is only identified by the server's tag."""
        cursor = self._open("EXECUTE add_rows(4)", "INSERT 0 4", rowcount=4)
        assert cursor.command == CommandKind.INSERT
        assert cursor.row_count == 4

    def test_missing_status_keeps_detection(self):
        cursor = self._open("DROP TABLE t", None)
        assert cursor.command == CommandKind.OTHER
        assert cursor.command_tag is None

    def test_data_modifying_cte_not_streamed(self):
        cursor = self._open("WITH x AS (SELECT 1) INSERT INTO t SELECT * FROM x", "INSERT 0 1", 1)
        assert cursor.streaming is False
        assert cursor.command == CommandKind.INSERT
        options = cursor._connection.execution_options.call_args.kwargs
        assert "stream_results" not in options
        assert options["no_parameters"] is True


class TestCursor:
    """Tests for Cursor against SQLite."""

    @pytest.fixture
    def connection(self, numbers_url: str):
        conn = DatabaseConnection(numbers_url)
        yield conn
        conn.close()

    def test_reads_in_pages(self, connection: DatabaseConnection):
        """Rows come back in pages of at most the requested size."""
        cursor = Cursor(connection.checkout(), "SELECT n FROM numbers ORDER BY n")
        cursor.open()
        assert [name for name, _ in cursor.columns] == ["n"]

        first = cursor.read(10)
        second = cursor.read(10)
        third = cursor.read(10)
        assert [r[0] for r in first] == list(range(1, 11))
        assert len(second) == 10
        assert len(third) == 5
        assert cursor.read(10) == []
        assert cursor.row_count == 25
        cursor.close()

    def test_duplicate_column_names(self, connection: DatabaseConnection):
        cursor = Cursor(connection.checkout(), "SELECT n AS x, label AS x FROM numbers LIMIT 1")
        cursor.open()
        assert [name for name, _ in cursor.columns] == ["x", "x"]
        assert cursor.read(5) == [(1, "row 1")]
        cursor.close()

    def test_colon_and_percent_passed_through(self, connection: DatabaseConnection):
        """SQL text is not parsed for bind parameters."""
        cursor = Cursor(connection.checkout(), "SELECT ':name' AS a, '100%' AS b")
        cursor.open()
        assert cursor.read(1) == [(":name", "100%")]
        cursor.close()

    def test_statement_without_rows(self, connection: DatabaseConnection):
        """DML returns no rows and reports the affected-row count."""
        cursor = Cursor(connection.checkout(), "UPDATE numbers SET label = 'x' WHERE n <= 3")
        cursor.open()
        assert cursor.command == CommandKind.UPDATE
        assert cursor.returns_rows is False
        assert cursor.read(10) == []
        assert cursor.row_count == 3
        cursor.close(commit=True)

        with connection.engine.connect() as c:
            count = c.execute(text("SELECT COUNT(*) FROM numbers WHERE label = 'x'")).scalar()
        assert count == 3

    def test_close_without_commit_rolls_back(self, connection: DatabaseConnection):
        cursor = Cursor(connection.checkout(), "DELETE FROM numbers")
        cursor.open()
        cursor.close()

        with connection.engine.connect() as c:
            assert c.execute(text("SELECT COUNT(*) FROM numbers")).scalar() == 25

    def test_close_releases_once(self, connection: DatabaseConnection):
        """Only the first close releases the connection."""
        sa_connection = connection.checkout()
        cursor = Cursor(sa_connection, "SELECT 1")
        cursor.open()
        assert cursor.close() is True
        assert cursor.released is True
        assert sa_connection.closed is True
        assert cursor.close() is False

    def test_open_error_propagates(self, connection: DatabaseConnection):
        cursor = Cursor(connection.checkout(), "SELECT * FROM no_such_table")
        with pytest.raises(Exception, match="no_such_table"):
            cursor.open()
        cursor.close()

    def test_read_before_open(self, connection: DatabaseConnection):
        cursor = Cursor(connection.checkout(), "SELECT 1")
        with pytest.raises(RuntimeError):
            cursor.read(1)
        cursor.close()
