"""CLI command tests for querystream."""

import json

from typer.testing import CliRunner

from querystream.cli.main import app
from querystream.cli.output import ConsoleSink
from querystream.core.types import ResultField, StreamSettings

runner = CliRunner()


class TestVersionCommand:
    """Test the version command."""

    def test_version_output(self) -> None:
        """Test that version command shows version info."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "querystream v" in result.stdout


class TestRunCommand:
    """Test streaming a query from the CLI."""

    def test_run_json(self, numbers_url: str) -> None:
        """Each batch is printed as one JSON line."""
        result = runner.invoke(
            app,
            [
                "-d",
                numbers_url,
                "--json",
                "run",
                "SELECT n FROM numbers ORDER BY n",
                "--batch-size",
                "10",
                "--cooldown-ms",
                "0",
            ],
        )
        assert result.exit_code == 0
        messages = [json.loads(line) for line in result.stdout.splitlines() if line.strip()]
        assert [m["offset"] for m in messages] == [0, 10, 20]
        assert messages[-1]["command"] == "SELECT"
        assert messages[-1]["summary"] == "Rows returned: 25"
        assert messages[0]["results"]["rows"][0] == {"0": 1}

    def test_run_table(self, numbers_url: str) -> None:
        result = runner.invoke(
            app, ["-d", numbers_url, "run", "SELECT n, label FROM numbers WHERE n <= 3"]
        )
        assert result.exit_code == 0
        assert "row 2" in result.stdout
        assert "Rows returned: 3" in result.stdout

    def test_run_from_file(self, numbers_url: str, tmp_path) -> None:
        sql_file = tmp_path / "count.sql"
        sql_file.write_text("SELECT COUNT(*) AS total FROM numbers")

        result = runner.invoke(app, ["-d", numbers_url, "--json", "run", "--file", str(sql_file)])
        assert result.exit_code == 0
        message = json.loads(result.stdout.splitlines()[0])
        assert message["results"]["rows"] == [{"0": 25}]

    def test_run_bad_sql(self, numbers_url: str) -> None:
        """A failed statement exits non-zero after printing the error message."""
        result = runner.invoke(app, ["-d", numbers_url, "--json", "run", "SELECT * FROM nope"])
        assert result.exit_code == 1
        message = json.loads(result.stdout.splitlines()[0])
        assert message["command"] == "ERROR"
        assert "nope" in message["summary"]

    def test_run_without_sql(self, sqlite_url: str) -> None:
        result = runner.invoke(app, ["-d", sqlite_url, "run"])
        assert result.exit_code == 1

    def test_database_from_environment(self, numbers_url: str, monkeypatch) -> None:
        monkeypatch.setenv("QUERYSTREAM_URL", numbers_url)
        result = runner.invoke(app, ["--json", "run", "SELECT 1 AS one"])
        assert result.exit_code == 0
        assert json.loads(result.stdout.splitlines()[0])["results"]["rows"] == [{"0": 1}]


class TestConsoleSink:
    """Test the terminal display sink."""

    def test_text_limit_from_settings(self) -> None:
        sink = ConsoleSink.from_settings(StreamSettings(preview_text_limit=6), json_mode=True)
        field = ResultField(name="note", format="text", display_type="text", positional_key="0")
        assert sink.json_mode is True
        assert sink.text_limit == 6
        assert sink._cell(field, "abcdefghij").plain == "abcde…"
