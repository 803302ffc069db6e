"""Query execution commands."""

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from querystream.cli.context import CLIContext
from querystream.cli.output import ConsoleSink, OutputFormatter
from querystream.core.types import StreamSettings
from querystream.engine import QueryStreamEngine


async def _stream(
    cli_ctx: CLIContext,
    sql: str,
    settings: StreamSettings,
    sink: ConsoleSink,
    title: str | None = None,
) -> None:
    engine = QueryStreamEngine(cli_ctx.get_connection(), settings)
    try:
        session_id = await engine.execute(sql, sink, title=title)
        await engine.wait(session_id)
    finally:
        await engine.aclose()


def run_command(
    ctx: typer.Context,
    sql: Annotated[
        str | None,
        typer.Argument(help="SQL statement to execute"),
    ] = None,
    from_file: Annotated[
        str | None,
        typer.Option("--file", "-f", help="Load SQL from file"),
    ] = None,
    batch_size: Annotated[
        int,
        typer.Option("--batch-size", "-b", min=1, help="Rows fetched per batch"),
    ] = 5000,
    cooldown_ms: Annotated[
        float,
        typer.Option("--cooldown-ms", min=0, help="Pause between full batches (ms)"),
    ] = 500.0,
    text_limit: Annotated[
        int,
        typer.Option("--text-limit", min=2, help="Truncate text cells longer than this"),
    ] = 150,
) -> None:
    """Execute a statement and stream its rows as they arrive.

    Examples:

        querystream run "SELECT * FROM events"
        querystream run --file report.sql --batch-size 1000
        querystream --json run "SELECT 1 AS x"  # one JSON message per line
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)
    settings = StreamSettings(
        batch_size=batch_size,
        cooldown_ms=cooldown_ms,
        preview_text_limit=text_limit,
    )
    sink = ConsoleSink.from_settings(settings, cli_ctx.json_output)

    try:
        if from_file:
            sql_content = Path(from_file).read_text()
        elif sql:
            sql_content = sql
        else:
            raise typer.BadParameter("Either provide SQL or use --file")

        title = Path(from_file).name if from_file else None
        asyncio.run(_stream(cli_ctx, sql_content, settings, sink, title))
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()

    if sink.failed:
        raise typer.Exit(code=1)
