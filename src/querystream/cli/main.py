"""querystream CLI - Main entry point."""

from typing import Annotated

import typer

import querystream
from querystream.cli.context import CLIContext, configure_logging, get_database_url

app = typer.Typer(
    name="querystream",
    help="querystream CLI - Stream SQL query results in batches",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    database: Annotated[
        str | None,
        typer.Option(
            "--database",
            "-d",
            envvar="QUERYSTREAM_URL",
            help="Database URL (PostgreSQL or SQLite)",
        ),
    ] = None,
    echo: Annotated[
        bool,
        typer.Option(
            "--echo",
            "-e",
            help="Echo SQL statements to console",
        ),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            "-j",
            help="Output as JSON lines (machine-readable)",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Log batch-level detail to stderr",
        ),
    ] = False,
) -> None:
    """Initialize CLI context with global options."""
    configure_logging(verbose)
    ctx.obj = CLIContext(
        database_url=get_database_url(database),
        echo=echo,
        json_output=json_output,
    )


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"querystream v{querystream.__version__}")


from querystream.cli.commands import query

app.command(name="run")(query.run_command)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
