"""Output formatting for CLI commands."""

import html
import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from querystream.core.types import DataMessage, ErrorMessage, ResultField, StreamSettings
from querystream.exceptions import QueryStreamError
from querystream.formatting import DEFAULT_TEXT_LIMIT, MISSING, format_value

console = Console()


class OutputFormatter:
    """Formats errors for terminal or JSON mode."""

    def __init__(self, json_mode: bool = False) -> None:
        self.json_mode = json_mode

    def print_error(self, error: Exception) -> None:
        """Print error message.

        Args:
            error: Exception to display
        """
        if self.json_mode:
            if isinstance(error, QueryStreamError):
                print(json.dumps(error.to_dict(), default=str, indent=2))
            else:
                print(json.dumps({"error": str(error)}, indent=2))
        else:
            error_text = str(error)
            if isinstance(error, QueryStreamError) and error.context:
                context_str = "\n".join(f"{k}: {v}" for k, v in error.context.items())
                error_text = f"{error_text}\n\n{context_str}"

            panel = Panel(
                escape(error_text),
                title="[red]Error[/red]",
                border_style="red",
            )
            console.print(panel)


class ConsoleSink:
    """Display sink that prints each batch as it arrives.

    In JSON mode every message is printed as one JSON line; otherwise each
    batch becomes a Rich table followed by the running summary.
    """

    def __init__(self, json_mode: bool = False, text_limit: int = DEFAULT_TEXT_LIMIT) -> None:
        self.json_mode = json_mode
        self.text_limit = text_limit
        self.failed = False
        self.summary = ""

    @classmethod
    def from_settings(cls, settings: StreamSettings, json_mode: bool = False) -> "ConsoleSink":
        """Sink that truncates text cells to the settings' preview limit."""
        return cls(json_mode, text_limit=settings.preview_text_limit)

    def post(self, message: DataMessage | ErrorMessage) -> None:
        if isinstance(message, ErrorMessage):
            self.failed = True
            self.summary = message.summary

        if self.json_mode:
            print(json.dumps(message.model_dump(), default=str))
            return

        if isinstance(message, ErrorMessage):
            console.print(Panel(escape(message.summary), title="[red]Error[/red]", border_style="red"))
            return

        self.summary = message.summary
        rows = message.results.rows
        if message.results.fields and rows:
            console.print(self._table(message.results.fields, rows, message.offset))
        console.print(message.summary, style="dim", markup=False)

    def _table(self, fields: list[ResultField], rows: list[dict[str, Any]], offset: int) -> Table:
        table = Table(
            title=f"Rows {offset + 1}-{offset + len(rows)}",
            show_header=True,
            header_style="bold magenta",
        )
        table.add_column("#", justify="right", style="dim")
        for field in fields:
            table.add_column(f"{escape(field.name)}\n[dim]{escape(field.display_type)}[/dim]")

        for number, row in enumerate(rows, start=offset + 1):
            table.add_row(
                str(number),
                *[self._cell(field, row.get(field.positional_key, MISSING)) for field in fields],
            )
        return table

    def _cell(self, field: ResultField, value: Any) -> Text:
        if value is None:
            return Text("null", style="italic dim")
        # Cell text is markup-escaped for HTML surfaces; the terminal wants it plain
        return Text(html.unescape(format_value(field, value, self.text_limit)))
