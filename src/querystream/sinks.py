"""Display sinks: consumers of the messages a session pushes."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from querystream.core.types import DataMessage, ErrorMessage, StreamSettings
from querystream.formatting import (
    DEFAULT_TEXT_LIMIT,
    escape_markup,
    header_html,
    rows_html,
)

Message = DataMessage | ErrorMessage


@runtime_checkable
class DisplaySink(Protocol):
    """Anything that accepts pushed result messages.

    A data message with ``offset == 0`` starts (or replaces) the table; any
    other offset appends. Nothing follows an error message.
    """

    def post(self, message: Message) -> None: ...


class RecordingSink:
    """Keeps every message it receives, in order."""

    def __init__(self) -> None:
        self.messages: list[Message] = []

    def post(self, message: Message) -> None:
        self.messages.append(message)

    @property
    def data_messages(self) -> list[DataMessage]:
        return [m for m in self.messages if isinstance(m, DataMessage)]

    @property
    def error_messages(self) -> list[ErrorMessage]:
        return [m for m in self.messages if isinstance(m, ErrorMessage)]

    def rows(self) -> list[dict[str, Any]]:
        """Rebuild the table the way a display surface would."""
        rows: list[dict[str, Any]] = []
        for message in self.data_messages:
            if message.offset == 0:
                rows = []
            rows.extend(message.results.rows)
        return rows


class HtmlTableSink:
    """Renders pushed messages into an HTML table.

    The same rendering serves the initial whole-table render (offset 0, also
    used for replay) and incremental appends.
    """

    def __init__(self, text_limit: int = DEFAULT_TEXT_LIMIT) -> None:
        self._text_limit = text_limit
        self._header = ""
        self._chunks: list[str] = []
        self.summary = ""
        self.error: str | None = None

    @classmethod
    def from_settings(cls, settings: StreamSettings) -> HtmlTableSink:
        return cls(text_limit=settings.preview_text_limit)

    def post(self, message: Message) -> None:
        if isinstance(message, ErrorMessage):
            self.error = message.summary
            return

        fields = message.results.fields
        if message.offset == 0:
            self._header = header_html(fields)
            self._chunks = []
        self._chunks.append(
            rows_html(fields, message.results.rows, message.offset, self._text_limit)
        )
        self.summary = message.summary

    def html(self) -> str:
        if self.error is not None:
            return f'<p class="error">{escape_markup(self.error)}</p>'
        return (
            f'<p class="summary">{escape_markup(self.summary)}</p>'
            f"<table>{self._header}{''.join(self._chunks)}</table>"
        )
