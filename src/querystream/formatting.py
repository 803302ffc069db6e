"""Value formatting for result previews.

Raw batch data stays structured; these helpers only build the markup-safe text
a display surface shows for a cell, plus the summary line for a result set.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from datetime import timedelta
from typing import Any

from querystream.core.types import CommandKind, FullResults, ResultField, Row

NULL_MARKER = "<i>null</i>"
ELLIPSIS = "…"
DEFAULT_TEXT_LIMIT = 150

INTERVAL_COMPONENTS = ("years", "months", "days", "hours", "minutes", "seconds", "milliseconds")
JSON_TYPES = {"json", "jsonb"}
STRUCTURAL_TYPES = JSON_TYPES | {"point", "circle"}

_ROW_COUNT_VERBS = {
    CommandKind.UPDATE: "updated",
    CommandKind.DELETE: "deleted",
    CommandKind.INSERT: "inserted",
    CommandKind.CREATE: "created",
}

# Anything outside printable ASCII (tab and newlines allowed), plus markup characters
_UNSAFE_CHARS = re.compile(r"[^\x20-\x7e\t\n\r]|[<>&\"']")


class _Missing:
    """Marker for a value that is absent, as opposed to SQL NULL."""

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def escape_markup(text: str) -> str:
    """Replace unsafe characters with numeric character references."""
    return _UNSAFE_CHARS.sub(lambda m: f"&#{ord(m.group(0))};", text)


def _number(value: float | int) -> str:
    if isinstance(value, float):
        value = round(value, 6)
        if value.is_integer():
            return str(int(value))
    return str(value)


def interval_components(value: Any) -> dict[str, float | int]:
    """Decompose an interval into its named components.

    Accepts a ``timedelta`` (what psycopg returns), a mapping keyed by
    component name, or any object exposing the components as attributes.
    Missing components are 0.
    """
    if isinstance(value, timedelta):
        negative = value < timedelta(0)
        if negative:
            value = -value
        hours, remainder = divmod(value.seconds, 3600)
        minutes, seconds = divmod(remainder, 60)
        parts: dict[str, float | int] = {
            "years": 0,
            "months": 0,
            "days": value.days,
            "hours": hours,
            "minutes": minutes,
            "seconds": seconds,
            "milliseconds": value.microseconds / 1000,
        }
        if negative:
            parts = {key: -amount for key, amount in parts.items()}
        return parts

    if isinstance(value, Mapping):
        return {key: value.get(key) or 0 for key in INTERVAL_COMPONENTS}
    return {key: getattr(value, key, None) or 0 for key in INTERVAL_COMPONENTS}


def format_interval(value: Any) -> str:
    """Render an interval as an ISO-8601 duration.

    If any component is negative the whole interval is negative: components
    are rendered as absolute values and the result is prefixed with ``-``.

    >>> format_interval({"hours": -2, "minutes": -30})
    '-PT2H30M'
    >>> format_interval({"years": 1, "days": 5})
    'P1Y5D'
    """
    parts = interval_components(value)
    negative = any(amount < 0 for amount in parts.values())
    parts = {key: abs(amount) for key, amount in parts.items()}

    seconds = parts["seconds"]
    if parts["milliseconds"]:
        seconds = seconds + parts["milliseconds"] / 1000

    iso = "P"
    if parts["years"]:
        iso += f"{_number(parts['years'])}Y"
    if parts["months"]:
        iso += f"{_number(parts['months'])}M"
    if parts["days"]:
        iso += f"{_number(parts['days'])}D"

    if iso == "P" or parts["hours"] or parts["minutes"] or seconds:
        iso += "T"
    if parts["hours"]:
        iso += f"{_number(parts['hours'])}H"
    if parts["minutes"]:
        iso += f"{_number(parts['minutes'])}M"
    if seconds:
        iso += f"{_number(seconds)}S"
    if iso == "PT":
        iso += "0S"

    return ("-" if negative else "") + iso


def to_text(value: Any) -> str:
    """Default textual conversion, using PostgreSQL spellings where Python's differ."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "\\x" + bytes(value).hex()
    return str(value)


def format_value(
    field: ResultField, value: Any = MISSING, text_limit: int = DEFAULT_TEXT_LIMIT
) -> str:
    """Render one cell for display.

    SQL NULL becomes ``NULL_MARKER``; an absent value becomes an empty string.
    Only ``text`` columns are truncated.
    """
    if value is None:
        return NULL_MARKER
    if value is MISSING:
        return ""

    kind = field.format
    truncate = False
    if kind in JSON_TYPES:
        # A JSON string scalar decodes to str; it still renders quoted
        text = json.dumps(value, default=str)
    elif isinstance(value, str) and kind != "text":
        # Driver already produced the textual form
        text = value
    elif kind == "interval":
        text = format_interval(value)
    elif kind in STRUCTURAL_TYPES:
        text = json.dumps(value, default=str)
    elif kind == "timestamptz":
        text = value.isoformat() if hasattr(value, "isoformat") else str(value)
    elif kind == "text":
        text = str(value)
        truncate = True
    else:
        text = to_text(value)

    if truncate and len(text) > text_limit:
        text = text[: text_limit - 1] + ELLIPSIS
    return escape_markup(text)


def _row_count_text(count: int | None, verb: str) -> str:
    return f"Rows {verb}: {count if count is not None else 0}"


def summary_text(results: FullResults) -> str:
    """Summary line for the accumulated results of a session.

    ``command`` is only known once the stream ends; until then it is None and
    the summary counts rows received so far.
    """
    command = results.command
    if command is None or command == CommandKind.SELECT:
        return _row_count_text(len(results.rows), "returned")
    if command in _ROW_COUNT_VERBS:
        return _row_count_text(results.row_count, _ROW_COUNT_VERBS[command])
    if command == CommandKind.EXPLAIN:
        return _row_count_text(len(results.rows), "in plan")

    dump = results.to_payload().model_dump()
    dump.update({"command": results.command_name, "row_count": results.row_count})
    return json.dumps(dump, default=str)


def header_html(fields: Sequence[ResultField]) -> str:
    """Table header: a row-number column, then name and display type per field."""
    cells = "".join(
        f'<th><div class="field-name">{escape_markup(field.name)}</div>'
        f'<div class="field-type">{escape_markup(field.display_type)}</div></th>'
        for field in fields
    )
    return f"<tr><th></th>{cells}</tr>"


def rows_html(
    fields: Sequence[ResultField],
    rows: Sequence[Row | Mapping[str, Any]],
    offset: int,
    text_limit: int = DEFAULT_TEXT_LIMIT,
) -> str:
    """Table rows numbered from ``offset + 1``."""
    rendered = []
    for number, row in enumerate(rows, start=offset + 1):
        cells = "".join(
            f"<td>{format_value(field, row.get(field.positional_key, MISSING), text_limit)}</td>"
            for field in fields
        )
        rendered.append(f"<tr><th>{number}</th>{cells}</tr>")
    return "".join(rendered)
