"""Shaping accumulated results for export.

Columns are named after their fields; repeated names get ``_1``, ``_2``, ...
suffixes in order of appearance so no column is lost.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Sequence
from typing import Any

from querystream.core.types import FullResults, ResultField


def column_names(fields: Sequence[ResultField]) -> list[str]:
    """Export column names, de-duplicated by suffix.

    >>> column_names([ResultField(name="x", positional_key=str(i)) for i in range(3)])
    ['x', 'x_1', 'x_2']
    """
    seen: dict[str, int] = {}
    names: list[str] = []
    for field in fields:
        if field.name in seen:
            seen[field.name] += 1
            names.append(f"{field.name}_{seen[field.name]}")
        else:
            seen[field.name] = 0
            names.append(field.name)
    return names


def to_records(results: FullResults) -> list[dict[str, Any]]:
    """One dict per row, keyed by export column name."""
    names = column_names(results.fields)
    return [
        {name: row.get(field.positional_key) for name, field in zip(names, results.fields, strict=True)}
        for row in results.rows
    ]


def _csv_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def to_csv(results: FullResults) -> str:
    """CSV text with a header row. NULL is written as an empty field."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(column_names(results.fields))
    for row in results.rows:
        writer.writerow(
            [_csv_value(row.get(field.positional_key)) for field in results.fields]
        )
    return buffer.getvalue()
